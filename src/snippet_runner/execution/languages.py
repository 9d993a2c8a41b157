from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from .types import ExecutionResult

Handling = Literal["native", "passthrough", "unsupported"]

NATIVE: Handling = "native"
PASSTHROUGH: Handling = "passthrough"
UNSUPPORTED: Handling = "unsupported"


@dataclass(frozen=True, slots=True)
class LanguageSpec:
    """Strategy entry describing how one language tag is handled.

    Example:
        ```python
        spec = LanguageSpec(tag="python", label="Python", handling="native")
        ```
    """

    tag: str
    label: str
    handling: Handling


LANGUAGES: dict[str, LanguageSpec] = {
    "python": LanguageSpec("python", "Python", NATIVE),
    "html": LanguageSpec("html", "HTML", PASSTHROUGH),
    "javascript": LanguageSpec("javascript", "JavaScript", UNSUPPORTED),
}

_ALIASES = {
    "py": "python",
    "native": "python",
    "htm": "html",
    "markup": "html",
    "js": "javascript",
    "typescript": "javascript",
    "ts": "javascript",
}


def resolve_language(language: str) -> LanguageSpec:
    """Map a language tag to its strategy; unknown tags are unsupported.

    Example:
        ```python
        spec = resolve_language("py")
        ```
    """
    tag = str(language or "").strip().lower()
    tag = _ALIASES.get(tag, tag)
    known = LANGUAGES.get(tag)
    if known is not None:
        return known
    return LanguageSpec(tag, tag or "unknown", UNSUPPORTED)


def looks_like_document(code: str) -> bool:
    """Return True when text already reads as a complete markup document.

    Example:
        ```python
        looks_like_document("<!DOCTYPE html><html></html>")
        ```
    """
    trimmed = code.strip().lower()
    return (
        trimmed.startswith("<!doctype")
        or trimmed.startswith("<html")
        or (trimmed.startswith("<head") and "<body" in trimmed)
    )


def precheck(code: str, language: str) -> ExecutionResult | None:
    """Answer a request without evaluation when its language or content allows.

    Returns None when the snippet has to be evaluated.

    Example:
        ```python
        early = precheck("   ", "python")
        ```
    """
    spec = resolve_language(language)
    if spec.handling == UNSUPPORTED:
        return ExecutionResult.failure(f"language not supported: {spec.label}")
    if not code.strip():
        return ExecutionResult(success=True)
    if spec.handling == PASSTHROUGH or looks_like_document(code):
        return ExecutionResult(success=True, output=code, markup_output=code)
    return None


def validate_call(code: Any, timeout_ms: Any) -> None:
    """Reject caller misuse before anything is evaluated.

    Example:
        ```python
        validate_call("return 1", 1000)
        ```
    """
    if not isinstance(code, str):
        raise TypeError(f"code must be a string, got {type(code).__name__}")
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)):
        raise TypeError("timeout_ms must be a number of milliseconds")
    if timeout_ms <= 0:
        raise ValueError("timeout_ms must be positive")
