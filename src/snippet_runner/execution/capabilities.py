from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class EvaluatorCapabilities:
    """Guarantees advertised by a snippet evaluator.

    Example:
        ```python
        caps = EvaluatorCapabilities(True, True, True, True, True)
        ```
    """

    supports_isolation: bool
    supports_import_blocking: bool
    supports_builtin_blocking: bool
    supports_memory_limit: bool
    supports_timeout: bool


def capabilities_for_evaluator(evaluator: str) -> EvaluatorCapabilities:
    """Return capability flags for an evaluator name.

    Example:
        ```python
        caps = capabilities_for_evaluator("direct")
        ```
    """
    if evaluator in {"isolated", "isolatedengine"}:
        return EvaluatorCapabilities(True, True, True, True, True)
    if evaluator in {"direct", "directevaluator"}:
        # Runs in the caller's process: timeouts abandon the thread instead of stopping it.
        return EvaluatorCapabilities(False, True, True, False, True)
    return EvaluatorCapabilities(False, False, False, False, False)
