from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

_DROP = object()


def _clean(value: Any, active: set[int]) -> Any:
    """Strip callables and cyclic references from one value.

    Example:
        ```python
        cleaned = _clean({"f": len, "x": 1}, set())
        ```
    """
    if callable(value):
        return _DROP
    if isinstance(value, Mapping):
        marker = id(value)
        if marker in active:
            return _DROP
        active.add(marker)
        try:
            out: dict[str, Any] = {}
            for key, item in value.items():
                cleaned = _clean(item, active)
                if cleaned is not _DROP:
                    out[str(key)] = cleaned
            return out
        finally:
            active.discard(marker)
    if isinstance(value, (list, tuple, set, frozenset)):
        marker = id(value)
        if marker in active:
            return _DROP
        active.add(marker)
        try:
            # Unrepresentable items become null.
            return [None if (c := _clean(item, active)) is _DROP else c for item in value]
        finally:
            active.discard(marker)
    return value


def sanitize_inputs(inputs: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a JSON-safe copy of an inputs bundle, or ``{}`` when it cannot be made one.

    Callables and cycles are dropped and other non-JSON values are rendered as
    strings. A failure here never aborts an evaluation.

    Example:
        ```python
        payload = sanitize_inputs({"rows": [{"id": 1}], "callback": print})
        ```
    """
    if not inputs:
        return {}
    try:
        cleaned = _clean(dict(inputs), set())
        result = json.loads(json.dumps(cleaned, default=str))
    except (TypeError, ValueError, RecursionError) as exc:
        logger.warning("Failed to serialize snippet inputs, sending {}: %s", exc)
        return {}
    if not isinstance(result, dict):
        return {}
    return result


def merge_inputs(sources: Iterable[Any]) -> dict[str, Any]:
    """Assemble the inputs bundle from connected data sources.

    Each source is either a mapping whose keys are merged in order (later
    sources win) or a ``(variable_name, data)`` binding.

    Example:
        ```python
        inputs = merge_inputs([("products", rows), {"threshold": 3}])
        ```
    """
    merged: dict[str, Any] = {}
    for source in sources:
        if isinstance(source, Mapping):
            for key, value in source.items():
                merged[str(key)] = value
            continue
        if isinstance(source, tuple) and len(source) == 2 and isinstance(source[0], str):
            name, data = source
            if not name.strip():
                raise ValueError("Input binding requires a non-empty variable name")
            merged[name.strip()] = data
            continue
        raise TypeError(
            "Input sources must be mappings or (variable_name, data) pairs, "
            f"got {type(source).__name__}"
        )
    return merged
