from __future__ import annotations

import json
from typing import Any

UNSERIALIZABLE_PLACEHOLDER = "[Circular or unserializable object]"


def _format_value(value: Any) -> str:
    """Render one logged argument as text.

    Example:
        ```python
        text = _format_value({"a": 1})
        ```
    """
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, indent=2)
        except (TypeError, ValueError, RecursionError):
            return UNSERIALIZABLE_PLACEHOLDER
    return str(value)


def format_args(args: tuple[Any, ...], sep: str = " ") -> str:
    """Join logged arguments into a single output line.

    Example:
        ```python
        line = format_args(("total:", 3))
        ```
    """
    return sep.join(_format_value(arg) for arg in args)


def _pretty(value: Any) -> str:
    """Render a table/dir dump, falling back to plain text.

    Example:
        ```python
        text = _pretty([{"id": 1}])
        ```
    """
    try:
        return json.dumps(value, indent=2)
    except RecursionError:
        return UNSERIALIZABLE_PLACEHOLDER
    except (TypeError, ValueError):
        pass
    try:
        return str(value)
    except RecursionError:
        return UNSERIALIZABLE_PLACEHOLDER


class ConsoleRecorder:
    """In-memory stand-in for output primitives available to a snippet.

    Every call appends one formatted line; nothing reaches the host streams.

    Example:
        ```python
        console = ConsoleRecorder()
        console.log("hello", 1)
        ```
    """

    def __init__(self) -> None:
        """Create an empty recorder.

        Example:
            ```python
            console = ConsoleRecorder()
            ```
        """
        self._lines: list[str] = []

    @property
    def lines(self) -> list[str]:
        """Return a copy of the recorded lines in call order.

        Example:
            ```python
            captured = console.lines
            ```
        """
        return list(self._lines)

    def text(self) -> str | None:
        """Return recorded lines joined by newlines, or None when empty.

        Example:
            ```python
            output = console.text()
            ```
        """
        if not self._lines:
            return None
        return "\n".join(self._lines)

    def log(self, *args: Any) -> None:
        """Record a plain line.

        Example:
            ```python
            console.log("rows", 3)
            ```
        """
        self._lines.append(format_args(args))

    def info(self, *args: Any) -> None:
        """Record an informational line.

        Example:
            ```python
            console.info("loaded")
            ```
        """
        self._lines.append("[INFO] " + format_args(args))

    def warn(self, *args: Any) -> None:
        """Record a warning line.

        Example:
            ```python
            console.warn("empty table")
            ```
        """
        self._lines.append("[WARN] " + format_args(args))

    warning = warn

    def error(self, *args: Any) -> None:
        """Record an error line.

        Example:
            ```python
            console.error("bad row", 4)
            ```
        """
        self._lines.append("[ERROR] " + format_args(args))

    def debug(self, *args: Any) -> None:
        """Record a debug line.

        Example:
            ```python
            console.debug("state", {"x": 1})
            ```
        """
        self._lines.append("[DEBUG] " + format_args(args))

    def table(self, data: Any) -> None:
        """Record a structured dump of tabular data.

        Example:
            ```python
            console.table([{"id": 1}, {"id": 2}])
            ```
        """
        try:
            self._lines.append(json.dumps(data, indent=2))
        except (TypeError, ValueError, RecursionError):
            self._lines.append("[table] " + _pretty(data))

    def dir(self, obj: Any) -> None:
        """Record a structured dump of one object.

        Example:
            ```python
            console.dir({"a": 1})
            ```
        """
        self._lines.append(_pretty(obj))

    def clear(self) -> None:
        """Drop everything recorded so far.

        Example:
            ```python
            console.clear()
            ```
        """
        self._lines.clear()

    def assert_(self, condition: Any, message: str | None = None) -> None:
        """Record a failure line when the condition is falsy.

        Example:
            ```python
            console.assert_(len(rows) > 0, "no rows")
            ```
        """
        if not condition:
            self._lines.append("[ASSERT FAILED] " + (message or "Assertion failed"))

    def print(self, *args: Any, sep: str | None = " ", end: str | None = "\n", **_: Any) -> None:
        """Record a line the way the built-in print would render it.

        Example:
            ```python
            console.print("a", "b", sep=", ")
            ```
        """
        self._lines.append(format_args(args, " " if sep is None else sep))

    def _noop(self, *args: Any, **kwargs: Any) -> None:
        """Accept and ignore timing, counting and grouping calls.

        Example:
            ```python
            console.time("load")
            ```
        """
        return None

    time = _noop
    time_end = _noop
    time_log = _noop
    count = _noop
    count_reset = _noop
    group = _noop
    group_end = _noop
    group_collapsed = _noop
