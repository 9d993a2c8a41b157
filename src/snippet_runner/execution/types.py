from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

OutputMode = Literal["console", "markup"]

CONSOLE_MODE: OutputMode = "console"
MARKUP_MODE: OutputMode = "markup"


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string.

    Example:
        ```python
        stamp = utc_timestamp()
        ```
    """
    return datetime.now(timezone.utc).isoformat()


class ContextUnavailableError(RuntimeError):
    """Raised when the isolated execution context cannot be made ready."""


@dataclass(slots=True)
class ExecutionRequest:
    """One snippet evaluation sent across the isolation boundary.

    Example:
        ```python
        req = ExecutionRequest(id="exec-1", code="return 1", language="python", inputs={})
        ```
    """

    id: str
    code: str
    language: str
    inputs: dict[str, Any]

    def to_message(self) -> dict[str, Any]:
        """Return the boundary envelope for this request.

        Example:
            ```python
            message = req.to_message()
            ```
        """
        return {
            "type": "execute",
            "id": self.id,
            "code": self.code,
            "language": self.language,
            "inputs": self.inputs,
        }


@dataclass(slots=True)
class ExecutionResult:
    """Structured outcome of one snippet evaluation.

    Example:
        ```python
        result = ExecutionResult(success=True, return_value=3)
        ```
    """

    success: bool
    output: str | None = None
    return_value: Any = None
    markup_output: str | None = None
    error: str | None = None
    executed_at: str = field(default_factory=utc_timestamp)

    @property
    def markup_mode(self) -> bool:
        """Return True when the caller should switch to markup rendering.

        Set by output classification whenever it fills ``markup_output``.

        Example:
            ```python
            if result.markup_mode:
                render(result.markup_output)
            ```
        """
        return self.markup_output is not None

    @classmethod
    def failure(cls, error: str, output: str | None = None) -> "ExecutionResult":
        """Build a failed result carrying an error message.

        Example:
            ```python
            result = ExecutionResult.failure("timed out after 100ms")
            ```
        """
        return cls(success=False, output=output, error=error)

    @classmethod
    def from_dict(cls, raw: Any) -> "ExecutionResult":
        """Rebuild a result from its wire or persisted form.

        Example:
            ```python
            result = ExecutionResult.from_dict({"success": True, "return_value": 3})
            ```
        """
        if not isinstance(raw, dict):
            return cls.failure("Malformed result received from execution context")
        output = raw.get("output")
        markup_output = raw.get("markup_output")
        error = raw.get("error")
        return cls(
            success=bool(raw.get("success")),
            output=None if output is None else str(output),
            return_value=raw.get("return_value"),
            markup_output=None if markup_output is None else str(markup_output),
            error=None if error is None else str(error),
            executed_at=str(raw.get("executed_at") or utc_timestamp()),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form written back into caller state.

        Example:
            ```python
            payload = result.to_dict()
            ```
        """
        return {
            "success": self.success,
            "output": self.output,
            "return_value": self.return_value,
            "markup_output": self.markup_output,
            "error": self.error,
            "executed_at": self.executed_at,
        }


@dataclass(slots=True)
class PendingRequest:
    """In-flight request awaiting either a boundary result or its timeout.

    Example:
        ```python
        pending = PendingRequest(id="exec-1", future=loop.create_future(), timer=handle)
        ```
    """

    id: str
    future: asyncio.Future[ExecutionResult]
    timer: asyncio.TimerHandle | None = None


@dataclass(frozen=True, slots=True)
class OutputClassification:
    """Result after markup detection plus the output mode to adopt downstream.

    Example:
        ```python
        classified = OutputClassification(result=result, markup_mode=True)
        ```
    """

    result: ExecutionResult
    markup_mode: bool
