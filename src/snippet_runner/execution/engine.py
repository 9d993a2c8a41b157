from __future__ import annotations

from typing import Any, Mapping, Protocol

from .types import ExecutionResult


class SnippetEvaluator(Protocol):
    async def evaluate(
        self,
        code: str,
        language: str,
        inputs: Mapping[str, Any] | None = None,
        timeout_ms: float | None = None,
        *,
        output_mode: str = "console",
    ) -> ExecutionResult:
        """Evaluate one snippet and return its structured result.

        Example:
            ```python
            result = await evaluator.evaluate("return 1 + 1", "python", {}, 1000)
            ```
        """
        ...
