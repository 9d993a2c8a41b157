from __future__ import annotations

import asyncio
import threading
from typing import Any, Mapping

from ..inputs import sanitize_inputs
from ..policy import RunnerPolicy
from ..snippet import SnippetSandbox
from .classifier import classify_output
from .languages import precheck, validate_call
from .types import ExecutionResult


class DirectEvaluator:
    """Evaluate snippets in the caller's own process.

    Same contract and result shape as ``IsolatedEngine`` but without the
    isolation boundary. A timed-out snippet keeps running on its thread.

    Example:
        ```python
        evaluator = DirectEvaluator()
        result = await evaluator.evaluate("return 2 * 21", "python")
        ```
    """

    def __init__(self, policy: RunnerPolicy | None = None) -> None:
        """Build the in-process sandbox from the policy.

        Example:
            ```python
            evaluator = DirectEvaluator(RunnerPolicy(blocked_imports=["os"]))
            ```
        """
        self._policy = policy or RunnerPolicy()
        self._sandbox = SnippetSandbox.from_payload(self._policy.to_payload())

    @property
    def policy(self) -> RunnerPolicy:
        """Return the policy this evaluator applies.

        Example:
            ```python
            limit = evaluator.policy.timeout_ms
            ```
        """
        return self._policy

    def run(
        self,
        code: str,
        language: str,
        inputs: Mapping[str, Any] | None = None,
        *,
        output_mode: str = "console",
    ) -> ExecutionResult:
        """Evaluate synchronously with no timeout.

        Example:
            ```python
            result = evaluator.run("print('hi')", "python")
            ```
        """
        validate_call(code, self._policy.timeout_ms)
        early = precheck(code, language)
        if early is None:
            early = self._sandbox.execute(code, sanitize_inputs(inputs))
        return classify_output(early, output_mode).result

    async def evaluate(
        self,
        code: str,
        language: str,
        inputs: Mapping[str, Any] | None = None,
        timeout_ms: float | None = None,
        *,
        output_mode: str = "console",
    ) -> ExecutionResult:
        """Evaluate on a worker thread, bounded by the wall-clock timeout.

        Example:
            ```python
            result = await evaluator.evaluate("return inputs['x']", "python", {"x": 1}, 500)
            ```
        """
        if timeout_ms is None:
            timeout_ms = self._policy.timeout_ms
        validate_call(code, timeout_ms)

        early = precheck(code, language)
        if early is not None:
            return classify_output(early, output_mode).result

        payload = sanitize_inputs(inputs)
        loop = asyncio.get_running_loop()
        future: asyncio.Future[ExecutionResult] = loop.create_future()

        def _deliver(result: ExecutionResult) -> None:
            """Hand the thread's result to the waiting caller once.

            Example:
                ```python
                loop.call_soon_threadsafe(_deliver, result)
                ```
            """
            if not future.done():
                future.set_result(result)

        def _target() -> None:
            """Run the snippet off the event loop thread.

            Example:
                ```python
                threading.Thread(target=_target, daemon=True).start()
                ```
            """
            result = self._sandbox.execute(code, payload)
            try:
                loop.call_soon_threadsafe(_deliver, result)
            except RuntimeError:
                # The caller's loop closed while the snippet was still running.
                pass

        # Daemon thread: an abandoned snippet must not keep the interpreter alive.
        threading.Thread(target=_target, name="snippet-direct", daemon=True).start()
        try:
            result = await asyncio.wait_for(future, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            result = ExecutionResult.failure(f"timed out after {timeout_ms}ms")
        return classify_output(result, output_mode).result
