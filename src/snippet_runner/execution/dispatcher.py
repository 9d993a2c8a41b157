from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Mapping

from ..inputs import sanitize_inputs
from ..policy import RunnerPolicy
from .classifier import classify_output
from .context import ExecutionContextManager
from .correlator import Correlator, PendingRegistry
from .languages import precheck, validate_call
from .types import ContextUnavailableError, ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)


class IsolatedEngine:
    """Evaluate snippets in an isolated worker process.

    Owns the pending-request registry, the result correlator and the
    context manager, so separate engines never share state.

    Example:
        ```python
        engine = IsolatedEngine()
        result = await engine.evaluate("return len(inputs['rows'])", "python", {"rows": [1, 2]})
        ```
    """

    def __init__(
        self,
        policy: RunnerPolicy | None = None,
        *,
        python_executable: str | None = None,
        contexts: ExecutionContextManager | None = None,
    ) -> None:
        """Create an engine; no worker is started until the first evaluation.

        Example:
            ```python
            engine = IsolatedEngine(RunnerPolicy(timeout_ms=2000))
            ```
        """
        self._policy = policy or RunnerPolicy()
        self._registry = PendingRegistry()
        self._correlator = Correlator(self._registry)
        if contexts is None:
            contexts = ExecutionContextManager(self._policy, python_executable=python_executable)
        contexts.listener = self._correlator.listen
        self._contexts = contexts
        self._dispatches: set[asyncio.Task[None]] = set()
        self.posted_count = 0

    @property
    def policy(self) -> RunnerPolicy:
        """Return the policy this engine applies.

        Example:
            ```python
            limit = engine.policy.timeout_ms
            ```
        """
        return self._policy

    @property
    def registry(self) -> PendingRegistry:
        """Return the pending-request registry.

        Example:
            ```python
            in_flight = len(engine.registry)
            ```
        """
        return self._registry

    @property
    def correlator(self) -> Correlator:
        """Return the correlator that resolves pending requests.

        Example:
            ```python
            engine.correlator.handle_message(message)
            ```
        """
        return self._correlator

    @property
    def contexts(self) -> ExecutionContextManager:
        """Return the execution context manager.

        Example:
            ```python
            spawned = engine.contexts.spawn_count
            ```
        """
        return self._contexts

    async def evaluate(
        self,
        code: str,
        language: str,
        inputs: Mapping[str, Any] | None = None,
        timeout_ms: float | None = None,
        *,
        output_mode: str = "console",
    ) -> ExecutionResult:
        """Evaluate a snippet across the isolation boundary.

        Snippet failures, timeouts and an unavailable context all come back as
        a failed ``ExecutionResult``; nothing is raised for them.

        Example:
            ```python
            result = await engine.evaluate("print('hi')", "python", {}, timeout_ms=1000)
            ```
        """
        if timeout_ms is None:
            timeout_ms = self._policy.timeout_ms
        validate_call(code, timeout_ms)

        early = precheck(code, language)
        if early is not None:
            return classify_output(early, output_mode).result

        request_id = self._new_request_id()
        future = self._registry.register(request_id, timeout_ms)
        request = ExecutionRequest(
            id=request_id,
            code=code,
            language=language,
            inputs=sanitize_inputs(inputs),
        )
        dispatch = asyncio.get_running_loop().create_task(self._dispatch(request))
        self._dispatches.add(dispatch)
        dispatch.add_done_callback(self._dispatches.discard)
        try:
            result = await future
        finally:
            self._registry.discard(request_id)
        return classify_output(result, output_mode).result

    def _new_request_id(self) -> str:
        """Return a correlation id not used by any pending request.

        Example:
            ```python
            request_id = engine._new_request_id()
            ```
        """
        while True:
            request_id = f"exec-{uuid.uuid4().hex}"
            if request_id not in self._registry:
                return request_id

    async def _dispatch(self, request: ExecutionRequest) -> None:
        """Make sure the context is ready, then post the request.

        Example:
            ```python
            await engine._dispatch(request)
            ```
        """
        try:
            context = await self._contexts.ensure_context()
            if request.id not in self._registry:
                return
            await context.post(request.to_message())
        except ContextUnavailableError as exc:
            self._registry.resolve(
                request.id, ExecutionResult.failure(f"ContextUnavailable: {exc}")
            )
            return
        except Exception as exc:
            logger.warning("Failed to dispatch %s: %s", request.id, exc)
            self._registry.resolve(
                request.id,
                ExecutionResult.failure(f"ContextUnavailable: {type(exc).__name__}: {exc}"),
            )
            return
        self.posted_count += 1
        logger.debug("Dispatched %s to worker %s", request.id, context.pid)

    def teardown(self) -> None:
        """Destroy the execution context; the next evaluation recreates it.

        Example:
            ```python
            engine.teardown()
            ```
        """
        self._contexts.teardown()

    async def aclose(self) -> None:
        """Tear down the context and wait for its worker to exit.

        Example:
            ```python
            await engine.aclose()
            ```
        """
        for task in list(self._dispatches):
            task.cancel()
        await self._contexts.aclose()
