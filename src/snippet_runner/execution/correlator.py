from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .types import ExecutionResult, PendingRequest

if TYPE_CHECKING:
    from .context import ExecutionContext

logger = logging.getLogger(__name__)


class PendingRegistry:
    """Pending requests keyed by correlation id.

    Resolution removes the entry and cancels its timer in one step, so the
    timeout and the boundary result can never both resolve the same request.

    Example:
        ```python
        registry = PendingRegistry()
        future = registry.register("exec-1", timeout_ms=1000)
        ```
    """

    def __init__(self) -> None:
        """Create an empty registry.

        Example:
            ```python
            registry = PendingRegistry()
            ```
        """
        self._pending: dict[str, PendingRequest] = {}
        self.dropped = 0

    def __contains__(self, request_id: object) -> bool:
        """Return True while a request id is still pending.

        Example:
            ```python
            "exec-1" in registry
            ```
        """
        return request_id in self._pending

    def __len__(self) -> int:
        """Return the number of pending requests.

        Example:
            ```python
            count = len(registry)
            ```
        """
        return len(self._pending)

    def register(self, request_id: str, timeout_ms: float) -> asyncio.Future[ExecutionResult]:
        """Add a pending request and arm its timeout.

        Example:
            ```python
            future = registry.register("exec-1", timeout_ms=15000)
            ```
        """
        if request_id in self._pending:
            raise ValueError(f"Correlation id already pending: {request_id}")
        loop = asyncio.get_running_loop()
        future: asyncio.Future[ExecutionResult] = loop.create_future()
        pending = PendingRequest(id=request_id, future=future)
        pending.timer = loop.call_later(timeout_ms / 1000, self._expire, request_id, timeout_ms)
        self._pending[request_id] = pending
        return future

    def resolve(self, request_id: str, result: ExecutionResult) -> bool:
        """Resolve a pending request; return False when the id is unknown.

        Example:
            ```python
            registry.resolve("exec-1", ExecutionResult(success=True))
            ```
        """
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return False
        if pending.timer is not None:
            pending.timer.cancel()
        if not pending.future.done():
            pending.future.set_result(result)
        return True

    def discard(self, request_id: str) -> None:
        """Remove a request without resolving it.

        Example:
            ```python
            registry.discard("exec-1")
            ```
        """
        pending = self._pending.pop(request_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()

    def _expire(self, request_id: str, timeout_ms: float) -> None:
        """Resolve a request that saw no result within its timeout.

        Example:
            ```python
            registry._expire("exec-1", 100)
            ```
        """
        if self.resolve(request_id, ExecutionResult.failure(f"timed out after {timeout_ms}ms")):
            logger.debug("Request %s timed out after %sms", request_id, timeout_ms)


class Correlator:
    """Matches boundary result messages to pending requests.

    Example:
        ```python
        correlator = Correlator(registry)
        correlator.handle_message({"type": "result", "id": "exec-1", "result": {...}})
        ```
    """

    def __init__(self, registry: PendingRegistry) -> None:
        """Bind the correlator to the dispatcher's registry.

        Example:
            ```python
            correlator = Correlator(PendingRegistry())
            ```
        """
        self._registry = registry

    def handle_message(self, message: dict[str, Any]) -> bool:
        """Deliver one result message; return True when it matched a request.

        Example:
            ```python
            matched = correlator.handle_message(message)
            ```
        """
        if message.get("type") != "result":
            logger.debug("Ignoring boundary message of type %r", message.get("type"))
            return False
        request_id = str(message.get("id", ""))
        result = ExecutionResult.from_dict(message.get("result"))
        if self._registry.resolve(request_id, result):
            return True
        # Stale results come from timed-out requests or a recreated context.
        self._registry.dropped += 1
        logger.debug(
            "Dropped result for unknown request %s (%d dropped so far)",
            request_id,
            self._registry.dropped,
        )
        return False

    async def listen(self, context: ExecutionContext) -> None:
        """Read result messages from a context until its stream ends.

        Example:
            ```python
            task = asyncio.create_task(correlator.listen(context))
            ```
        """
        while True:
            message = await context.read_message()
            if message is None:
                break
            self.handle_message(message)
        if context.ready:
            logger.warning("Snippet worker %s closed its output stream", context.pid)
        context.ready = False
