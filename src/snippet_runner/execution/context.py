from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

from ..policy import RunnerPolicy
from .types import ContextUnavailableError

logger = logging.getLogger(__name__)

# Result lines carry captured output and return values, so allow large lines.
_STREAM_LIMIT = 32 * 1024 * 1024

Listener = Callable[["ExecutionContext"], Awaitable[None]]


def _package_root() -> Path:
    """Return the directory that contains the ``snippet_runner`` package.

    Example:
        ```python
        root = _package_root()
        ```
    """
    return Path(__file__).resolve().parents[2]


def _worker_env() -> dict[str, str]:
    """Return the worker environment with the package importable.

    Example:
        ```python
        env = _worker_env()
        ```
    """
    env = dict(os.environ)
    existing = env.get("PYTHONPATH")
    root = str(_package_root())
    env["PYTHONPATH"] = root if not existing else os.pathsep.join([root, existing])
    env["PYTHONUNBUFFERED"] = "1"
    return env


class ExecutionContext:
    """Handle on one running isolated worker process.

    Example:
        ```python
        context = await manager.ensure_context()
        await context.post({"type": "execute", "id": "exec-1", "code": "return 1", "inputs": {}})
        ```
    """

    def __init__(self, process: asyncio.subprocess.Process, loop: asyncio.AbstractEventLoop) -> None:
        """Wrap a spawned worker; it is not ready until the manager says so.

        Example:
            ```python
            context = ExecutionContext(process, asyncio.get_running_loop())
            ```
        """
        self.process = process
        self.loop = loop
        self.ready = False
        self._write_lock = asyncio.Lock()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def pid(self) -> int:
        """Return the worker process id.

        Example:
            ```python
            pid = context.pid
            ```
        """
        return self.process.pid

    @property
    def alive(self) -> bool:
        """Return True while the worker runs and belongs to the current loop.

        Example:
            ```python
            if context.alive:
                ...
            ```
        """
        if not self.ready or self.process.returncode is not None:
            return False
        try:
            return asyncio.get_running_loop() is self.loop
        except RuntimeError:
            return False

    async def post(self, message: dict[str, Any]) -> None:
        """Write one request line into the worker.

        Example:
            ```python
            await context.post(request.to_message())
            ```
        """
        if not self.alive or self.process.stdin is None:
            raise ContextUnavailableError("execution context is not ready")
        line = json.dumps(message) + "\n"
        try:
            async with self._write_lock:
                self.process.stdin.write(line.encode("utf-8"))
                await self.process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            self.ready = False
            raise ContextUnavailableError(f"execution context closed: {exc}") from exc

    async def read_message(self) -> dict[str, Any] | None:
        """Read the next JSON message from the worker, or None at end of stream.

        Non-JSON lines are logged and skipped.

        Example:
            ```python
            message = await context.read_message()
            ```
        """
        stream = self.process.stdout
        if stream is None:
            return None
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                logger.warning("Skipping oversized message from worker %s", self.pid)
                continue
            if not raw:
                return None
            text = raw.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON line from worker %s: %r", self.pid, text[:200])
                continue
            if isinstance(message, dict):
                return message

    def track(self, task: asyncio.Task[None]) -> None:
        """Attach a background task whose lifetime is bound to this context.

        Example:
            ```python
            context.track(asyncio.create_task(listener(context)))
            ```
        """
        self._tasks.append(task)

    def close(self) -> None:
        """Invalidate the context, cancel its tasks and kill the worker.

        Example:
            ```python
            context.close()
            ```
        """
        self.ready = False
        if self.process.returncode is None:
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            if not task.done():
                task.cancel()


class ExecutionContextManager:
    """Lazily creates and owns the single isolated execution context.

    Concurrent ``ensure_context`` calls share one in-flight construction.

    Example:
        ```python
        manager = ExecutionContextManager(RunnerPolicy(), listener=correlator.listen)
        context = await manager.ensure_context()
        ```
    """

    def __init__(
        self,
        policy: RunnerPolicy,
        *,
        listener: Listener | None = None,
        python_executable: str | None = None,
    ) -> None:
        """Configure how worker processes are spawned.

        Example:
            ```python
            manager = ExecutionContextManager(RunnerPolicy(), python_executable=sys.executable)
            ```
        """
        self._policy = policy
        self.listener = listener
        self._python = python_executable or sys.executable
        self._context: ExecutionContext | None = None
        self._building: asyncio.Future[ExecutionContext] | None = None
        self._building_generation = 0
        # Bumped by every teardown; constructions from an older generation are discarded.
        self._generation = 0
        self.spawn_count = 0

    @property
    def context(self) -> ExecutionContext | None:
        """Return the current context without creating one.

        Example:
            ```python
            current = manager.context
            ```
        """
        return self._context

    @property
    def ready(self) -> bool:
        """Return True when a live, ready context exists.

        Example:
            ```python
            if manager.ready:
                ...
            ```
        """
        return self._context is not None and self._context.alive

    async def ensure_context(self) -> ExecutionContext:
        """Return the live context, constructing a fresh one when needed.

        Example:
            ```python
            context = await manager.ensure_context()
            ```
        """
        current = self._context
        if current is not None and current.alive:
            return current
        loop = asyncio.get_running_loop()
        building = self._building
        if (
            building is None
            or building.get_loop() is not loop
            or self._building_generation != self._generation
        ):
            if current is not None:
                self._discard(current)
            building = loop.create_task(self._build(self._generation))
            self._building = building
            self._building_generation = self._generation
            building.add_done_callback(self._clear_building)
        return await asyncio.shield(building)

    def _clear_building(self, task: asyncio.Future[ExecutionContext]) -> None:
        """Forget a finished construction and retrieve its exception.

        Example:
            ```python
            task.add_done_callback(manager._clear_building)
            ```
        """
        if self._building is task:
            self._building = None
        if not task.cancelled():
            task.exception()

    async def _build(self, generation: int) -> ExecutionContext:
        """Spawn a worker, send the policy and wait for its ready line.

        A teardown that happens while the worker starts invalidates it: the
        worker is killed and the construction fails instead of installing it.

        Example:
            ```python
            context = await manager._build(manager._generation)
            ```
        """
        loop = asyncio.get_running_loop()
        self.spawn_count += 1
        try:
            process = await asyncio.create_subprocess_exec(
                self._python,
                "-m",
                "snippet_runner.worker",
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=_worker_env(),
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            logger.warning("Could not start snippet worker: %s", exc)
            raise ContextUnavailableError(f"could not start worker: {exc}") from exc

        context = ExecutionContext(process, loop)
        if process.stderr is not None:
            context.track(loop.create_task(self._drain_stderr(process.pid, process.stderr)))
        try:
            if generation == self._generation:
                await self._handshake(context)
            if generation != self._generation:
                raise ContextUnavailableError("execution context was torn down during startup")
        except ContextUnavailableError as exc:
            logger.warning("Snippet worker %s failed to start: %s", context.pid, exc)
            context.close()
            await process.wait()
            raise
        except BaseException:
            context.close()
            await process.wait()
            raise

        context.ready = True
        self._context = context
        if self.listener is not None:
            context.track(loop.create_task(self.listener(context)))
        logger.debug("Snippet worker %s ready", context.pid)
        return context

    async def _handshake(self, context: ExecutionContext) -> None:
        """Send the init message and wait for readiness within the policy limit.

        Example:
            ```python
            await manager._handshake(context)
            ```
        """
        stdin = context.process.stdin
        if stdin is None:
            raise ContextUnavailableError("worker has no input channel")
        init = {"type": "init", "policy": self._policy.to_payload()}
        try:
            stdin.write((json.dumps(init, default=str) + "\n").encode("utf-8"))
            await stdin.drain()
            message = await asyncio.wait_for(
                context.read_message(), timeout=self._policy.ready_timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise ContextUnavailableError(
                f"worker not ready after {self._policy.ready_timeout_seconds}s"
            ) from exc
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ContextUnavailableError(f"worker exited during startup: {exc}") from exc
        if message is None:
            raise ContextUnavailableError("worker exited before signalling readiness")
        if message.get("type") != "ready":
            raise ContextUnavailableError(
                str(message.get("error") or f"unexpected startup message {message.get('type')!r}")
            )

    async def _drain_stderr(self, pid: int, stream: asyncio.StreamReader) -> None:
        """Log worker diagnostics so the pipe never fills up.

        Example:
            ```python
            await manager._drain_stderr(context.pid, process.stderr)
            ```
        """
        while True:
            raw = await stream.readline()
            if not raw:
                return
            logger.debug("worker %s: %s", pid, raw.decode("utf-8", errors="replace").rstrip())

    def _discard(self, context: ExecutionContext) -> None:
        """Drop a dead or foreign-loop context.

        Example:
            ```python
            manager._discard(context)
            ```
        """
        if self._context is context:
            self._context = None
        try:
            context.close()
        except RuntimeError:
            # The owning event loop is already closed; the worker exits when stdin closes.
            pass

    def teardown(self) -> None:
        """Detach and invalidate the context; the next use recreates it.

        A worker that is still starting is invalidated too and never installed.

        Example:
            ```python
            manager.teardown()
            ```
        """
        self._generation += 1
        context = self._context
        self._context = None
        if context is not None:
            logger.debug("Tearing down snippet worker %s", context.pid)
            self._discard(context)

    async def aclose(self) -> None:
        """Tear down the context and wait for every worker it started to exit.

        An in-flight construction is awaited rather than cancelled, so no
        half-spawned worker outlives the event loop.

        Example:
            ```python
            await manager.aclose()
            ```
        """
        loop = asyncio.get_running_loop()
        context = self._context
        building = self._building
        self.teardown()
        if building is not None and building.get_loop() is loop:
            await asyncio.wait([building])
        if context is not None and context.loop is loop:
            await context.process.wait()
