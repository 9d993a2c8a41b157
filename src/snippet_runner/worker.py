from __future__ import annotations

import json
import os
import sys
import threading
from typing import Any, TextIO

from .execution.types import ExecutionResult
from .snippet import SnippetSandbox

_resource: Any
try:
    import resource as _resource_module  # POSIX only
    _resource = _resource_module
except Exception:  # pragma: no cover - platform specific
    _resource = None


def _set_limits(memory_limit_mb: int) -> list[str]:
    """Apply the address-space limit to the whole worker process.

    Example:
        ```python
        problems = _set_limits(memory_limit_mb=1024)
        ```
    """
    errors: list[str] = []
    if memory_limit_mb <= 0:
        return errors
    if _resource is None:
        errors.append("RLIMIT limits unavailable on this platform")
        return errors

    mem_bytes = int(memory_limit_mb) * 1024 * 1024

    try:
        _, current_hard = _resource.getrlimit(_resource.RLIMIT_AS)
        if current_hard in (-1, _resource.RLIM_INFINITY):
            target_hard = mem_bytes
        else:
            target_hard = min(mem_bytes, current_hard)
        target_soft = min(mem_bytes, target_hard)
        _resource.setrlimit(_resource.RLIMIT_AS, (target_soft, target_hard))
    except (ValueError, OSError) as exc:
        errors.append(f"RLIMIT_AS not applied: {exc}")

    return errors


def _claim_protocol_channel() -> TextIO:
    """Keep a private handle on stdout and point fd 1 at stderr.

    Example:
        ```python
        channel = _claim_protocol_channel()
        ```
    """
    sys.stdout.flush()
    channel = os.fdopen(os.dup(sys.stdout.fileno()), "w", encoding="utf-8", buffering=1)
    os.dup2(sys.stderr.fileno(), sys.stdout.fileno())
    sys.stdout = sys.stderr
    return channel


class WorkerLoop:
    """Boundary loop inside the isolated worker process.

    Reads one JSON request per line and answers each with exactly one result
    line carrying the same correlation id.

    Example:
        ```python
        WorkerLoop(sandbox, channel).serve(sys.stdin)
        ```
    """

    def __init__(self, sandbox: SnippetSandbox, channel: TextIO) -> None:
        """Bind the loop to a sandbox and an output channel.

        Example:
            ```python
            loop = WorkerLoop(sandbox, channel)
            ```
        """
        self._sandbox = sandbox
        self._channel = channel
        self._write_lock = threading.Lock()

    def send(self, message: dict[str, Any]) -> None:
        """Write one message as a single JSON line.

        Example:
            ```python
            loop.send({"type": "ready"})
            ```
        """
        line = json.dumps(message, default=str)
        with self._write_lock:
            self._channel.write(line + "\n")
            self._channel.flush()

    def serve(self, stream: TextIO) -> None:
        """Dispatch requests until the input stream closes.

        Example:
            ```python
            loop.serve(sys.stdin)
            ```
        """
        for line in stream:
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict) or message.get("type") != "execute":
                continue
            # Snippets run on daemon threads so a hung one cannot block later requests.
            threading.Thread(
                target=self.handle,
                args=(message,),
                name=f"snippet-{message.get('id')}",
                daemon=True,
            ).start()

    def handle(self, message: dict[str, Any]) -> None:
        """Evaluate one request and emit its result.

        Example:
            ```python
            loop.handle({"type": "execute", "id": "exec-1", "code": "return 1", "inputs": {}})
            ```
        """
        request_id = str(message.get("id", ""))
        code = message.get("code")
        inputs = message.get("inputs")
        try:
            if not isinstance(code, str):
                result = ExecutionResult.failure("TypeError: snippet code must be a string")
            else:
                result = self._sandbox.execute(code, inputs if isinstance(inputs, dict) else {})
        except BaseException as exc:
            result = ExecutionResult.failure(f"{type(exc).__name__}: {exc}")
        self.send({"type": "result", "id": request_id, "result": result.to_dict()})


def main() -> int:
    """Run the worker: read init, signal readiness, then serve requests.

    Example:
        ```python
        raise SystemExit(main())
        ```
    """
    channel = _claim_protocol_channel()
    init_line = sys.stdin.readline()
    if not init_line:
        return 1
    try:
        init = json.loads(init_line)
        policy = init.get("policy", {}) if isinstance(init, dict) else {}
        sandbox = SnippetSandbox.from_payload(policy)
    except Exception as exc:
        channel.write(json.dumps({"type": "fatal", "error": f"{type(exc).__name__}: {exc}"}) + "\n")
        channel.flush()
        return 1

    for problem in _set_limits(int(policy.get("memory_limit_mb", 0))):
        sys.stderr.write(problem + "\n")

    loop = WorkerLoop(sandbox, channel)
    loop.send({"type": "ready", "pid": os.getpid()})
    loop.serve(sys.stdin)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
