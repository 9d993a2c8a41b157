from __future__ import annotations

import asyncio
from typing import Any, Mapping

from .execution.direct import DirectEvaluator
from .execution.dispatcher import IsolatedEngine
from .execution.types import ExecutionResult
from .policy import RunnerPolicy, resolve_policy

_DEFAULT_ENGINE: IsolatedEngine | None = None


def default_engine() -> IsolatedEngine:
    """Return the process-wide engine, creating it on first use.

    Example:
        ```python
        engine = default_engine()
        ```
    """
    global _DEFAULT_ENGINE
    if _DEFAULT_ENGINE is None:
        _DEFAULT_ENGINE = IsolatedEngine()
    return _DEFAULT_ENGINE


async def evaluate(
    code: str,
    language: str,
    inputs: Mapping[str, Any] | None = None,
    timeout_ms: float | None = None,
    *,
    output_mode: str = "console",
) -> ExecutionResult:
    """Evaluate a snippet on the process-wide isolated engine.

    Example:
        ```python
        result = await evaluate("return len(inputs['products'])", "python", {"products": [{}, {}, {}]})
        ```
    """
    return await default_engine().evaluate(
        code, language, inputs, timeout_ms, output_mode=output_mode
    )


def teardown() -> None:
    """Destroy the process-wide execution context; the next call recreates it.

    Example:
        ```python
        teardown()
        ```
    """
    if _DEFAULT_ENGINE is not None:
        _DEFAULT_ENGINE.teardown()


async def _run_once(
    code: str,
    language: str,
    inputs: Mapping[str, Any] | None,
    timeout_ms: float | None,
    output_mode: str,
    policy: RunnerPolicy,
    isolated: bool,
) -> ExecutionResult:
    """Evaluate one snippet on a private evaluator and release it.

    Example:
        ```python
        result = await _run_once("return 1", "python", None, None, "console", RunnerPolicy(), True)
        ```
    """
    if not isolated:
        return await DirectEvaluator(policy).evaluate(
            code, language, inputs, timeout_ms, output_mode=output_mode
        )
    engine = IsolatedEngine(policy)
    try:
        return await engine.evaluate(code, language, inputs, timeout_ms, output_mode=output_mode)
    finally:
        await engine.aclose()


def run_code(
    code: str,
    language: str = "python",
    inputs: Mapping[str, Any] | None = None,
    timeout_ms: float | None = None,
    *,
    output_mode: str = "console",
    isolated: bool = True,
    policy: RunnerPolicy | None = None,
    policy_file: str | None = None,
) -> ExecutionResult:
    """Evaluate one snippet synchronously, outside any running event loop.

    Example:
        ```python
        from snippet_runner import run_code
        result = run_code("return inputs['x'] * 2", inputs={"x": 21})
        ```
    """
    resolved_policy = resolve_policy(policy, policy_file)
    return asyncio.run(
        _run_once(
            code,
            language,
            inputs,
            timeout_ms,
            output_mode,
            resolved_policy,
            isolated,
        )
    )
