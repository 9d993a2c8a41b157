import asyncio

from snippet_runner import IsolatedEngine, RunnerPolicy
from snippet_runner.execution.types import ExecutionResult


def _run(scenario) -> object:
    async def _wrapped() -> object:
        engine = IsolatedEngine(RunnerPolicy(timeout_ms=5000))
        try:
            return await scenario(engine)
        finally:
            await engine.aclose()

    return asyncio.run(_wrapped())


def test_round_trip_returns_value_from_inputs() -> None:
    async def scenario(engine: IsolatedEngine) -> ExecutionResult:
        return await engine.evaluate(
            "return len(inputs['products'])",
            "python",
            {"products": [{"id": 1}, {"id": 2}, {"id": 3}]},
        )

    result = _run(scenario)
    assert result.success is True
    assert result.return_value == 3
    assert result.error is None
    assert result.executed_at


def test_blank_snippet_never_crosses_the_boundary() -> None:
    async def scenario(engine: IsolatedEngine) -> tuple[ExecutionResult, int, int]:
        result = await engine.evaluate("   \n\t", "python", {})
        return result, engine.posted_count, engine.contexts.spawn_count

    result, posted, spawned = _run(scenario)
    assert result.success is True
    assert result.output is None
    assert result.return_value is None
    assert posted == 0
    assert spawned == 0


def test_unsupported_language_fails_without_spawning() -> None:
    async def scenario(engine: IsolatedEngine) -> tuple[ExecutionResult, int]:
        result = await engine.evaluate("console.log(1)", "javascript", {})
        return result, engine.contexts.spawn_count

    result, spawned = _run(scenario)
    assert result.success is False
    assert result.error == "language not supported: JavaScript"
    assert spawned == 0


def test_html_is_passed_through() -> None:
    async def scenario(engine: IsolatedEngine) -> ExecutionResult:
        return await engine.evaluate("<p>hello</p>", "html", {})

    result = _run(scenario)
    assert result.success is True
    assert result.output == "<p>hello</p>"
    assert result.markup_output == "<p>hello</p>"


def test_timeout_then_context_stays_usable() -> None:
    async def scenario(engine: IsolatedEngine) -> tuple[ExecutionResult, ExecutionResult]:
        hung = await engine.evaluate("while True:\n    pass", "python", {}, timeout_ms=100)
        after = await engine.evaluate("return 'still alive'", "python", {})
        return hung, after

    hung, after = _run(scenario)
    assert hung.success is False
    assert hung.error == "timed out after 100ms"
    assert after.success is True
    assert after.return_value == "still alive"


def test_concurrent_requests_are_correlated_by_id() -> None:
    slow = "import time\ntime.sleep(0.5)\nreturn 'slow'"
    fast = "return 'fast'"

    async def scenario(engine: IsolatedEngine) -> list[ExecutionResult]:
        await engine.evaluate("return 0", "python", {})
        return await asyncio.gather(
            engine.evaluate(slow, "python", {}),
            engine.evaluate(fast, "python", {}),
        )

    slow_result, fast_result = _run(scenario)
    assert slow_result.return_value == "slow"
    assert fast_result.return_value == "fast"


def test_late_result_after_timeout_is_dropped() -> None:
    async def scenario(engine: IsolatedEngine) -> tuple[ExecutionResult, int, int]:
        await engine.evaluate("return 0", "python", {})
        result = await engine.evaluate(
            "import time\ntime.sleep(0.3)\nreturn 'late'", "python", {}, timeout_ms=50
        )
        await asyncio.sleep(1.0)
        return result, engine.registry.dropped, len(engine.registry)

    result, dropped, pending = _run(scenario)
    assert result.error == "timed out after 50ms"
    assert dropped >= 1
    assert pending == 0


def test_markup_output_is_promoted() -> None:
    async def scenario(engine: IsolatedEngine) -> ExecutionResult:
        return await engine.evaluate("print('<div>hi</div>')", "python", {})

    result = _run(scenario)
    assert result.success is True
    assert result.output == "<div>hi</div>"
    assert result.markup_output == "<div>hi</div>"


def test_markup_mode_copies_plain_output() -> None:
    async def scenario(engine: IsolatedEngine) -> ExecutionResult:
        return await engine.evaluate("print('plain')", "python", {}, output_mode="markup")

    result = _run(scenario)
    assert result.markup_output == "plain"


def test_log_lines_keep_call_order() -> None:
    code = "console.log('a')\nprint('b')\nconsole.warn('c')\nconsole.error('d')"

    async def scenario(engine: IsolatedEngine) -> ExecutionResult:
        return await engine.evaluate(code, "python", {})

    result = _run(scenario)
    assert result.output == "a\nb\n[WARN] c\n[ERROR] d"


def test_runtime_error_keeps_partial_output() -> None:
    async def scenario(engine: IsolatedEngine) -> ExecutionResult:
        return await engine.evaluate("print('before')\nraise ValueError('boom')", "python", {})

    result = _run(scenario)
    assert result.success is False
    assert result.error == "ValueError: boom"
    assert result.output == "before"
    assert result.markup_output is None


def test_syntax_error_is_a_failed_result() -> None:
    async def scenario(engine: IsolatedEngine) -> ExecutionResult:
        return await engine.evaluate("return (", "python", {})

    result = _run(scenario)
    assert result.success is False
    assert result.error.startswith("SyntaxError")


def test_callable_inputs_do_not_reach_the_worker() -> None:
    async def scenario(engine: IsolatedEngine) -> ExecutionResult:
        return await engine.evaluate(
            "return sorted(inputs)", "python", {"keep": 1, "hook": lambda: None}
        )

    result = _run(scenario)
    assert result.return_value == ["keep"]


def test_blocked_import_fails_inside_worker() -> None:
    async def scenario(engine: IsolatedEngine) -> ExecutionResult:
        return await engine.evaluate("import subprocess\nreturn 1", "python", {})

    result = _run(scenario)
    assert result.success is False
    assert "subprocess" in (result.error or "")


def test_stray_stdout_writes_do_not_corrupt_results() -> None:
    code = "import sys\nsys.stdout.write('{\"type\": \"result\"}\\n')\nsys.stdout.flush()\nreturn 5"

    async def scenario(engine: IsolatedEngine) -> tuple[ExecutionResult, ExecutionResult]:
        first = await engine.evaluate(code, "python", {})
        second = await engine.evaluate("return 6", "python", {})
        return first, second

    first, second = _run(scenario)
    assert first.return_value == 5
    assert second.return_value == 6


def test_teardown_recreates_context_on_next_call() -> None:
    async def scenario(engine: IsolatedEngine) -> tuple[ExecutionResult, int, int]:
        await engine.evaluate("return 1", "python", {})
        first_pid = engine.contexts.context.pid
        engine.teardown()
        result = await engine.evaluate("return 2", "python", {})
        return result, engine.contexts.spawn_count, first_pid

    result, spawned, _ = _run(scenario)
    assert result.return_value == 2
    assert spawned == 2
