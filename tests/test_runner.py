import asyncio

import pytest

from snippet_runner import evaluate, run_code, teardown
from snippet_runner import runner


@pytest.fixture(autouse=True)
def _fresh_default_engine(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(runner, "_DEFAULT_ENGINE", None)


def test_module_level_evaluate_reuses_one_context() -> None:
    async def _run() -> tuple[list, int]:
        try:
            first = await evaluate("return 1", "python", {})
            second = await evaluate("return inputs['n'] * 2", "python", {"n": 4})
            return [first, second], runner.default_engine().contexts.spawn_count
        finally:
            await runner.default_engine().aclose()

    (first, second), spawned = asyncio.run(_run())
    assert first.return_value == 1
    assert second.return_value == 8
    assert spawned == 1


def test_teardown_then_evaluate_recreates_context() -> None:
    async def _run() -> tuple[int, int]:
        try:
            await evaluate("return 1", "python", {})
            teardown()
            result = await evaluate("return 2", "python", {})
            return result.return_value, runner.default_engine().contexts.spawn_count
        finally:
            await runner.default_engine().aclose()

    value, spawned = asyncio.run(_run())
    assert value == 2
    assert spawned == 2


def test_teardown_without_engine_is_a_no_op() -> None:
    teardown()
    assert runner._DEFAULT_ENGINE is None


def test_run_code_isolated() -> None:
    result = run_code("print('hi')\nreturn inputs['x'] * 2", inputs={"x": 21}, timeout_ms=5000)
    assert result.success is True
    assert result.output == "hi"
    assert result.return_value == 42


def test_run_code_direct() -> None:
    result = run_code("return [1, 2]", isolated=False)
    assert result.success is True
    assert result.return_value == [1, 2]


def test_run_code_reports_timeout() -> None:
    result = run_code("import time\ntime.sleep(2)", isolated=False, timeout_ms=50)
    assert result.error == "timed out after 50ms"


def test_run_code_times_out_while_worker_starts() -> None:
    result = run_code("return 1", "python", {}, 1)
    assert result.success is False
    assert result.error == "timed out after 1ms"
