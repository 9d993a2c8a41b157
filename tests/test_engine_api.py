import asyncio

import pytest

from snippet_runner import DirectEvaluator, IsolatedEngine


def test_isolated_engine_rejects_non_string_code() -> None:
    async def _run() -> None:
        engine = IsolatedEngine()
        try:
            await engine.evaluate(None, "python", {})  # type: ignore[arg-type]
        finally:
            await engine.aclose()

    with pytest.raises(TypeError, match="code must be a string"):
        asyncio.run(_run())


@pytest.mark.parametrize("timeout_ms", [0, -5])
def test_isolated_engine_rejects_non_positive_timeout(timeout_ms: int) -> None:
    async def _run() -> None:
        engine = IsolatedEngine()
        try:
            await engine.evaluate("return 1", "python", {}, timeout_ms)
        finally:
            await engine.aclose()

    with pytest.raises(ValueError, match="timeout_ms must be positive"):
        asyncio.run(_run())


def test_direct_evaluator_rejects_non_numeric_timeout() -> None:
    with pytest.raises(TypeError, match="timeout_ms"):
        asyncio.run(DirectEvaluator().evaluate("return 1", "python", {}, "soon"))  # type: ignore[arg-type]


def test_validation_happens_before_any_worker_starts() -> None:
    async def _run() -> int:
        engine = IsolatedEngine()
        with pytest.raises(TypeError):
            await engine.evaluate(b"return 1", "python", {})  # type: ignore[arg-type]
        spawned = engine.contexts.spawn_count
        await engine.aclose()
        return spawned

    assert asyncio.run(_run()) == 0
