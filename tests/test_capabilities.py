from snippet_runner.execution.capabilities import capabilities_for_evaluator


def test_isolated_engine_supports_every_control() -> None:
    isolated = capabilities_for_evaluator("isolated")

    assert isolated.supports_isolation
    assert isolated.supports_import_blocking
    assert isolated.supports_builtin_blocking
    assert isolated.supports_memory_limit
    assert isolated.supports_timeout


def test_direct_evaluator_has_no_isolation_or_memory_limit() -> None:
    direct = capabilities_for_evaluator("direct")

    assert not direct.supports_isolation
    assert not direct.supports_memory_limit
    assert direct.supports_import_blocking
    assert direct.supports_builtin_blocking
    assert direct.supports_timeout


def test_unknown_evaluator_supports_nothing() -> None:
    unknown = capabilities_for_evaluator("remote")

    assert not unknown.supports_isolation
    assert not unknown.supports_timeout
