from __future__ import annotations

import ast
import builtins
import json
from typing import Any, Callable, cast

from .execution.types import ExecutionResult
from .shim import ConsoleRecorder

SNIPPET_FILENAME = "<snippet>"
_ENTRYPOINT = "__snippet__"
_TEMPLATE = f"def {_ENTRYPOINT}(console, inputs):\n    pass\n"
RESERVED_NAMES = frozenset({"__builtins__", "__name__", "console", "inputs", "print", _ENTRYPOINT})


def safe_import_factory(
    mode: str,
    allowed_imports: set[str],
    blocked_imports: set[str],
) -> Callable[..., Any]:
    """Build an ``__import__`` replacement enforcing the import policy.

    Example:
        ```python
        hook = safe_import_factory("restrict", set(), {"os"})
        ```
    """

    def _safe_import(
        name: str,
        globals: dict[str, Any] | None = None,
        locals: dict[str, Any] | None = None,
        fromlist: Any = (),
        level: int = 0,
    ) -> Any:
        """Import a module only when the policy allows it.

        Example:
            ```python
            math = _safe_import("math")
            ```
        """
        if name == "importlib" or name.startswith("importlib."):
            raise ImportError("Import 'importlib' is blocked by policy")

        root = name.split(".")[0]
        if mode == "allow":
            if root not in allowed_imports:
                raise ImportError(f"Import '{name}' is not allowed by policy")
        elif root in blocked_imports:
            raise ImportError(f"Import '{name}' is blocked by policy")
        return __import__(name, globals, locals, fromlist, level)

    return _safe_import


def build_safe_builtins(
    mode: str,
    allowed_builtins: set[str],
    blocked_builtins: set[str],
    safe_import: Any,
) -> dict[str, Any]:
    """Return the builtins namespace a snippet is allowed to see.

    Example:
        ```python
        names = build_safe_builtins("restrict", set(), {"eval"}, hook)
        ```
    """
    safe = {}
    for name, value in vars(builtins).items():
        if mode == "allow":
            if name not in allowed_builtins:
                continue
        elif name in blocked_builtins:
            continue
        safe[name] = value

    safe["__import__"] = safe_import
    return safe


def _filter_globals(
    values: dict[str, Any],
    mode: str,
    allowed_globals: set[str],
    blocked_globals: set[str],
) -> dict[str, Any]:
    """Keep only identifier keys the globals policy lets through.

    Example:
        ```python
        exposed = _filter_globals({"x": 1}, "restrict", set(), set())
        ```
    """
    filtered: dict[str, Any] = {}
    for key, value in values.items():
        key_str = str(key)
        if not key_str.isidentifier() or key_str.startswith("_"):
            continue
        if key_str in RESERVED_NAMES:
            continue
        if mode == "allow" and key_str not in allowed_globals:
            continue
        if mode == "restrict" and key_str in blocked_globals:
            continue
        filtered[key_str] = value
    return filtered


class SnippetSandbox:
    """Policy-bound evaluator that runs one snippet as a function body.

    Shared by the isolated worker and the direct evaluator so both paths
    produce results of the same shape.

    Example:
        ```python
        sandbox = SnippetSandbox.from_payload(RunnerPolicy().to_payload())
        result = sandbox.execute("return len(inputs['rows'])", {"rows": [1, 2]})
        ```
    """

    def __init__(
        self,
        *,
        mode: str = "restrict",
        allowed_imports: list[str] | None = None,
        blocked_imports: list[str] | None = None,
        allowed_builtins: list[str] | None = None,
        blocked_builtins: list[str] | None = None,
        allowed_globals: list[str] | None = None,
        blocked_globals: list[str] | None = None,
        extra_globals: dict[str, Any] | None = None,
        max_output_kb: int = 128,
    ) -> None:
        """Prepare builtins and global filters for later executions.

        Example:
            ```python
            sandbox = SnippetSandbox(blocked_imports=["os"])
            ```
        """
        if mode not in {"allow", "restrict"}:
            raise ValueError("mode must be 'allow' or 'restrict'")
        self._mode = mode
        self._allowed_globals = set(allowed_globals or [])
        self._blocked_globals = set(blocked_globals or [])
        self._max_output_chars = max(1, int(max_output_kb)) * 1024
        safe_import = safe_import_factory(
            mode, set(allowed_imports or []), set(blocked_imports or [])
        )
        self._builtins = build_safe_builtins(
            mode, set(allowed_builtins or []), set(blocked_builtins or []), safe_import
        )
        self._extra_globals = _filter_globals(
            extra_globals or {}, mode, self._allowed_globals, self._blocked_globals
        )

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SnippetSandbox":
        """Create a sandbox from a serialized policy payload.

        Example:
            ```python
            sandbox = SnippetSandbox.from_payload({"mode": "restrict"})
            ```
        """
        return cls(
            mode=str(payload.get("mode", "restrict")),
            allowed_imports=list(payload.get("allowed_imports", [])),
            blocked_imports=list(payload.get("blocked_imports", [])),
            allowed_builtins=list(payload.get("allowed_builtins", [])),
            blocked_builtins=list(payload.get("blocked_builtins", [])),
            allowed_globals=list(payload.get("allowed_globals", [])),
            blocked_globals=list(payload.get("blocked_globals", [])),
            extra_globals=dict(payload.get("extra_globals", {}) or {}),
            max_output_kb=int(payload.get("max_output_kb", 128)),
        )

    def execute(self, code: str, inputs: dict[str, Any]) -> ExecutionResult:
        """Evaluate a snippet and convert every outcome into a result.

        Example:
            ```python
            result = sandbox.execute("console.log('hi')\\nreturn 1", {})
            ```
        """
        console = ConsoleRecorder()
        try:
            entrypoint = self._compile(code, console, inputs)
            value = entrypoint(console, inputs)
        except SystemExit as exc:
            if exc.code in (None, 0):
                return ExecutionResult(success=True, output=self._output(console))
            return ExecutionResult.failure(f"SystemExit: {exc.code}", self._output(console))
        except Exception as exc:
            return ExecutionResult.failure(
                f"{type(exc).__name__}: {exc}", self._output(console)
            )
        return ExecutionResult(
            success=True,
            output=self._output(console),
            return_value=serialize_return_value(value),
        )

    def _compile(
        self, code: str, console: ConsoleRecorder, inputs: dict[str, Any]
    ) -> Callable[[ConsoleRecorder, dict[str, Any]], Any]:
        """Compile the snippet as the body of ``__snippet__(console, inputs)``.

        Example:
            ```python
            fn = sandbox._compile("return 2", console, {})
            ```
        """
        tree = compile_snippet(code)
        snippet_builtins = dict(self._builtins)
        snippet_builtins["print"] = console.print
        namespace: dict[str, Any] = {"__builtins__": snippet_builtins, "__name__": _ENTRYPOINT}
        namespace.update(self._extra_globals)
        for key, value in _filter_globals(
            inputs, self._mode, self._allowed_globals, self._blocked_globals
        ).items():
            namespace.setdefault(key, value)
        exec(compile(tree, SNIPPET_FILENAME, "exec"), namespace)
        return namespace[_ENTRYPOINT]

    def _output(self, console: ConsoleRecorder) -> str | None:
        """Return captured output truncated to the policy limit.

        Example:
            ```python
            text = sandbox._output(console)
            ```
        """
        text = console.text()
        if text is None:
            return None
        return text[: self._max_output_chars]


def compile_snippet(code: str) -> ast.Module:
    """Graft snippet statements into the entrypoint function, keeping line numbers.

    Example:
        ```python
        tree = compile_snippet("x = 1\\nreturn x")
        ```
    """
    body = ast.parse(code, filename=SNIPPET_FILENAME, mode="exec").body
    tree = ast.parse(_TEMPLATE, filename=SNIPPET_FILENAME, mode="exec")
    entrypoint = cast(ast.FunctionDef, tree.body[0])
    if body:
        entrypoint.body = body
    return ast.fix_missing_locations(tree)


def serialize_return_value(value: Any) -> Any:
    """JSON round-trip a return value, falling back to its string form.

    Example:
        ```python
        serialize_return_value({"total": 3})
        ```
    """
    if value is None:
        return None
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError, RecursionError):
        return str(value)
