from snippet_runner.shim import UNSERIALIZABLE_PLACEHOLDER, ConsoleRecorder, format_args
from snippet_runner.snippet import SnippetSandbox


def test_multiple_arguments_join_with_single_space() -> None:
    assert format_args(("total:", 3, True, None)) == "total: 3 True None"


def test_objects_are_deep_stringified() -> None:
    line = format_args(("row", {"id": 1, "tags": ["a"]}))
    assert line.startswith("row {\n")
    assert '"tags": [\n' in line


def test_circular_object_falls_back_to_placeholder() -> None:
    loop: list = []
    loop.append(loop)
    assert format_args((loop,)) == UNSERIALIZABLE_PLACEHOLDER


def test_levels_are_prefixed_in_call_order() -> None:
    console = ConsoleRecorder()
    console.log("a")
    console.info("b")
    console.warn("c")
    console.error("d")
    console.debug("e")

    assert console.text() == "a\n[INFO] b\n[WARN] c\n[ERROR] d\n[DEBUG] e"


def test_clear_empties_buffer_and_text_is_none() -> None:
    console = ConsoleRecorder()
    console.log("gone")
    console.clear()
    assert console.lines == []
    assert console.text() is None


def test_table_dir_and_assert() -> None:
    console = ConsoleRecorder()
    console.table([{"id": 1}])
    console.table({1, 2})
    console.dir({"a": 1})
    console.assert_(True, "never shown")
    console.assert_(False)
    console.assert_(0, "empty rows")

    lines = console.lines
    assert lines[0] == '[\n  {\n    "id": 1\n  }\n]'
    assert lines[1].startswith("[table] ")
    assert lines[2] == '{\n  "a": 1\n}'
    assert lines[3:] == ["[ASSERT FAILED] Assertion failed", "[ASSERT FAILED] empty rows"]


def test_print_honours_separator_and_noops_record_nothing() -> None:
    console = ConsoleRecorder()
    console.print("a", "b", sep=", ")
    console.time("load")
    console.time_end("load")
    console.group()
    console.count()

    assert console.lines == ["a, b"]


def _deeply_nested(depth: int) -> list:
    value: list = []
    for _ in range(depth):
        value = [value]
    return value


def test_deeply_nested_arguments_fall_back_to_placeholder() -> None:
    console = ConsoleRecorder()
    nested = _deeply_nested(100000)
    console.log("x", nested)
    console.table(nested)
    console.dir(nested)
    assert console.lines == [
        f"x {UNSERIALIZABLE_PLACEHOLDER}",
        f"[table] {UNSERIALIZABLE_PLACEHOLDER}",
        UNSERIALIZABLE_PLACEHOLDER,
    ]


def test_deeply_nested_log_does_not_fail_the_snippet() -> None:
    sandbox = SnippetSandbox()
    code = "a = []\nfor _ in range(100000):\n    a = [a]\nconsole.log('x', a)\nreturn 1"
    result = sandbox.execute(code, {})
    assert result.success is True
    assert result.output == f"x {UNSERIALIZABLE_PLACEHOLDER}"
    assert result.return_value == 1
