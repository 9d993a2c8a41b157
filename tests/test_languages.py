import pytest

from snippet_runner.execution.languages import (
    NATIVE,
    PASSTHROUGH,
    UNSUPPORTED,
    looks_like_document,
    precheck,
    resolve_language,
    validate_call,
)


@pytest.mark.parametrize(
    ("tag", "handling"),
    [
        ("python", NATIVE),
        ("PY", NATIVE),
        ("native", NATIVE),
        ("html", PASSTHROUGH),
        ("markup", PASSTHROUGH),
        ("javascript", UNSUPPORTED),
        ("ruby", UNSUPPORTED),
        ("", UNSUPPORTED),
    ],
)
def test_resolve_language(tag: str, handling: str) -> None:
    assert resolve_language(tag).handling == handling


def test_unsupported_language_is_rejected_before_anything_else() -> None:
    result = precheck("", "javascript")
    assert result is not None
    assert result.success is False
    assert result.error == "language not supported: JavaScript"


def test_blank_code_short_circuits() -> None:
    result = precheck("  \n\t ", "python")
    assert result is not None
    assert result.success is True
    assert result.output is None
    assert result.return_value is None


def test_markup_is_passed_through() -> None:
    page = "<!DOCTYPE html><html><body>hi</body></html>"
    result = precheck(page, "html")
    assert result is not None
    assert result.output == page
    assert result.markup_output == page

    fragment = precheck("<p>fragment</p>", "html")
    assert fragment is not None and fragment.markup_output == "<p>fragment</p>"


def test_complete_document_in_native_language_is_not_evaluated() -> None:
    page = "<html><body>static</body></html>"
    result = precheck(page, "python")
    assert result is not None
    assert result.markup_output == page


def test_regular_code_needs_evaluation() -> None:
    assert precheck("return 1", "python") is None


def test_looks_like_document() -> None:
    assert looks_like_document("  <!doctype html>")
    assert looks_like_document("<HTML lang='en'>")
    assert looks_like_document("<head></head><body></body>")
    assert not looks_like_document("<head></head>")
    assert not looks_like_document("<div>hi</div>")


def test_validate_call_rejects_misuse() -> None:
    with pytest.raises(TypeError):
        validate_call(None, 100)
    with pytest.raises(TypeError):
        validate_call("return 1", True)
    with pytest.raises(ValueError):
        validate_call("return 1", 0)
