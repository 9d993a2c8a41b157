from __future__ import annotations

import re
from dataclasses import replace

from .types import MARKUP_MODE, ExecutionResult, OutputClassification

_TAG_PATTERN = re.compile(r"</?[a-z][\s\S]*?>", re.IGNORECASE)


def contains_markup(text: str | None) -> bool:
    """Return True when text contains tag-like syntax.

    Example:
        ```python
        contains_markup("<div>hi</div>")
        ```
    """
    if not text or not isinstance(text, str):
        return False
    return _TAG_PATTERN.search(text) is not None


def classify_output(result: ExecutionResult, output_mode: str = "console") -> OutputClassification:
    """Promote markup-looking output of a successful result to ``markup_output``.

    Pure: returns a new result and never re-executes anything. Evaluators
    hand back only ``.result``; its ``markup_mode`` property carries the switch.

    Example:
        ```python
        classified = classify_output(ExecutionResult(success=True, output="<b>x</b>"))
        ```
    """
    markup_mode = output_mode == MARKUP_MODE
    if not result.success or not result.output:
        return OutputClassification(result=result, markup_mode=markup_mode)
    if not markup_mode and contains_markup(result.output):
        markup_mode = True
        result = replace(result, markup_output=result.output)
    if markup_mode and result.markup_output is None:
        result = replace(result, markup_output=result.output)
    return OutputClassification(result=result, markup_mode=markup_mode)
