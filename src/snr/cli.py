from __future__ import annotations

import argparse
import json
import logging
import sys
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table
from rich.text import Text
from rich_argparse import RawTextRichHelpFormatter
from snippet_runner import ExecutionResult, run_code
from snippet_runner.execution.capabilities import capabilities_for_evaluator
from snippet_runner.execution.languages import LANGUAGES

_CONSOLE = Console(no_color=False)


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="python -m snr")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {message}", border_style="red"))
        self.print_help()
        raise SystemExit(2)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for snippet evaluation.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="python -m snr",
        description=(
            "snippet-runner CLI\n"
            "Evaluate a code snippet in an isolated worker and show the structured result."
        ),
        epilog=(
            "Quick Examples:\n"
            "  python -m snr run report.py --inputs data.json\n"
            "  python -m snr run report.py --input 'products=[1, 2, 3]'\n"
            "  echo \"return 6 * 7\" | python -m snr run -\n"
            "  python -m snr run page.html --language html\n"
            "  python -m snr languages"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for engine diagnostics (default: WARNING).",
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    run_cmd = sub.add_parser(
        "run",
        help="Evaluate a snippet file (or - for stdin).",
        description=(
            "Evaluate a snippet and print its output, return value and errors.\n"
            "The snippet body may `return` a value and read `inputs`."
        ),
        epilog=(
            "Examples:\n"
            "  python -m snr run snippet.py --timeout-ms 2000\n"
            "  python -m snr run snippet.py --direct\n"
            "  python -m snr run snippet.py --output-mode markup"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument("source", help="Snippet file path, or - to read from stdin.")
    run_cmd.add_argument(
        "--language",
        default="python",
        help="Snippet language tag (default: python).",
    )
    run_cmd.add_argument(
        "--inputs",
        dest="inputs_file",
        help="JSON file holding the inputs object.",
    )
    run_cmd.add_argument(
        "--input",
        dest="input_pairs",
        action="append",
        default=[],
        metavar="KEY=JSON",
        help="Single input value; repeatable. Values that are not JSON are kept as text.",
    )
    run_cmd.add_argument(
        "--timeout-ms",
        type=int,
        help="Wall-clock timeout in milliseconds (default: policy timeout).",
    )
    run_cmd.add_argument(
        "--output-mode",
        choices=["console", "markup"],
        default="console",
        help="Preferred output mode (default: console).",
    )
    run_cmd.add_argument(
        "--direct",
        action="store_true",
        help="Evaluate in this process instead of an isolated worker.",
    )
    run_cmd.add_argument(
        "--policy-file",
        help="Path to a policy TOML file.",
    )
    run_cmd.add_argument(
        "--json",
        action="store_true",
        help="Print the raw result as JSON instead of panels.",
    )

    sub.add_parser(
        "languages",
        help="List language tags and how each is handled.",
        description="Show the language strategy table.",
        formatter_class=_HELP_FORMATTER,
    )

    return parser


def _read_source(source: str) -> str:
    """Return snippet text from a file path or stdin.

    Example:
        ```python
        code = _read_source("snippet.py")
        ```
    """
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def _parse_inputs(inputs_file: str | None, pairs: list[str]) -> dict[str, Any]:
    """Build the inputs object from a JSON file and KEY=JSON pairs.

    Example:
        ```python
        inputs = _parse_inputs(None, ["x=1", "name=ada"])
        ```
    """
    inputs: dict[str, Any] = {}
    if inputs_file:
        loaded = json.loads(Path(inputs_file).read_text(encoding="utf-8"))
        if not isinstance(loaded, dict):
            raise ValueError("--inputs file must contain a JSON object")
        inputs.update(loaded)
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"--input expects KEY=JSON, got {pair!r}")
        try:
            inputs[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            inputs[key.strip()] = raw
    return inputs


def _print_result(result: ExecutionResult, *, direct: bool) -> None:
    """Render one execution result as rich panels.

    Example:
        ```python
        _print_result(ExecutionResult(success=True, output="hi"), direct=False)
        ```
    """
    caps = capabilities_for_evaluator("direct" if direct else "isolated")
    status = "[bold green]success[/bold green]" if result.success else "[bold red]failed[/bold red]"
    isolation = "isolated" if caps.supports_isolation else "direct (no isolation)"
    mode = "  [bold blue]markup[/bold blue]" if result.markup_mode else ""
    _CONSOLE.print(
        Panel.fit(
            f"{status}{mode}  [dim]{isolation} - {result.executed_at}[/dim]",
            title="Result",
            border_style="green" if result.success else "red",
        )
    )
    if result.output is not None:
        _CONSOLE.print(Panel(Text(result.output), title="Output", border_style="cyan"))
    if result.return_value is not None:
        _CONSOLE.print(Panel(Pretty(result.return_value), title="Return Value", border_style="magenta"))
    if result.markup_output is not None and result.markup_output != result.output:
        _CONSOLE.print(Panel(Text(result.markup_output), title="Markup", border_style="blue"))
    if result.error:
        _CONSOLE.print(Panel(Text(result.error), title="Error", border_style="red"))


def _print_languages() -> None:
    """Render the language strategy table.

    Example:
        ```python
        _print_languages()
        ```
    """
    table = Table(title="Languages")
    table.add_column("Tag", style="cyan")
    table.add_column("Label", style="magenta")
    table.add_column("Handling")
    for spec in LANGUAGES.values():
        table.add_row(spec.tag, spec.label, spec.handling)
    _CONSOLE.print(table)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `snr` CLI command handler.

    Example:
        ```python
        code = main(["run", "snippet.py"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(name)s %(message)s")

    if args.command == "languages":
        _print_languages()
        return 0
    if args.command == "run":
        try:
            code = _read_source(args.source)
            inputs = _parse_inputs(args.inputs_file, args.input_pairs)
        except (OSError, ValueError) as exc:
            _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {exc}", border_style="red"))
            return 2
        try:
            result = run_code(
                code,
                args.language,
                inputs,
                args.timeout_ms,
                output_mode=args.output_mode,
                isolated=not args.direct,
                policy_file=args.policy_file,
            )
        except (OSError, ValueError, TypeError) as exc:
            _CONSOLE.print(Panel.fit(Text(f"Error: {exc}", style="bold red"), border_style="red"))
            return 2
        if args.json:
            _CONSOLE.print_json(json.dumps(result.to_dict(), default=str))
        else:
            _print_result(result, direct=args.direct)
        return 0 if result.success else 1

    parser.error("Unhandled command")
    return 2
