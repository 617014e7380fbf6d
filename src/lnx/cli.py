from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich_argparse import RawTextRichHelpFormatter
from learnix_lab import ExecutionBridge, LearnixSettings
from learnix_lab.diagnostics import extract_error_markers

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
        parser = _RichArgumentParser(prog="python -m lnx")
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

    def print_help(self, file: Any | None = None) -> None:
        """Render help text to the target stream.

        Example:
            ```python
            parser.print_help()
            ```
        """
        super().print_help(file=file)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for running lesson code and inspecting the sandbox.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="python -m lnx",
        description=(
            "Learnix lab CLI\n"
            "Run lesson code through the execution bridge.\n"
            "Language 'react' runs in the local page; every other language goes to the execution service."
        ),
        epilog=(
            "Quick Examples:\n"
            "  python -m lnx run hello.py --language python\n"
            "  python -m lnx run app.jsx --language react\n"
            "  python -m lnx run sum.py --language python --stdin '1 2'\n"
            "  python -m lnx libraries\n"
            "  python -m lnx markers error.log --language python\n\n"
            "Configuration:\n"
            "  python -m lnx --settings learnix.toml run main.go --language go\n"
            "  LEARNIX_API_URL=https://learnix.example/api python -m lnx run main.rs --language rust"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--settings",
        help=(
            "Path to a settings TOML file.\n"
            "Values may sit at the root or under a [learnix] table."
        ),
    )
    parser.add_argument(
        "--api-url",
        help="Base URL of the Learnix API (overrides settings and LEARNIX_API_URL).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log script provisioning and HTTP activity.",
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    run_cmd = sub.add_parser(
        "run",
        help="Execute a source file.",
        description=(
            "Execute a source file and show stdout and stderr.\n"
            "Exit status is 0 when the run produced no error output."
        ),
        epilog=(
            "Examples:\n"
            "  python -m lnx run main.py --language python --stdin-file input.txt\n"
            "  python -m lnx run counter.jsx --language react"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument("file", help="Source file to execute.")
    run_cmd.add_argument("--language", required=True, help="Language tag, e.g. python, react, go.")
    stdin_group = run_cmd.add_mutually_exclusive_group()
    stdin_group.add_argument("--stdin", default="", help="Text passed as standard input.")
    stdin_group.add_argument("--stdin-file", help="File whose content is passed as standard input.")

    sub.add_parser(
        "libraries",
        help="List modules the react sandbox can import.",
        description="Show the module allow-list with global bindings and CDN URLs.",
        formatter_class=_HELP_FORMATTER,
    )

    markers_cmd = sub.add_parser(
        "markers",
        help="Extract editor gutter markers from an error log.",
        description=(
            "Parse error output and print line/column markers.\n"
            "Formats without positions yield no markers."
        ),
        formatter_class=_HELP_FORMATTER,
    )
    markers_cmd.add_argument("file", help="File holding the error output.")
    markers_cmd.add_argument("--language", required=True, help="Language that produced the output.")

    return parser


def build_settings(args: argparse.Namespace) -> LearnixSettings:
    """Resolve settings from the settings file, environment and CLI flags.

    Example:
        ```python
        settings = build_settings(args)
        ```
    """
    settings = LearnixSettings.from_env(args.settings)
    if args.api_url:
        settings = replace(settings, api_url=args.api_url)
    return settings


def build_bridge(settings: LearnixSettings) -> ExecutionBridge:
    """Create the execution bridge used by `run`.

    Example:
        ```python
        bridge = build_bridge(LearnixSettings())
        ```
    """
    return ExecutionBridge(settings=settings)


async def _run_file(settings: LearnixSettings, language: str, code: str, stdin: str) -> Any:
    """Execute code with a bridge that is closed afterwards.

    Example:
        ```python
        result = asyncio.run(_run_file(settings, "python", "print(1)", ""))
        ```
    """
    bridge = build_bridge(settings)
    try:
        return await bridge.execute(language, code, stdin)
    finally:
        await bridge.aclose()


def _print_libraries(settings: LearnixSettings) -> None:
    """Render the module allow-list in a rich table.

    Example:
        ```python
        _print_libraries(LearnixSettings())
        ```
    """
    table = Table(title="Sandbox Modules")
    table.add_column("Module", style="cyan")
    table.add_column("Global", style="magenta")
    table.add_column("URL")
    table.add_row("react", "React", "provided by host page")
    table.add_row("react-dom", "ReactDOM", "provided by host page")
    for lib in settings.libraries.values():
        table.add_row(lib.name, lib.global_name, lib.url)
    _CONSOLE.print(table)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `lnx` CLI command handler.

    Example:
        ```python
        code = main(["libraries"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(message)s", handlers=[RichHandler(console=_CONSOLE)])
    try:
        settings = build_settings(args)
    except (OSError, ValueError) as exc:
        _CONSOLE.print(Panel.fit(f"Invalid settings: {exc}", style="bold red"))
        return 2

    if args.command == "libraries":
        _print_libraries(settings)
        return 0

    if args.command == "markers":
        log_file = Path(args.file)
        if not log_file.is_file():
            _CONSOLE.print(Panel.fit(f"No such file: {log_file}", style="bold red"))
            return 2
        text = log_file.read_text(encoding="utf-8")
        markers = extract_error_markers(text, args.language)
        if not markers:
            _CONSOLE.print(Panel.fit("No error positions found.", style="bold yellow"))
            return 0
        table = Table(title="Error Markers")
        table.add_column("Line", style="cyan")
        table.add_column("Column")
        table.add_column("Message")
        for marker in markers:
            table.add_row(str(marker.line), "" if marker.column is None else str(marker.column), marker.message)
        _CONSOLE.print(table)
        return 0

    if args.command == "run":
        source = Path(args.file)
        if not source.is_file():
            _CONSOLE.print(Panel.fit(f"No such file: {source}", style="bold red"))
            return 2
        stdin = Path(args.stdin_file).read_text(encoding="utf-8") if args.stdin_file else args.stdin
        result = asyncio.run(_run_file(settings, args.language, source.read_text(encoding="utf-8"), stdin))
        if result.stdout:
            _CONSOLE.print(Panel(result.stdout.rstrip("\n"), title="stdout", border_style="green"))
        if result.stderr:
            _CONSOLE.print(Panel(result.stderr.rstrip("\n"), title="stderr", border_style="red"))
        if result.component is not None:
            _CONSOLE.print(Panel.fit("Default export is a renderable component.", style="bold cyan"))
        if result.iframe_src is not None:
            _CONSOLE.print(Panel.fit(f"Preview available at {result.iframe_src}", style="bold cyan"))
        if not result.stdout and not result.stderr:
            _CONSOLE.print(Panel.fit("Run finished without output.", style="dim"))
        return 0 if result.ok else 1

    parser.error("Unhandled command")
    return 2


if __name__ == "__main__":
    sys.exit(main())
