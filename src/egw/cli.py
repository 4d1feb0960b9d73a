from __future__ import annotations

import argparse
import logging
import sys
from functools import partial
from typing import Never, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich_argparse import RawTextRichHelpFormatter

from engine_gateway import ROUTES, EngineUnavailable, MatlabSessionProvider, load_settings, run
from engine_gateway.config import BACKENDS, LOG_LEVELS

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
        parser = _RichArgumentParser(prog="python -m egw")
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
    """Build CLI parser for running and inspecting the engine gateway.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="python -m egw",
        description=(
            "engine-gateway CLI\n"
            "Expose one long-lived engine session over HTTP.\n"
            "Requests are executed one at a time against the shared session."
        ),
        epilog=(
            "Quick Examples:\n"
            "  python -m egw serve\n"
            "  python -m egw serve --backend matlab --session-name gateway\n"
            "  python -m egw sessions\n"
            "  python -m egw routes"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    serve_cmd = sub.add_parser(
        "serve",
        help="Start the HTTP gateway.",
        description=(
            "Start the HTTP gateway in the foreground.\n"
            "Flags override ENGINE_GATEWAY_* variables, which override the config file."
        ),
        epilog=(
            "Examples:\n"
            "  python -m egw serve --port 8080\n"
            "  python -m egw serve --config gateway.toml --log-level DEBUG"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    serve_cmd.add_argument("--config", help="Path to a TOML file with a [gateway] table.")
    serve_cmd.add_argument("--host", help="Interface to bind (default: 127.0.0.1).")
    serve_cmd.add_argument("--port", type=int, help="Port to bind (default: 8080).")
    serve_cmd.add_argument(
        "--backend",
        choices=BACKENDS,
        help="Engine backend: in-process python or a shared MATLAB session.",
    )
    serve_cmd.add_argument(
        "--session-name",
        help="Shared MATLAB session to connect to (default: first one found).",
    )
    serve_cmd.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Log level (default: INFO).",
    )

    sub.add_parser(
        "sessions",
        help="List shared MATLAB sessions.",
        description=(
            "List shared MATLAB sessions visible to this host.\n"
            "Share one from MATLAB with matlab.engine.shareEngine('gateway')."
        ),
        formatter_class=_HELP_FORMATTER,
    )
    sub.add_parser(
        "routes",
        help="Show gateway endpoints.",
        description="Show each endpoint with its request and response fields.",
        formatter_class=_HELP_FORMATTER,
    )
    return parser


def _configure_logging(level: str) -> None:
    """Install a Rich log handler on the root logger.

    Example:
        ```python
        _configure_logging("DEBUG")
        ```
    """
    # Bind the real stderr now; eval output capture swaps sys.stderr later.
    handler = RichHandler(console=Console(file=sys.stderr), show_path=False, rich_tracebacks=True)
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler], force=True)


def _print_routes() -> None:
    table = Table(title="Gateway Routes")
    table.add_column("Endpoint", style="cyan")
    table.add_column("Request fields", style="magenta")
    table.add_column("Response fields")
    for route in ROUTES.values():
        table.add_row(route.path, ", ".join(route.request_fields), ", ".join(route.response_fields))
    _CONSOLE.print(table)


def _print_sessions(names: Sequence[str]) -> None:
    table = Table(title="Shared MATLAB Sessions")
    table.add_column("Name", style="cyan")
    for name in names:
        table.add_row(name)
    _CONSOLE.print(table)


def _serve(args: argparse.Namespace) -> int:
    try:
        settings = load_settings(args.config).with_overrides(
            host=args.host,
            port=args.port,
            backend=args.backend,
            session_name=args.session_name,
            log_level=args.log_level,
        )
    except (OSError, ValueError) as exc:
        _CONSOLE.print(Panel.fit(f"[bold red]Invalid configuration:[/bold red] {exc}", border_style="red"))
        return 2
    _configure_logging(settings.log_level)
    run(settings)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `egw` CLI command handler.

    Example:
        ```python
        code = main(["routes"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.command == "serve":
        return _serve(args)
    if args.command == "routes":
        _print_routes()
        return 0
    if args.command == "sessions":
        try:
            names = MatlabSessionProvider().list_sessions()
        except EngineUnavailable as exc:
            _CONSOLE.print(Panel.fit(str(exc), style="bold red"))
            return 1
        if not names:
            _CONSOLE.print(Panel.fit("No shared MATLAB sessions found.", style="bold yellow"))
            return 0
        _print_sessions(names)
        return 0

    parser.error("Unhandled command")
    return 2
