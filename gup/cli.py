"""
gup — upload, browse and share Google Drive files from the terminal.

Usage:
    gup auth                      # sign in through the browser
    gup upload report.pdf -f <folder-id>
    gup ls -v
    gup search budget --type spreadsheet --json
    gup get <file-id> -o ~/Desktop
    gup share <file-id> --with someone@example.com --role writer
    gup config show

Logs are written to ~/.gup/logs/gup.log; pass --debug to also see them on
stderr.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Optional, Sequence

from rich.console import Console
from rich.markup import escape

from . import __version__
from .base import BaseCommand, CommandContext, setup_logging
from .commands import COMMANDS
from .config import Config
from .errors import ConfigError
from .session import Session

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gup",
        description="Upload, browse and share Google Drive files.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Log debug output to stderr.")

    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")
    for command_cls in COMMANDS:
        cmd_parser = sub.add_parser(
            command_cls.name,
            aliases=list(command_cls.aliases),
            help=command_cls.help,
            description=command_cls.help,
        )
        command_cls.add_arguments(cmd_parser)
        cmd_parser.set_defaults(command_cls=command_cls)
    return parser


def auth_event_printer(console: Console):
    """Turn authorization-flow events into terminal output."""

    def on_event(event: str, payload: dict[str, Any]) -> None:
        if event == "auth_url":
            console.print("Open this URL to authorize gup:")
            console.print(escape(payload["url"]), style="cyan", soft_wrap=True)
        elif event == "browser_failed":
            console.print("[yellow]![/] Could not open a browser; copy the URL above.")
        elif event == "waiting":
            console.print(f"Waiting for authorization on port {payload['port']}…", style="dim")
        elif event == "token_saved":
            console.print(f"[green]✔[/] Token saved to {escape(payload['path'])}")

    return on_event


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    console = Console()
    err_console = Console(stderr=True)

    try:
        config = Config.load()
    except ConfigError as e:
        setup_logging(logging.DEBUG if args.debug else logging.WARNING)
        err_console.print(f"[bold red]✖[/] {escape(str(e))}")
        return 1

    level = logging.DEBUG if (args.debug or config.verbose) else logging.WARNING
    setup_logging(level)
    logger.debug("gup %s: %s", __version__, " ".join(sys.argv[1:]) if argv is None else argv)

    session = Session(config, on_event=auth_event_printer(console))
    ctx = CommandContext(config=config, session=session, console=console, err_console=err_console)

    command: BaseCommand = args.command_cls(ctx)
    try:
        return command.execute(args)
    except KeyboardInterrupt:
        err_console.print("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
