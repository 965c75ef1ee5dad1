"""
BaseCommand — abstract base class for all gup sub-commands.

Provides:
  - Rotating file logger (~/.gup/logs/gup.log) + stderr handler
  - Abstract run() method returning a process exit code
  - execute(): timing, and translation of known failures into a one-line
    message and exit status 1

Subclass usage:
    class Hello(BaseCommand):
        name = "hello"
        help = "Say hello"

        @classmethod
        def add_arguments(cls, parser):
            parser.add_argument("who")

        def run(self, args) -> int:
            self.console.print(f"hello {args.who}")
            return 0
"""
from __future__ import annotations

import argparse
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from googleapiclient.errors import HttpError
from rich.console import Console
from rich.markup import escape

from .config import Config
from .drive_client import DriveClient
from .errors import AuthError, ConfigError, GupError, NotAuthenticatedError
from .google_factory import GoogleServiceFactory
from .session import Session

LOGS_DIR = Path("~/.gup/logs").expanduser()
LOGGER_NAME = "gup"


# ── Logging ───────────────────────────────────────────────────────────────────

def setup_logging(level: int = logging.WARNING, logs_dir: Optional[Path] = None) -> logging.Logger:
    """
    Configure the package logger to write to both:
      - <logs_dir>/gup.log  (rotating, max 2 MB × 5 backups, always DEBUG)
      - stderr              (at `level`)
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Avoid adding duplicate handlers when main() runs more than once
    if logger.handlers:
        for handler in logger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, RotatingFileHandler
            ):
                handler.setLevel(level)
        return logger

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)-8s] %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    target_dir = logs_dir or LOGS_DIR
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            target_dir / "gup.log",
            maxBytes=2_000_000,   # 2 MB per file
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)
    except OSError:
        # Read-only home directory: keep going with stderr only
        pass

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logger.addHandler(stream_handler)
    return logger


# ── Shared state handed to every command ──────────────────────────────────────

@dataclass
class CommandContext:
    """Everything a command needs, built once by the CLI entry point."""

    config: Config
    session: Session
    console: Console = field(default_factory=Console)
    err_console: Console = field(default_factory=lambda: Console(stderr=True))

    _drive: Optional[DriveClient] = field(default=None, repr=False)

    @property
    def drive(self) -> DriveClient:
        """DriveClient bound to this session (built on first use)."""
        if self._drive is None:
            self._drive = DriveClient(
                GoogleServiceFactory(self.session),
                default_folder_id=self.config.default_folder_id,
            )
        return self._drive


# ── Command base ──────────────────────────────────────────────────────────────

class BaseCommand(ABC):
    """Abstract base for all gup sub-commands."""

    name: str = ""
    aliases: tuple[str, ...] = ()
    help: str = ""

    def __init__(self, ctx: CommandContext) -> None:
        self.ctx = ctx
        self.console = ctx.console
        self.logger: logging.Logger = logging.getLogger(f"{LOGGER_NAME}.cmd.{self.name}")

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        """Register command-specific arguments. Default: none."""

    @abstractmethod
    def run(self, args: argparse.Namespace) -> int:
        """Execute the command and return the process exit code."""

    def fail(self, message: str) -> int:
        self.ctx.err_console.print(f"[bold red]✖[/] {escape(message)}")
        return 1

    def execute(self, args: argparse.Namespace) -> int:
        """Run with timing; known failures become a message and exit code 1."""
        t0 = time.monotonic()
        try:
            code = self.run(args)
        except NotAuthenticatedError as e:
            self.logger.warning("%s", e)
            return self.fail(str(e))
        except AuthError as e:
            self.logger.error("Authentication failed: %s", e)
            return self.fail(f"Authentication failed: {e}")
        except ConfigError as e:
            self.logger.error("Configuration error: %s", e)
            return self.fail(f"Configuration error: {e}")
        except HttpError as e:
            self.logger.error("Drive API error: %s", e)
            return self.fail(f"Drive API error ({e.resp.status}): {_http_reason(e)}")
        except (GupError, OSError, ValueError) as e:
            self.logger.error("%s failed: %s", self.name, e)
            return self.fail(str(e))
        except Exception:
            self.logger.exception("%s crashed after %.2fs", self.name, time.monotonic() - t0)
            raise
        self.logger.debug("%s completed in %.2fs", self.name, time.monotonic() - t0)
        return code


def _http_reason(e: HttpError) -> str:
    reason = getattr(e, "reason", "") or ""
    return reason or str(e)
