"""
gup sub-commands. Each class is registered by cli.build_parser().
"""
from __future__ import annotations

import argparse
from pathlib import Path

from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from .base import BaseCommand
from .drive_client import FILE_TYPE_FILTERS, SHARE_ROLES
from .errors import FileNotFoundOnDriveError
from .formatter import files_to_json, format_date, format_file_list, format_size
from .session import DEFAULT_AUTH_TIMEOUT


# ── Authentication ────────────────────────────────────────────────────────────

class AuthCommand(BaseCommand):
    name = "auth"
    help = "Authenticate with Google Drive"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--force", action="store_true",
                            help="Re-authorize even if a valid token is stored.")
        parser.add_argument("--timeout", type=float, default=DEFAULT_AUTH_TIMEOUT,
                            metavar="SECONDS",
                            help="Give up waiting for the browser after this long.")

    def run(self, args: argparse.Namespace) -> int:
        record = self.ctx.session.authenticate(force=args.force, timeout=args.timeout)
        self.console.print("[green]✔[/] Authenticated with Google Drive")
        if record.expiry is not None:
            self.console.print(f"  Access token valid until {format_date(record.expiry)}",
                               style="dim")
        return 0


class LogoutCommand(BaseCommand):
    name = "logout"
    help = "Remove the stored token"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--revoke", action="store_true",
                            help="Also revoke the token at Google.")

    def run(self, args: argparse.Namespace) -> int:
        session = self.ctx.session
        if args.revoke:
            had_token = session.is_authenticated()
            revoked = session.revoke()
            if revoked:
                self.console.print("[green]✔[/] Token revoked and removed")
            elif had_token:
                self.console.print("[yellow]![/] Could not revoke at Google; local token removed")
            else:
                self.console.print("Not logged in")
            return 0

        if session.logout():
            self.console.print("[green]✔[/] Logged out")
        else:
            self.console.print("Not logged in")
        return 0


class StatusCommand(BaseCommand):
    name = "status"
    help = "Show whether a token is stored and when it expires"

    def run(self, args: argparse.Namespace) -> int:
        session = self.ctx.session
        record = session.status()
        if record is None:
            if session.is_authenticated():
                self.console.print(f"[red]✖[/] Token file {escape(str(session.store.path))} is unreadable. "
                                   "Run 'gup auth' to replace it.")
            else:
                self.console.print("Not authenticated. Run 'gup auth' first.")
            return 1

        lines = Text()
        lines.append(f"Token file: {session.store.path}\n")
        if record.expiry is None:
            lines.append("Access token: no expiry recorded\n", style="yellow")
        elif record.is_expired():
            lines.append(f"Access token: expired {format_date(record.expiry)}\n", style="yellow")
        else:
            minutes = record.expires_in_seconds() // 60
            lines.append(f"Access token: valid for {minutes} min "
                         f"(until {format_date(record.expiry)})\n", style="green")
        lines.append("Refresh token: " + ("present" if record.refresh_token else "missing"))
        if record.scope:
            lines.append("\nScopes: " + ", ".join(sorted(record.scopes)), style="dim")
        self.console.print(Panel(lines, title="gup auth status", expand=False))
        return 0


# ── Upload ────────────────────────────────────────────────────────────────────

class UploadCommand(BaseCommand):
    name = "upload"
    aliases = ("up",)
    help = "Upload files to Google Drive"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("files", nargs="+", metavar="FILE")
        parser.add_argument("-f", "--folder", metavar="FOLDER_ID",
                            help="Destination folder (default: configured folder).")
        parser.add_argument("-n", "--name",
                            help="Name on Drive (only with a single file).")

    def run(self, args: argparse.Namespace) -> int:
        if args.name and len(args.files) > 1:
            raise ValueError("--name can only be used when uploading a single file")

        drive = self.ctx.drive
        failures = 0
        for path in map(Path, args.files):
            try:
                with self.console.status(f"Uploading {path.name}…"):
                    file_id = drive.upload_file(path, folder_id=args.folder, name=args.name)
            except FileNotFoundError as e:
                self.ctx.err_console.print(f"[red]✖[/] {escape(str(e))}")
                failures += 1
                continue
            self.console.print(f"[green]✔[/] {escape(path.name)}  [dim]{file_id}[/]")
            self.console.print(f"  {drive.get_web_link(file_id)}", style="dim")
        return 1 if failures else 0


class DirectoryCommand(BaseCommand):
    name = "directory"
    aliases = ("d",)
    help = "Upload a directory to Google Drive"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("directory", metavar="DIR")
        parser.add_argument("-f", "--folder", metavar="FOLDER_ID",
                            help="Parent folder (default: configured folder).")
        parser.add_argument("-n", "--name", help="Folder name on Drive.")
        parser.add_argument("--no-recursive", dest="recursive", action="store_false",
                            help="Skip subdirectories.")

    def run(self, args: argparse.Namespace) -> int:
        count = 0

        with self.console.status("Uploading…") as status:
            def on_file(path: Path) -> None:
                nonlocal count
                count += 1
                status.update(f"Uploading {path.name} ({count})…")

            folder_id = self.ctx.drive.upload_directory(
                args.directory,
                parent_id=args.folder,
                name=args.name,
                recursive=args.recursive,
                on_file=on_file,
            )
        self.console.print(f"[green]✔[/] Uploaded {count} file(s)  [dim]{folder_id}[/]")
        return 0


# ── Browse ────────────────────────────────────────────────────────────────────

def _add_listing_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-t", "--type", dest="file_type", choices=sorted(FILE_TYPE_FILTERS),
                        help="Only show files of this type.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show file details.")
    parser.add_argument("--json", action="store_true", help="Print JSON instead.")


class ListCommand(BaseCommand):
    name = "list"
    aliases = ("ls",)
    help = "List files in a folder"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("folder", nargs="?", metavar="FOLDER_ID")
        _add_listing_arguments(parser)

    def run(self, args: argparse.Namespace) -> int:
        with self.console.status("Fetching files…"):
            files = self.ctx.drive.list_files(args.folder, file_type=args.file_type)
        if args.json:
            self.console.print_json(files_to_json(files))
        elif not files:
            self.console.print("No files found")
        else:
            self.console.print(format_file_list(files, verbose=args.verbose or self.ctx.config.verbose))
        return 0


class SearchCommand(BaseCommand):
    name = "search"
    aliases = ("s",)
    help = "Search files by name"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("query")
        _add_listing_arguments(parser)

    def run(self, args: argparse.Namespace) -> int:
        with self.console.status(f"Searching for '{args.query}'…"):
            files = self.ctx.drive.search_files(args.query, file_type=args.file_type)
        if args.json:
            self.console.print_json(files_to_json(files))
        elif not files:
            self.console.print(f"No files matching '{escape(args.query)}'")
        else:
            self.console.print(f"Found {len(files)} file(s)", style="dim")
            self.console.print(format_file_list(files, verbose=args.verbose or self.ctx.config.verbose))
        return 0


# ── Download / share / remove ─────────────────────────────────────────────────

def local_path(out_dir: Path, name: str) -> Path:
    """
    Where a download named `name` is saved inside `out_dir`.

    Drive names are chosen by the file's owner, so path separators are
    flattened and the result must stay directly inside `out_dir`.
    """
    cleaned = name.replace("/", "_").replace("\\", "_").strip()
    if cleaned in ("", ".", ".."):
        raise ValueError(f"Cannot save a file named {name!r}")
    dest = out_dir / cleaned
    if dest.resolve().parent != out_dir.resolve():
        raise ValueError(f"Refusing to save {name!r} outside {out_dir}")
    return dest


class GetCommand(BaseCommand):
    name = "get"
    aliases = ("g",)
    help = "Download a file"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("file_id", metavar="FILE_ID")
        parser.add_argument("-o", "--output", metavar="DIR",
                            help="Directory to save into (default: configured download location).")
        parser.add_argument("-n", "--name", help="Local file name.")

    def run(self, args: argparse.Namespace) -> int:
        drive = self.ctx.drive
        info = drive.get_file_info(args.file_id)
        if info is None:
            raise FileNotFoundOnDriveError(args.file_id)

        out_dir = Path(args.output or self.ctx.config.default_download_location).expanduser()
        dest = local_path(out_dir, args.name or info.name)
        with self.console.status(f"Downloading {info.name}…"):
            written = drive.download_file(args.file_id, dest, info=info)
        size = written.stat().st_size if written.exists() else 0
        self.console.print(f"[green]✔[/] Saved {escape(str(written))} ({format_size(size)})")
        return 0


class ShareCommand(BaseCommand):
    name = "share"
    help = "Share a file with someone"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("file_id", metavar="FILE_ID")
        parser.add_argument("--with", dest="email", required=True, metavar="EMAIL")
        parser.add_argument("--role", choices=SHARE_ROLES, default="reader")
        parser.add_argument("--message", help="Text included in the notification email.")
        parser.add_argument("--no-notify", dest="notify", action="store_false",
                            help="Do not send a notification email.")

    def run(self, args: argparse.Namespace) -> int:
        drive = self.ctx.drive
        with self.console.status(f"Sharing with {args.email}…"):
            drive.share_file(args.file_id, args.email, role=args.role,
                             notify=args.notify, message=args.message)
        self.console.print(f"[green]✔[/] Shared with {args.email} as {args.role}")
        self.console.print(f"  {drive.get_web_link(args.file_id)}", style="dim")
        return 0


class RemoveCommand(BaseCommand):
    name = "remove"
    aliases = ("rm",)
    help = "Permanently delete a file"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("file_id", metavar="FILE_ID")
        parser.add_argument("-f", "--force", action="store_true", help="Skip confirmation.")

    def run(self, args: argparse.Namespace) -> int:
        drive = self.ctx.drive
        info = drive.get_file_info(args.file_id)
        if info is None:
            raise FileNotFoundOnDriveError(args.file_id)

        if not args.force:
            kind = "folder" if info.is_folder else "file"
            answer = self.console.input(
                f'Permanently delete {kind} "{escape(info.name)}"? This cannot be undone. (y/N) '
            )
            if answer.strip().lower() not in ("y", "yes"):
                self.console.print("Cancelled")
                return 0

        drive.delete_file(args.file_id)
        self.console.print(f'[green]✔[/] Deleted "{escape(info.name)}"')
        return 0


# ── Configuration ─────────────────────────────────────────────────────────────

class ConfigCommand(BaseCommand):
    name = "config"
    help = "Manage gup configuration"

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        actions = parser.add_subparsers(dest="action", required=True)
        actions.add_parser("init", help="Set the OAuth client ID and secret")
        actions.add_parser("show", help="Print the current configuration")
        set_folder = actions.add_parser("set-folder", help="Set the default Drive folder")
        set_folder.add_argument("folder_id", nargs="?", metavar="FOLDER_ID")
        set_folder.add_argument("--temp", action="store_true",
                                help="Only for this run; do not save.")
        actions.add_parser("clear-folder", help="Forget the default Drive folder")

    def run(self, args: argparse.Namespace) -> int:
        return getattr(self, "_" + args.action.replace("-", "_"))(args)

    def _init(self, args: argparse.Namespace) -> int:
        cfg = self.ctx.config
        self.console.print("Create an OAuth client of type [bold]Desktop app[/] in the "
                           "Google Cloud console and paste its credentials below.")
        client_id = self.console.input(f"Client ID ({escape(cfg.client_id) or 'not set'}): ").strip()
        client_secret = self.console.input("Client secret: ", password=True).strip()
        if client_id:
            cfg.set("client_id", client_id, persistent=False)
        if client_secret:
            cfg.set("client_secret", client_secret, persistent=False)
        cfg.require_client()
        cfg.persist("client_id", "client_secret")
        self.console.print(f"[green]✔[/] Saved to {escape(str(cfg.path))}. Run 'gup auth' next.")
        return 0

    def _show(self, args: argparse.Namespace) -> int:
        cfg = self.ctx.config
        body = Text()
        for key, value in cfg.as_dict().items():
            body.append(f"{key}: ", style="bold")
            body.append(f"{value if value not in ('', None) else '(not set)'}\n")
        body.append(f"config file: {cfg.path}", style="dim")
        self.console.print(Panel(body, title="gup config", expand=False))
        return 0

    def _set_folder(self, args: argparse.Namespace) -> int:
        folder_id = args.folder_id or self.console.input("Folder ID: ").strip()
        if not folder_id:
            raise ValueError("A folder ID is required")

        info = self.ctx.drive.get_file_info(folder_id)
        if info is None:
            raise FileNotFoundOnDriveError(folder_id)
        if not info.is_folder:
            raise ValueError(f'"{info.name}" is not a folder')

        self.ctx.config.set("default_folder_id", folder_id, persistent=not args.temp)
        scope = "for this run" if args.temp else "saved"
        self.console.print(f'[green]✔[/] Default folder set to "{escape(info.name)}" ({scope})')
        return 0

    def _clear_folder(self, args: argparse.Namespace) -> int:
        self.ctx.config.set("default_folder_id", "", persistent=True)
        self.console.print("[green]✔[/] Default folder cleared")
        return 0


COMMANDS: list[type[BaseCommand]] = [
    AuthCommand,
    LogoutCommand,
    StatusCommand,
    UploadCommand,
    DirectoryCommand,
    ListCommand,
    SearchCommand,
    GetCommand,
    ShareCommand,
    RemoveCommand,
    ConfigCommand,
]
