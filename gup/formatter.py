"""
Terminal formatting for Drive listings.

format_file_list() returns a rich renderable; print it with a Console.
files_to_json() is the machine-readable alternative used by --json.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable, Optional

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.text import Text

from .models import GOOGLE_APPS_PREFIX, DriveFile

_UNITS = ["B", "KB", "MB", "GB", "TB"]

FOLDER_ICON = "📁"
FILE_ICON = "📄"


def format_size(num_bytes: Optional[int]) -> str:
    """1536 → '1.50 KB'. Zero or unknown sizes render as '0 B'."""
    if not num_bytes:
        return "0 B"
    size = float(num_bytes)
    i = 0
    while size >= 1024 and i < len(_UNITS) - 1:
        size /= 1024
        i += 1
    return f"{size:.2f} {_UNITS[i]}"


def format_date(value: Optional[datetime]) -> str:
    """Local-time rendering of an API timestamp; '' when absent."""
    if value is None:
        return ""
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def format_file_type(mime_type: str) -> str:
    """Short human label for a MIME type ('Folder', 'Document', 'Image', 'pdf', …)."""
    if mime_type == GOOGLE_APPS_PREFIX + "folder":
        return "Folder"
    if mime_type.startswith(GOOGLE_APPS_PREFIX):
        kind = mime_type[len(GOOGLE_APPS_PREFIX):]
        return kind[:1].upper() + kind[1:]
    for prefix, label in (("image/", "Image"), ("video/", "Video"), ("audio/", "Audio")):
        if mime_type.startswith(prefix):
            return label
    _, _, subtype = mime_type.partition("/")
    return subtype or mime_type


def _name(f: DriveFile) -> Text:
    icon = FOLDER_ICON if f.is_folder else FILE_ICON
    return Text.assemble(f"{icon} ", (f.name, "bold blue" if f.is_folder else ""))


def format_file_list(files: Iterable[DriveFile], verbose: bool = False) -> RenderableType:
    """One line per file, or one bordered panel per file when verbose."""
    files = list(files)
    if not verbose:
        return Group(*(_name(f) for f in files))

    panels = []
    for f in files:
        body = Text()
        body.append_text(_name(f))
        body.append(f"\nID: {f.file_id}", style="dim")
        body.append("\n")
        body.append(format_file_type(f.mime_type), style="yellow")
        if f.size_bytes:
            body.append(f"   {format_size(f.size_bytes)}")
        body.append(f"\nModified: {format_date(f.modified_time)}")
        if f.shared:
            body.append("   Shared", style="green")
        if f.owner:
            body.append(f"\nOwner: {f.owner}", style="dim")
        panels.append(Panel(body, border_style="blue" if f.is_folder else "white", expand=False))
    return Group(*panels)


def files_to_json(files: Iterable[DriveFile]) -> str:
    return json.dumps([f.to_dict() for f in files], indent=2, ensure_ascii=False)
