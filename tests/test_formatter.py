from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from rich.console import Console

from gup.formatter import (
    files_to_json,
    format_date,
    format_file_list,
    format_file_type,
    format_size,
)
from gup.models import FOLDER_MIME_TYPE, DriveFile


@pytest.mark.parametrize("size, expected", [
    (None, "0 B"),
    (0, "0 B"),
    (512, "512.00 B"),
    (1536, "1.50 KB"),
    (5 * 1024 ** 3, "5.00 GB"),
])
def test_format_size(size, expected) -> None:
    assert format_size(size) == expected


@pytest.mark.parametrize("mime, expected", [
    (FOLDER_MIME_TYPE, "Folder"),
    ("application/vnd.google-apps.spreadsheet", "Spreadsheet"),
    ("image/png", "Image"),
    ("video/mp4", "Video"),
    ("application/pdf", "pdf"),
])
def test_format_file_type(mime, expected) -> None:
    assert format_file_type(mime) == expected


def test_format_date_empty() -> None:
    assert format_date(None) == ""


def _render(renderable) -> str:
    console = Console(width=100, record=True, color_system=None)
    console.print(renderable)
    return console.export_text()


class TestFileList:
    files = [
        DriveFile("f1", "Reports", FOLDER_MIME_TYPE),
        DriveFile("x1", "q3.pdf", "application/pdf", size_bytes=2048, owner="Ada", shared=True,
                  modified_time=datetime(2024, 5, 1, tzinfo=timezone.utc)),
    ]

    def test_compact(self) -> None:
        out = _render(format_file_list(self.files))
        assert "📁 Reports" in out
        assert "📄 q3.pdf" in out
        assert "x1" not in out

    def test_verbose(self) -> None:
        out = _render(format_file_list(self.files, verbose=True))
        assert "ID: x1" in out
        assert "2.00 KB" in out
        assert "Owner: Ada" in out
        assert "Shared" in out

    def test_json(self) -> None:
        data = json.loads(files_to_json(self.files))
        assert [d["id"] for d in data] == ["f1", "x1"]
        assert data[0]["isFolder"] is True
