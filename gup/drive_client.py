"""
DriveClient — typed, high-level wrapper around the Google Drive API v3 service.

Covers listing/searching, folder creation, file and directory upload,
download (with export of Google Docs/Sheets/Slides), sharing with a user,
and deletion.
"""
from __future__ import annotations

import io
import logging
import mimetypes
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload

from .errors import DriveError
from .google_factory import GoogleServiceFactory
from .models import FOLDER_MIME_TYPE, DriveFile

logger = logging.getLogger(__name__)

_FIELDS = "id,name,mimeType,size,createdTime,modifiedTime,webViewLink,owners(displayName),shared,parents"

# --type values accepted by list/search → Drive query clause
FILE_TYPE_FILTERS: dict[str, str] = {
    "folder": f"mimeType = '{FOLDER_MIME_TYPE}'",
    "document": "mimeType = 'application/vnd.google-apps.document'",
    "spreadsheet": "mimeType = 'application/vnd.google-apps.spreadsheet'",
    "presentation": "mimeType = 'application/vnd.google-apps.presentation'",
    "pdf": "mimeType = 'application/pdf'",
    "image": "mimeType contains 'image/'",
    "video": "mimeType contains 'video/'",
    "audio": "mimeType contains 'audio/'",
}

# Google Workspace type → (export MIME type, file extension)
EXPORT_FORMATS: dict[str, tuple[str, str]] = {
    "application/vnd.google-apps.document": (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document", ".docx"),
    "application/vnd.google-apps.spreadsheet": (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", ".xlsx"),
    "application/vnd.google-apps.presentation": (
        "application/vnd.openxmlformats-officedocument.presentationml.presentation", ".pptx"),
    "application/vnd.google-apps.drawing": ("image/png", ".png"),
}
_DEFAULT_EXPORT = ("application/pdf", ".pdf")

SHARE_ROLES = ("reader", "writer", "commenter")


def _escape(value: str) -> str:
    """Escape a literal for use inside a single-quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def type_filter(file_type: Optional[str]) -> Optional[str]:
    """Drive query clause for a --type value, or None when no filter is wanted."""
    if not file_type:
        return None
    try:
        return FILE_TYPE_FILTERS[file_type]
    except KeyError:
        raise ValueError(
            f"Unknown file type '{file_type}'. "
            f"Choose from: {', '.join(FILE_TYPE_FILTERS)}"
        ) from None


class DriveClient:
    """
    High-level Google Drive file and folder operations.

    Usage:
        factory = GoogleServiceFactory(session)
        drive   = DriveClient(factory, default_folder_id=config.default_folder_id)

        folder_id = drive.create_folder("Reports")
        file_id   = drive.upload_file(Path("report.pdf"), folder_id=folder_id)
        drive.share_file(file_id, "someone@example.com", role="writer")
    """

    def __init__(
        self, factory: GoogleServiceFactory, default_folder_id: Optional[str] = None
    ) -> None:
        self._factory = factory
        self.default_folder_id = default_folder_id or None

    @property
    def _svc(self) -> Any:
        return self._factory.drive

    # ── List / search ─────────────────────────────────────────────────────────

    def list_files(
        self, folder_id: Optional[str] = None, file_type: Optional[str] = None
    ) -> list[DriveFile]:
        """
        List the non-trashed children of a folder, ordered by name.

        Args:
            folder_id: Drive folder ID. Falls back to the default folder, then "root".
            file_type: One of FILE_TYPE_FILTERS' keys.
        """
        target = folder_id or self.default_folder_id or "root"
        clauses = [f"'{_escape(target)}' in parents", "trashed = false"]
        extra = type_filter(file_type)
        if extra:
            clauses.append(extra)
        return self._query(" and ".join(clauses), order_by="name")

    def search_files(self, query: str, file_type: Optional[str] = None) -> list[DriveFile]:
        """Find non-trashed files whose name contains `query`, newest first."""
        clauses = [f"name contains '{_escape(query)}'", "trashed = false"]
        extra = type_filter(file_type)
        if extra:
            clauses.append(extra)
        return self._query(" and ".join(clauses), order_by="modifiedTime desc")

    def _query(self, q: str, order_by: str, page_size: int = 100) -> list[DriveFile]:
        """Run a files.list query, following every page."""
        logger.debug("files.list q=%r orderBy=%s", q, order_by)
        files: list[DriveFile] = []
        page_token: Optional[str] = None
        while True:
            kwargs: dict = dict(
                q=q,
                orderBy=order_by,
                pageSize=page_size,
                fields=f"nextPageToken, files({_FIELDS})",
            )
            if page_token:
                kwargs["pageToken"] = page_token
            resp = self._svc.files().list(**kwargs).execute()
            files.extend(_parse_file(f) for f in resp.get("files", []))
            page_token = resp.get("nextPageToken")
            if not page_token:
                return files

    def get_file_info(self, file_id: str) -> Optional[DriveFile]:
        """Fetch metadata for a single Drive file, or None if it does not exist."""
        try:
            raw = self._svc.files().get(fileId=file_id, fields=_FIELDS).execute()
        except HttpError as e:
            if e.resp.status == 404:
                return None
            raise
        return _parse_file(raw)

    # ── Create folders ────────────────────────────────────────────────────────

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        """Create a Drive folder and return its file_id."""
        body: dict = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            body["parents"] = [parent_id]

        folder = self._svc.files().create(body=body, fields="id").execute()
        if not folder.get("id"):
            raise DriveError("Failed to create folder: no folder ID returned")
        logger.info("Created folder %s: %s", folder["id"], name)
        return folder["id"]

    # ── Upload ────────────────────────────────────────────────────────────────

    def upload_file(
        self,
        local_path: Path | str,
        folder_id: Optional[str] = None,
        name: Optional[str] = None,
        mime_type: Optional[str] = None,
        resumable: bool = True,
    ) -> str:
        """
        Upload a local file to Drive and return the Drive file_id.

        Args:
            local_path: Path to the file on disk.
            folder_id:  Drive folder to place the file in (default folder if None).
            name:       Name on Drive (defaults to the local file name).
            mime_type:  MIME type override (auto-detected from extension if None).
            resumable:  Use resumable upload (recommended for files > 5 MB).
        """
        local_path = Path(local_path)
        if not local_path.is_file():
            raise FileNotFoundError(f'File "{local_path}" does not exist')

        detected, _ = mimetypes.guess_type(str(local_path))
        effective_mime = mime_type or detected or "application/octet-stream"

        metadata: dict = {"name": name or local_path.name}
        target = folder_id or self.default_folder_id
        if target:
            metadata["parents"] = [target]

        media = MediaFileUpload(str(local_path), mimetype=effective_mime, resumable=resumable)
        file = self._svc.files().create(
            body=metadata, media_body=media, fields="id,name"
        ).execute()
        if not file.get("id"):
            raise DriveError("Failed to upload file: no file ID returned")
        logger.info("Uploaded %s → Drive file %s", local_path.name, file["id"])
        return file["id"]

    def upload_directory(
        self,
        dir_path: Path | str,
        parent_id: Optional[str] = None,
        name: Optional[str] = None,
        recursive: bool = True,
        on_file: Optional[Callable[[Path], None]] = None,
    ) -> str:
        """
        Mirror a local directory into a new Drive folder and return its ID.

        Subdirectories are uploaded only when `recursive` is set. `on_file`
        is called with each local file just before it is uploaded.
        """
        dir_path = Path(dir_path)
        if not dir_path.exists():
            raise FileNotFoundError(f'Directory "{dir_path}" does not exist')
        if not dir_path.is_dir():
            raise NotADirectoryError(f'"{dir_path}" is not a directory')

        folder_id = self.create_folder(
            name or dir_path.resolve().name,
            parent_id=parent_id or self.default_folder_id,
        )

        for entry in sorted(dir_path.iterdir()):
            if entry.is_dir():
                if recursive:
                    self.upload_directory(entry, parent_id=folder_id, recursive=True, on_file=on_file)
            elif entry.is_file():
                if on_file is not None:
                    on_file(entry)
                self.upload_file(entry, folder_id=folder_id)
        return folder_id

    # ── Download ──────────────────────────────────────────────────────────────

    def download_file(
        self, file_id: str, dest_path: Path | str, info: Optional[DriveFile] = None
    ) -> Path:
        """
        Download a Drive file to a local path and return the path written.

        Google Workspace files cannot be downloaded as-is; they are exported
        (Docs → .docx, Sheets → .xlsx, Slides → .pptx, other → .pdf) and the
        matching extension is appended when missing.
        """
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        if info is not None and info.is_folder:
            raise IsADirectoryError(f'"{info.name}" is a folder and cannot be downloaded')

        if info is not None and info.is_google_doc:
            export_mime, ext = EXPORT_FORMATS.get(info.mime_type, _DEFAULT_EXPORT)
            if dest_path.suffix.lower() != ext:
                dest_path = dest_path.with_name(dest_path.name + ext)
            request = self._svc.files().export_media(fileId=file_id, mimeType=export_mime)
        else:
            request = self._svc.files().get_media(fileId=file_id)

        # Chunks land in a .part file; dest_path only appears once complete
        part_path = dest_path.with_name(dest_path.name + ".part")
        try:
            with io.FileIO(str(part_path), "wb") as fh:
                downloader = MediaIoBaseDownload(fh, request)
                done = False
                while not done:
                    status, done = downloader.next_chunk()
                    if status:
                        logger.debug("Download %s: %d%%", file_id, int(status.progress() * 100))
        except BaseException:
            part_path.unlink(missing_ok=True)
            raise
        os.replace(part_path, dest_path)
        logger.info("Downloaded Drive file %s → %s", file_id, dest_path)
        return dest_path

    # ── Sharing ───────────────────────────────────────────────────────────────

    def share_file(
        self,
        file_id: str,
        email: str,
        role: str = "reader",
        notify: bool = True,
        message: Optional[str] = None,
    ) -> None:
        """Grant a specific user access by email."""
        if role not in SHARE_ROLES:
            raise ValueError(f"Role must be one of: {', '.join(SHARE_ROLES)}")

        kwargs: dict = dict(
            fileId=file_id,
            body={"type": "user", "role": role, "emailAddress": email},
            sendNotificationEmail=notify,
        )
        if message and notify:
            kwargs["emailMessage"] = message
        self._svc.permissions().create(**kwargs).execute()
        logger.info("Shared %s with %s (role=%s)", file_id, email, role)

    def get_web_link(self, file_id: str) -> str:
        """Return the shareable web view URL for a Drive file."""
        return f"https://drive.google.com/file/d/{file_id}/view"

    # ── Delete ────────────────────────────────────────────────────────────────

    def delete_file(self, file_id: str) -> None:
        """Permanently delete a file. Irreversible — use with caution."""
        self._svc.files().delete(fileId=file_id).execute()
        logger.info("Permanently deleted Drive file %s", file_id)


# ── File parser (module-level) ────────────────────────────────────────────────

def _parse_file(raw: dict) -> DriveFile:
    def _dt(s: Optional[str]) -> Optional[datetime]:
        return datetime.fromisoformat(s.replace("Z", "+00:00")) if s else None

    owners = raw.get("owners") or []
    return DriveFile(
        file_id=raw["id"],
        name=raw.get("name", ""),
        mime_type=raw.get("mimeType", ""),
        created_time=_dt(raw.get("createdTime")),
        modified_time=_dt(raw.get("modifiedTime")),
        web_view_link=raw.get("webViewLink", ""),
        size_bytes=int(raw["size"]) if raw.get("size") else None,
        owner=owners[0].get("displayName", "") if owners else "",
        shared=bool(raw.get("shared", False)),
        parents=list(raw.get("parents") or []),
    )
