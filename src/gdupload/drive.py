"""
Google Drive access for gdupload.

Wraps the Drive v3 ``files`` and ``revisions`` resources from
google-api-python-client with the calls the uploader and downloader need.
Every request is executed exactly once; failures surface as RemoteAPIError
carrying the attempted operation.
"""

import logging
import mimetypes
import os
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload

from gdupload.exceptions import ConfigurationError, LocalIOError, RemoteAPIError
from gdupload.models import (
    FOLDER_MIME_TYPE,
    WORKSPACE_MIME_PREFIX,
    NodeKind,
    RemoteNode,
)

logger = logging.getLogger(__name__)

# Maximum number of entries requested per page when listing a folder
MAX_PAGE_SIZE = 100

# Files at least this large are sent with a resumable upload session
RESUMABLE_THRESHOLD = 5 * 1024 * 1024

NODE_FIELDS = "id, name, mimeType, parents, size"

# Page size for the whole-drive folder scan in list_files
FOLDER_SCAN_PAGE_SIZE = 1000

DRIVE_READONLY_SCOPE = "https://www.googleapis.com/auth/drive.readonly"

# Failures raised while talking to Drive; httplib2 errors cover DNS and connection faults
REMOTE_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError)


class ExportFormat(str, Enum):
    """Output MIME types accepted when exporting a workspace document."""

    PDF = "application/pdf"
    DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    ODT = "application/vnd.oasis.opendocument.text"
    ODS = "application/vnd.oasis.opendocument.spreadsheet"
    ODP = "application/vnd.oasis.opendocument.presentation"
    RTF = "application/rtf"
    TXT = "text/plain"
    HTML = "text/html"
    ZIP = "application/zip"
    JPEG = "image/jpeg"
    PNG = "image/png"
    SVG = "image/svg+xml"
    CSV = "text/csv"
    EPUB = "application/epub+zip"


def escape_query_value(value: str) -> str:
    """Escape a string for use inside a single-quoted Drive query literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def validate_byte_range(start: int, end: int) -> None:
    """Reject a byte range with a negative offset or with start after end."""
    if start < 0 or end < 0:
        raise ValueError(f"Invalid byte range {start}-{end}: offsets must be >= 0")
    if start > end:
        raise ValueError(f"Invalid byte range {start}-{end}: start is after end")


def _http_status(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None)
    if status is None:
        resp = getattr(error, "resp", None)
        status = getattr(resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _remove_partial(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove partial download %s: %s", path, e)


class DriveService:
    """
    Thin, synchronous client for the Drive v3 files API.

    Args:
        service: A googleapiclient ``Resource`` for ``drive``/``v3``.
    """

    def __init__(self, service: Any) -> None:
        self._service = service

    @classmethod
    def from_credentials(cls, credentials: Any) -> "DriveService":
        """Build the Drive v3 resource for authorized credentials."""
        try:
            service = build("drive", "v3", credentials=credentials, cache_discovery=False)
        except REMOTE_ERRORS as e:
            raise RemoteAPIError("create Drive service", e, status=_http_status(e)) from e
        return cls(service)

    @classmethod
    def from_service_account(
        cls, info: Dict[str, Any], scopes: Optional[List[str]] = None
    ) -> "DriveService":
        """
        Build a client authorized as a service account.

        Args:
            info: Parsed service account key file.
            scopes: OAuth scopes; read-only Drive access by default.

        Raises:
            ConfigurationError: If ``info`` is not a usable service account key.
        """
        try:
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=scopes or [DRIVE_READONLY_SCOPE]
            )
        except (ValueError, KeyError, GoogleAuthError) as e:
            raise ConfigurationError("parse service account credentials", e) from e
        return cls.from_credentials(credentials)

    def _files(self) -> Any:
        return self._service.files()

    def _execute(self, request: Any, operation: str) -> Any:
        try:
            return request.execute()
        except REMOTE_ERRORS as e:
            raise RemoteAPIError(operation, e, status=_http_status(e)) from e

    # Lookups

    def find(
        self, name: str, parent_id: str, kind: Optional[NodeKind] = None
    ) -> Optional[RemoteNode]:
        """
        Find a non-trashed child of ``parent_id`` with exactly this name.

        Args:
            name: Exact file or folder name.
            parent_id: Drive id of the folder to search in.
            kind: Restrict to folders or to non-folders; ``None`` matches both.

        Returns:
            The first match, or None when nothing matches.
        """
        query = (
            f"name = '{escape_query_value(name)}' "
            f"and '{escape_query_value(parent_id)}' in parents "
            "and trashed = false"
        )
        if kind is NodeKind.FOLDER:
            query += f" and mimeType = '{FOLDER_MIME_TYPE}'"
        elif kind is NodeKind.FILE:
            query += f" and mimeType != '{FOLDER_MIME_TYPE}'"

        request = self._files().list(
            q=query,
            pageSize=1,
            spaces="drive",
            fields=f"files({NODE_FIELDS})",
        )
        response = self._execute(request, f"look up '{name}' in {parent_id}")
        files = response.get("files", [])
        if not files:
            return None
        return RemoteNode.from_api(files[0], parent_id=parent_id)

    def find_folder(self, name: str, parent_id: str) -> Optional[RemoteNode]:
        return self.find(name, parent_id, kind=NodeKind.FOLDER)

    def find_file(self, name: str, parent_id: str) -> Optional[RemoteNode]:
        return self.find(name, parent_id, kind=NodeKind.FILE)

    def list_folder(self, parent_id: str) -> List[RemoteNode]:
        """List every non-trashed child of a folder, following pagination."""
        nodes: List[RemoteNode] = []
        page_token: Optional[str] = None
        query = f"'{escape_query_value(parent_id)}' in parents and trashed = false"

        while True:
            request = self._files().list(
                q=query,
                pageSize=MAX_PAGE_SIZE,
                spaces="drive",
                orderBy="folder,name",
                pageToken=page_token,
                fields=f"nextPageToken, files({NODE_FIELDS})",
            )
            response = self._execute(request, f"list folder {parent_id}")
            for item in response.get("files", []):
                nodes.append(RemoteNode.from_api(item, parent_id=parent_id))
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        return nodes

    def _folder_parents(self) -> Dict[str, Dict[str, Any]]:
        folders: Dict[str, Dict[str, Any]] = {}
        page_token: Optional[str] = None
        while True:
            request = self._files().list(
                q=f"mimeType = '{FOLDER_MIME_TYPE}' and trashed = false",
                pageSize=FOLDER_SCAN_PAGE_SIZE,
                pageToken=page_token,
                fields="nextPageToken, files(id, name, parents)",
            )
            response = self._execute(request, "list folders")
            for item in response.get("files", []):
                folders[item["id"]] = item
            page_token = response.get("nextPageToken")
            if not page_token:
                return folders

    @staticmethod
    def _folder_path(parents: List[str], folders: Dict[str, Dict[str, Any]]) -> str:
        parts: List[str] = []
        current = parents[0] if parents else None
        seen = set()
        while current in folders and current not in seen:
            seen.add(current)
            folder = folders[current]
            parts.insert(0, folder.get("name", ""))
            current = (folder.get("parents") or [None])[0]
        return "/".join(["My Drive"] + parts)

    def list_files(self) -> List[RemoteNode]:
        """
        List every non-folder file with content across the whole drive.

        Workspace documents and other zero-size entries are skipped. Each
        node's ``path`` is its folder chain, e.g. ``My Drive/docs/sub``.
        """
        folders = self._folder_parents()
        nodes: List[RemoteNode] = []
        page_token: Optional[str] = None
        query = f"mimeType != '{FOLDER_MIME_TYPE}' and trashed = false"

        while True:
            request = self._files().list(
                q=query,
                pageSize=MAX_PAGE_SIZE,
                spaces="drive",
                pageToken=page_token,
                fields=f"nextPageToken, files({NODE_FIELDS})",
            )
            response = self._execute(request, "list files")
            for item in response.get("files", []):
                if not int(item.get("size") or 0):
                    continue
                node = RemoteNode.from_api(item)
                nodes.append(replace(node, path=self._folder_path(item.get("parents") or [], folders)))
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        return nodes

    def get(self, file_id: str, fields: str = NODE_FIELDS) -> Dict[str, Any]:
        request = self._files().get(fileId=file_id, fields=fields)
        return self._execute(request, f"get metadata for {file_id}")

    def get_node(self, file_id: str) -> RemoteNode:
        return RemoteNode.from_api(self.get(file_id))

    def get_export_links(self, file_id: str) -> Dict[str, str]:
        """
        Return the export links of a workspace document, keyed by MIME type.

        Raises:
            RemoteAPIError: If the file has no export links (not a workspace
                document) or the request fails.
        """
        data = self.get(file_id, fields="id, exportLinks")
        links = data.get("exportLinks") or {}
        if not links:
            raise RemoteAPIError(
                f"get export links for {file_id}",
                ValueError("no export links available; not a workspace document"),
            )
        return links

    def is_workspace_document(self, file_id: str) -> bool:
        mime_type = self.get(file_id, fields="id, mimeType").get("mimeType", "")
        return mime_type.startswith(WORKSPACE_MIME_PREFIX) and mime_type != FOLDER_MIME_TYPE

    # Creation

    def create_folder(self, name: str, parent_id: str) -> RemoteNode:
        body = {"name": name, "parents": [parent_id], "mimeType": FOLDER_MIME_TYPE}
        request = self._files().create(body=body, fields=NODE_FIELDS)
        data = self._execute(request, f"create folder '{name}' in {parent_id}")
        logger.info("Created folder %s (%s) in %s", name, data.get("id"), parent_id)
        return RemoteNode.from_api(data, parent_id=parent_id)

    def create_file(
        self,
        local_path: Path,
        name: str,
        parent_id: str,
        mime_type: Optional[str] = None,
    ) -> RemoteNode:
        """
        Upload a local file as a new Drive file.

        Args:
            local_path: File whose bytes become the content.
            name: Remote file name.
            parent_id: Destination folder id.
            mime_type: Content type; guessed from ``name`` when omitted.

        Returns:
            The created node.
        """
        mime_type = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        try:
            size = local_path.stat().st_size
            media = MediaFileUpload(
                str(local_path),
                mimetype=mime_type,
                resumable=size >= RESUMABLE_THRESHOLD,
            )
        except OSError as e:
            raise LocalIOError(f"open {local_path} for upload", e) from e

        body = {"name": name, "parents": [parent_id]}
        request = self._files().create(body=body, media_body=media, fields=NODE_FIELDS)
        data = self._execute(request, f"upload '{name}' to {parent_id}")
        return RemoteNode.from_api(data, parent_id=parent_id)

    # Trash and deletion

    def trash(self, file_id: str) -> RemoteNode:
        request = self._files().update(
            fileId=file_id, body={"trashed": True}, fields=NODE_FIELDS
        )
        return RemoteNode.from_api(self._execute(request, f"trash {file_id}"))

    def restore(self, file_id: str) -> RemoteNode:
        request = self._files().update(
            fileId=file_id, body={"trashed": False}, fields=NODE_FIELDS
        )
        return RemoteNode.from_api(self._execute(request, f"restore {file_id}"))

    def delete(self, file_id: str) -> None:
        """Permanently delete a file, skipping the trash."""
        self._execute(self._files().delete(fileId=file_id), f"delete {file_id}")

    # Downloads

    def download(self, file_id: str, dest_path: Path) -> int:
        """
        Download a whole file to ``dest_path``.

        A failed download leaves no partial file behind.

        Returns:
            Number of bytes written.

        Raises:
            RemoteAPIError: If Drive or the network fails mid-transfer.
            LocalIOError: If ``dest_path`` cannot be opened or written.
        """
        request = self._files().get_media(fileId=file_id)
        operation = f"download {file_id}"
        try:
            fh = open(dest_path, "wb")
        except OSError as e:
            raise LocalIOError(f"write {dest_path}", e) from e

        try:
            with fh:
                downloader = MediaIoBaseDownload(fh, request)
                done = False
                while not done:
                    # Socket errors from the transport are OSErrors too
                    try:
                        _, done = downloader.next_chunk()
                    except REMOTE_ERRORS as e:
                        raise RemoteAPIError(operation, e, status=_http_status(e)) from e
                return fh.tell()
        except RemoteAPIError:
            _remove_partial(dest_path)
            raise
        except OSError as e:
            _remove_partial(dest_path)
            raise LocalIOError(f"write {dest_path}", e) from e

    def download_range(
        self, file_id: str, start: int, end: int, stream: BinaryIO
    ) -> int:
        """
        Download the inclusive byte range ``start``..``end`` into ``stream``.

        Offsets are 0-based. The server answers 206 (or 200 for a range
        covering the whole file); anything else raises RemoteAPIError.

        Raises:
            ValueError: If an offset is negative or start > end. Nothing is
                sent to Drive in that case.
        """
        validate_byte_range(start, end)

        request = self._files().get_media(fileId=file_id)
        request.headers["Range"] = f"bytes={start}-{end}"
        content = self._execute(request, f"download bytes {start}-{end} of {file_id}")
        try:
            stream.write(content)
        except OSError as e:
            raise LocalIOError(f"write range of {file_id}", e) from e
        return len(content)

    def download_revision(
        self,
        file_id: str,
        revision_id: str,
        stream: BinaryIO,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> int:
        """
        Download one stored revision of a file into ``stream``.

        Args:
            file_id: Drive id of the file.
            revision_id: Id of the revision to fetch.
            stream: Binary stream receiving the content.
            start: First byte of an optional inclusive range.
            end: Last byte of an optional inclusive range.

        Returns:
            Number of bytes written.

        Raises:
            ValueError: If an id is empty, only one range bound is given or
                the range is invalid. Nothing is sent to Drive in that case.
        """
        if not file_id or not revision_id:
            raise ValueError("Both a file id and a revision id are required")
        ranged = start is not None or end is not None
        if ranged:
            if start is None or end is None:
                raise ValueError("A byte range needs both a start and an end")
            validate_byte_range(start, end)

        request = self._service.revisions().get_media(fileId=file_id, revisionId=revision_id)
        operation = f"download revision {revision_id} of {file_id}"
        if ranged:
            request.headers["Range"] = f"bytes={start}-{end}"
            operation = f"download bytes {start}-{end} of revision {revision_id} of {file_id}"
        content = self._execute(request, operation)
        try:
            stream.write(content)
        except OSError as e:
            raise LocalIOError(f"write revision {revision_id} of {file_id}", e) from e
        return len(content)

    def export(self, file_id: str, mime_type: str, stream: BinaryIO) -> int:
        """Export a workspace document as ``mime_type`` into ``stream``."""
        if isinstance(mime_type, ExportFormat):
            mime_type = mime_type.value
        request = self._files().export_media(fileId=file_id, mimeType=mime_type)
        content = self._execute(request, f"export {file_id} as {mime_type}")
        try:
            stream.write(content)
        except OSError as e:
            raise LocalIOError(f"write export of {file_id}", e) from e
        return len(content)

    def export_to_file(self, file_id: str, dest_path: Path, mime_type: str) -> int:
        try:
            with open(dest_path, "wb") as fh:
                return self.export(file_id, mime_type, fh)
        except OSError as e:
            raise LocalIOError(f"write {dest_path}", e) from e
