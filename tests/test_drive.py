"""
Tests for gdupload.drive module.
"""

import io
from pathlib import Path
from typing import Tuple
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from gdupload.drive import (
    DRIVE_READONLY_SCOPE,
    MAX_PAGE_SIZE,
    DriveService,
    ExportFormat,
    escape_query_value,
    validate_byte_range,
)
from gdupload.exceptions import ConfigurationError, LocalIOError, RemoteAPIError
from gdupload.models import FOLDER_MIME_TYPE, NodeKind


@pytest.fixture
def drive_files() -> Tuple[DriveService, MagicMock]:
    """DriveService over a mocked Drive resource, plus the mocked files() collection."""
    service = MagicMock()
    files = service.files.return_value
    return DriveService(service), files


def http_error(status: int) -> HttpError:
    resp = MagicMock(status=status, reason="Error")
    return HttpError(resp, b'{"error": {"message": "boom"}}')


class TestHelpers:
    """Tests for module-level helpers."""

    def test_escape_query_value(self) -> None:
        assert escape_query_value("it's") == "it\\'s"
        assert escape_query_value("a\\b") == "a\\\\b"

    def test_validate_byte_range(self) -> None:
        validate_byte_range(0, 0)
        validate_byte_range(10, 20)
        with pytest.raises(ValueError):
            validate_byte_range(10, 5)
        with pytest.raises(ValueError):
            validate_byte_range(-1, 5)


class TestFind:
    """Tests for DriveService lookups."""

    def test_find_folder_query(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.list.return_value.execute.return_value = {
            "files": [{"id": "f1", "name": "docs", "mimeType": FOLDER_MIME_TYPE}]
        }

        node = drive.find_folder("docs", "root")

        assert node is not None
        assert node.id == "f1"
        assert node.kind is NodeKind.FOLDER
        assert node.parent_id == "root"
        query = files.list.call_args.kwargs["q"]
        assert "name = 'docs'" in query
        assert "'root' in parents" in query
        assert "trashed = false" in query
        assert f"mimeType = '{FOLDER_MIME_TYPE}'" in query

    def test_find_file_excludes_folders(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.list.return_value.execute.return_value = {"files": []}

        assert drive.find_file("it's.txt", "root") is None

        query = files.list.call_args.kwargs["q"]
        assert "name = 'it\\'s.txt'" in query
        assert f"mimeType != '{FOLDER_MIME_TYPE}'" in query

    def test_http_error_wrapped_with_status(
        self, drive_files: Tuple[DriveService, MagicMock]
    ) -> None:
        drive, files = drive_files
        files.list.return_value.execute.side_effect = http_error(403)

        with pytest.raises(RemoteAPIError) as exc_info:
            drive.find_folder("docs", "root")

        assert exc_info.value.status == 403
        assert "look up 'docs' in root" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, HttpError)

    def test_list_folder_follows_pages(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.list.return_value.execute.side_effect = [
            {"files": [{"id": "a", "name": "a.txt"}], "nextPageToken": "next"},
            {"files": [{"id": "b", "name": "b.txt"}]},
        ]

        nodes = drive.list_folder("root")

        assert [n.id for n in nodes] == ["a", "b"]
        assert files.list.call_count == 2
        assert files.list.call_args_list[0].kwargs["pageSize"] == MAX_PAGE_SIZE
        assert files.list.call_args_list[1].kwargs["pageToken"] == "next"


class TestCreate:
    """Tests for folder and file creation."""

    def test_create_folder(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.create.return_value.execute.return_value = {
            "id": "new",
            "name": "docs",
            "mimeType": FOLDER_MIME_TYPE,
        }

        node = drive.create_folder("docs", "root")

        assert node.id == "new"
        assert node.is_folder
        body = files.create.call_args.kwargs["body"]
        assert body == {"name": "docs", "parents": ["root"], "mimeType": FOLDER_MIME_TYPE}

    def test_create_file(self, temp_dir: Path, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        local = temp_dir / "a.txt"
        local.write_text("alpha")
        files.create.return_value.execute.return_value = {"id": "file1", "name": "a.txt"}

        node = drive.create_file(local, "a.txt", "root")

        assert node.id == "file1"
        kwargs = files.create.call_args.kwargs
        assert kwargs["body"] == {"name": "a.txt", "parents": ["root"]}
        assert kwargs["media_body"].mimetype() == "text/plain"

    def test_create_file_missing_local(
        self, temp_dir: Path, drive_files: Tuple[DriveService, MagicMock]
    ) -> None:
        drive, files = drive_files

        with pytest.raises(LocalIOError):
            drive.create_file(temp_dir / "missing.txt", "missing.txt", "root")

        files.create.assert_not_called()


class TestTrash:
    """Tests for trash, restore and delete."""

    def test_trash_and_restore(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.update.return_value.execute.return_value = {"id": "f", "name": "a.txt"}

        drive.trash("f")
        assert files.update.call_args.kwargs["body"] == {"trashed": True}

        drive.restore("f")
        assert files.update.call_args.kwargs["body"] == {"trashed": False}

    def test_delete(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files

        drive.delete("f")

        files.delete.assert_called_once_with(fileId="f")
        files.delete.return_value.execute.assert_called_once()


class TestDownloadRange:
    """Tests for DriveService.download_range."""

    def test_inverted_range_sends_nothing(
        self, drive_files: Tuple[DriveService, MagicMock]
    ) -> None:
        drive, files = drive_files

        with pytest.raises(ValueError):
            drive.download_range("f", 10, 5, io.BytesIO())

        files.get_media.assert_not_called()

    def test_single_byte_range(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        request = files.get_media.return_value
        request.headers = {}
        request.execute.return_value = b"A"
        out = io.BytesIO()

        written = drive.download_range("f", 0, 0, out)

        assert written == 1
        assert out.getvalue() == b"A"
        assert request.headers["Range"] == "bytes=0-0"
        request.execute.assert_called_once()

    def test_range_error_wrapped(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        request = files.get_media.return_value
        request.headers = {}
        request.execute.side_effect = http_error(416)

        with pytest.raises(RemoteAPIError) as exc_info:
            drive.download_range("f", 100, 200, io.BytesIO())

        assert exc_info.value.status == 416


class TestExport:
    """Tests for export and workspace document helpers."""

    def test_export_enum_value(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.export_media.return_value.execute.return_value = b"%PDF"
        out = io.BytesIO()

        written = drive.export("doc", ExportFormat.PDF, out)

        assert written == 4
        files.export_media.assert_called_once_with(fileId="doc", mimeType="application/pdf")

    def test_export_links(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.get.return_value.execute.return_value = {
            "id": "doc",
            "exportLinks": {"application/pdf": "https://example.com/pdf"},
        }

        assert drive.get_export_links("doc") == {"application/pdf": "https://example.com/pdf"}

    def test_export_links_missing(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.get.return_value.execute.return_value = {"id": "bin"}

        with pytest.raises(RemoteAPIError):
            drive.get_export_links("bin")

    def test_is_workspace_document(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.get.return_value.execute.return_value = {
            "mimeType": "application/vnd.google-apps.document"
        }
        assert drive.is_workspace_document("doc")

        files.get.return_value.execute.return_value = {"mimeType": FOLDER_MIME_TYPE}
        assert not drive.is_workspace_document("folder")

        files.get.return_value.execute.return_value = {"mimeType": "text/plain"}
        assert not drive.is_workspace_document("txt")


class FakeDownloader:
    """Stands in for MediaIoBaseDownload, writing one chunk per next_chunk call."""

    def __init__(self, chunks, error=None):
        self.chunks = list(chunks)
        self.error = error
        self.fh = None

    def __call__(self, fh, request):
        self.fh = fh
        return self

    def next_chunk(self):
        if not self.chunks and self.error is not None:
            raise self.error
        self.fh.write(self.chunks.pop(0))
        return MagicMock(), not self.chunks and self.error is None


class TestTransportErrors:
    """Tests for network failures below the HTTP layer."""

    def test_server_not_found_wrapped(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.list.return_value.execute.side_effect = httplib2.ServerNotFoundError(
            "Unable to find the server at www.googleapis.com"
        )

        with pytest.raises(RemoteAPIError) as exc_info:
            drive.find_folder("docs", "root")

        assert exc_info.value.status is None
        assert isinstance(exc_info.value.__cause__, httplib2.ServerNotFoundError)

    def test_build_failure_wrapped(self) -> None:
        with patch(
            "gdupload.drive.build",
            side_effect=httplib2.ServerNotFoundError("Unable to find the server"),
        ):
            with pytest.raises(RemoteAPIError) as exc_info:
                DriveService.from_credentials(MagicMock())

        assert "create Drive service" in str(exc_info.value)


class TestDownload:
    """Tests for DriveService.download."""

    def test_multi_chunk_download(
        self,
        temp_dir: Path,
        drive_files: Tuple[DriveService, MagicMock],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        drive, files = drive_files
        monkeypatch.setattr("gdupload.drive.MediaIoBaseDownload", FakeDownloader([b"abc", b"def", b"g"]))
        dest = temp_dir / "out.bin"

        written = drive.download("f", dest)

        assert written == 7
        assert dest.read_bytes() == b"abcdefg"
        files.get_media.assert_called_once_with(fileId="f")

    def test_http_error_removes_partial_file(
        self,
        temp_dir: Path,
        drive_files: Tuple[DriveService, MagicMock],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        drive, _ = drive_files
        monkeypatch.setattr(
            "gdupload.drive.MediaIoBaseDownload", FakeDownloader([b"abc"], error=http_error(404))
        )
        dest = temp_dir / "out.bin"

        with pytest.raises(RemoteAPIError) as exc_info:
            drive.download("f", dest)

        assert exc_info.value.status == 404
        assert not dest.exists()

    def test_connection_reset_is_remote(
        self,
        temp_dir: Path,
        drive_files: Tuple[DriveService, MagicMock],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        drive, _ = drive_files
        monkeypatch.setattr(
            "gdupload.drive.MediaIoBaseDownload",
            FakeDownloader([b"abc"], error=ConnectionResetError("reset by peer")),
        )
        dest = temp_dir / "out.bin"

        with pytest.raises(RemoteAPIError) as exc_info:
            drive.download("f", dest)

        assert not isinstance(exc_info.value, LocalIOError)
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)
        assert not dest.exists()

    def test_unwritable_destination(
        self,
        temp_dir: Path,
        drive_files: Tuple[DriveService, MagicMock],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        drive, _ = drive_files
        downloader = FakeDownloader([b"abc"])
        monkeypatch.setattr("gdupload.drive.MediaIoBaseDownload", downloader)

        with pytest.raises(LocalIOError):
            drive.download("f", temp_dir)

        assert downloader.fh is None
        assert temp_dir.is_dir()

    def test_export_to_file(
        self, temp_dir: Path, drive_files: Tuple[DriveService, MagicMock]
    ) -> None:
        drive, files = drive_files
        files.export_media.return_value.execute.return_value = b"a,b\n1,2\n"
        dest = temp_dir / "sheet.csv"

        written = drive.export_to_file("sheet", dest, ExportFormat.CSV)

        assert written == 8
        assert dest.read_bytes() == b"a,b\n1,2\n"
        files.export_media.assert_called_once_with(fileId="sheet", mimeType="text/csv")


class TestDownloadRevision:
    """Tests for DriveService.download_revision."""

    def test_full_revision(self) -> None:
        service = MagicMock()
        request = service.revisions.return_value.get_media.return_value
        request.headers = {}
        request.execute.return_value = b"old content"
        out = io.BytesIO()

        written = DriveService(service).download_revision("f", "rev1", out)

        assert written == 11
        assert out.getvalue() == b"old content"
        assert "Range" not in request.headers
        service.revisions.return_value.get_media.assert_called_once_with(
            fileId="f", revisionId="rev1"
        )

    def test_ranged_revision(self) -> None:
        service = MagicMock()
        request = service.revisions.return_value.get_media.return_value
        request.headers = {}
        request.execute.return_value = b"ld"
        out = io.BytesIO()

        written = DriveService(service).download_revision("f", "rev1", out, start=1, end=2)

        assert written == 2
        assert request.headers["Range"] == "bytes=1-2"

    @pytest.mark.parametrize(
        "file_id, revision_id, start, end",
        [
            ("f", "rev1", 10, 5),
            ("f", "rev1", 0, None),
            ("f", "", None, None),
            ("", "rev1", None, None),
        ],
    )
    def test_invalid_arguments_send_nothing(self, file_id, revision_id, start, end) -> None:
        service = MagicMock()

        with pytest.raises(ValueError):
            DriveService(service).download_revision(
                file_id, revision_id, io.BytesIO(), start=start, end=end
            )

        service.revisions.return_value.get_media.assert_not_called()

    def test_revision_error_wrapped(self) -> None:
        service = MagicMock()
        service.revisions.return_value.get_media.return_value.execute.side_effect = http_error(404)

        with pytest.raises(RemoteAPIError) as exc_info:
            DriveService(service).download_revision("f", "gone", io.BytesIO())

        assert exc_info.value.status == 404
        assert "revision gone" in str(exc_info.value)


class TestServiceAccount:
    """Tests for DriveService.from_service_account."""

    def test_read_only_scope_by_default(self) -> None:
        info = {"type": "service_account", "client_email": "bot@example.iam.gserviceaccount.com"}
        with patch(
            "gdupload.drive.service_account.Credentials.from_service_account_info"
        ) as from_info, patch("gdupload.drive.build") as build:
            drive = DriveService.from_service_account(info)

        from_info.assert_called_once_with(info, scopes=[DRIVE_READONLY_SCOPE])
        assert build.call_args.kwargs["credentials"] is from_info.return_value
        assert isinstance(drive, DriveService)

    def test_incomplete_key_rejected(self) -> None:
        with patch("gdupload.drive.build") as build:
            with pytest.raises(ConfigurationError):
                DriveService.from_service_account({"type": "service_account"})

        build.assert_not_called()


class TestListFiles:
    """Tests for the whole-drive listing."""

    def test_paths_and_pagination(self, drive_files: Tuple[DriveService, MagicMock]) -> None:
        drive, files = drive_files
        files.list.return_value.execute.side_effect = [
            {
                "files": [
                    {"id": "d", "name": "docs", "parents": ["rootid"]},
                    {"id": "s", "name": "sub", "parents": ["d"]},
                ]
            },
            {
                "files": [
                    {"id": "a", "name": "a.txt", "size": "5", "parents": ["s"]},
                    {
                        "id": "g",
                        "name": "notes",
                        "mimeType": "application/vnd.google-apps.document",
                        "parents": ["d"],
                    },
                    {"id": "e", "name": "empty.txt", "size": "0", "parents": ["d"]},
                ],
                "nextPageToken": "next",
            },
            {"files": [{"id": "b", "name": "b.txt", "size": "3", "parents": ["rootid"]}]},
        ]

        nodes = drive.list_files()

        assert [(n.id, n.path) for n in nodes] == [
            ("a", "My Drive/docs/sub"),
            ("b", "My Drive"),
        ]
        assert nodes[0].size == 5
        assert files.list.call_count == 3
        assert f"mimeType = '{FOLDER_MIME_TYPE}'" in files.list.call_args_list[0].kwargs["q"]
        assert f"mimeType != '{FOLDER_MIME_TYPE}'" in files.list.call_args_list[1].kwargs["q"]
        assert files.list.call_args_list[2].kwargs["pageToken"] == "next"

    def test_parent_cycle_terminates(self) -> None:
        folders = {
            "x": {"id": "x", "name": "x", "parents": ["y"]},
            "y": {"id": "y", "name": "y", "parents": ["x"]},
        }

        assert DriveService._folder_path(["x"], folders) == "My Drive/y/x"
