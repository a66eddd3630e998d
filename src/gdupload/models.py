"""
Data models for gdupload.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
WORKSPACE_MIME_PREFIX = "application/vnd.google-apps."


class NodeKind(Enum):
    FOLDER = "folder"
    FILE = "file"


class CompressionMode(Enum):
    """How content is bundled before it is sent to Drive."""

    NONE = "none"
    GZIP_TAR = "gzip"
    ZIP = "zip"

    @property
    def extension(self) -> str:
        if self is CompressionMode.GZIP_TAR:
            return ".tar.gz"
        if self is CompressionMode.ZIP:
            return ".zip"
        return ""

    @classmethod
    def parse(cls, value: Optional[str]) -> "CompressionMode":
        """Parse a config or CLI value such as ``"gzip"``, ``"zip"`` or ``None``."""
        if value is None or value == "":
            return cls.NONE
        normalized = value.strip().lower()
        aliases = {"tar.gz": "gzip", "tgz": "gzip", "targz": "gzip", "off": "none"}
        normalized = aliases.get(normalized, normalized)
        for mode in cls:
            if mode.value == normalized:
                return mode
        raise ValueError(f"Unknown compression mode '{value}' (use none, gzip or zip)")


@dataclass(frozen=True)
class RemoteNode:
    """A file or folder stored in Drive."""

    id: str
    name: str
    kind: NodeKind
    parent_id: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    # Folder chain such as "My Drive/docs"; only set by whole-drive listings
    path: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.kind is NodeKind.FOLDER

    @classmethod
    def from_api(
        cls, data: Dict[str, Any], parent_id: Optional[str] = None
    ) -> "RemoteNode":
        """Build a node from a Drive v3 ``files`` resource."""
        mime_type = data.get("mimeType")
        parents = data.get("parents") or []
        size = data.get("size")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            kind=NodeKind.FOLDER if mime_type == FOLDER_MIME_TYPE else NodeKind.FILE,
            parent_id=parents[0] if parents else parent_id,
            mime_type=mime_type,
            size=int(size) if size is not None else None,
        )


@dataclass(frozen=True)
class TransferJob:
    """One local file scheduled for upload."""

    local_path: Path
    size: int
    remote_parent_id: str
    compression: CompressionMode = CompressionMode.NONE


@dataclass(frozen=True)
class TransferResult:
    """Outcome of uploading (or reusing) a single remote file."""

    remote_file_id: str
    bytes_written: int
    reused: bool
    local_path: Optional[Path] = None
    name: str = ""
