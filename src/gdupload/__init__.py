"""
gdupload - Upload files and folders to Google Drive

Mirrors local directory trees into a Drive folder, skipping files that are
already there, with optional tar.gz or zip compression. Also downloads,
exports and extracts Drive files.
"""

__version__ = "0.1.0"

# Public API exports
from gdupload.cache import DirectoryCache
from gdupload.compression import prepared_upload
from gdupload.config import load_config, load_config_with_sources
from gdupload.drive import DriveService, ExportFormat
from gdupload.exceptions import (
    ArchiveError,
    AuthTimeoutError,
    ConfigurationError,
    GDUploadError,
    LocalIOError,
    RemoteAPIError,
)
from gdupload.models import CompressionMode, RemoteNode, TransferJob, TransferResult
from gdupload.orchestrator import Uploader
from gdupload.resolver import materialize
from gdupload.transfer import upload_if_absent

__all__ = [
    "__version__",
    "ArchiveError",
    "AuthTimeoutError",
    "CompressionMode",
    "ConfigurationError",
    "DirectoryCache",
    "DriveService",
    "ExportFormat",
    "GDUploadError",
    "LocalIOError",
    "RemoteAPIError",
    "RemoteNode",
    "TransferJob",
    "TransferResult",
    "Uploader",
    "load_config",
    "load_config_with_sources",
    "materialize",
    "prepared_upload",
    "upload_if_absent",
]
