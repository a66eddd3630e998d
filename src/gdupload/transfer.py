"""
Deduplicating single-file upload for gdupload.
"""

import logging
from pathlib import Path

from gdupload.drive import DriveService
from gdupload.exceptions import LocalIOError
from gdupload.models import TransferResult

logger = logging.getLogger(__name__)


def upload_if_absent(
    drive: DriveService, local_path: Path, name: str, parent_id: str
) -> TransferResult:
    """
    Upload ``local_path`` as ``name`` under ``parent_id`` unless it already exists.

    Existence is decided by name alone: a non-trashed file with the same
    name in the same folder is reused without comparing content. The lookup
    and the upload are not atomic, so concurrent callers may create
    duplicates.

    Args:
        drive: Drive client.
        local_path: File holding the content to send.
        name: Remote file name.
        parent_id: Destination folder id.

    Returns:
        TransferResult for the reused or newly created file.
    """
    existing = drive.find_file(name, parent_id)
    if existing is not None:
        logger.info("%s already exists in %s (%s), skipping upload", name, parent_id, existing.id)
        return TransferResult(
            remote_file_id=existing.id,
            bytes_written=0,
            reused=True,
            local_path=local_path,
            name=name,
        )

    try:
        size = local_path.stat().st_size
    except OSError as e:
        raise LocalIOError(f"stat {local_path}", e) from e

    created = drive.create_file(local_path, name, parent_id)
    logger.info("Uploaded %s to %s as %s (%d bytes)", name, parent_id, created.id, size)
    return TransferResult(
        remote_file_id=created.id,
        bytes_written=size,
        reused=False,
        local_path=local_path,
        name=name,
    )
