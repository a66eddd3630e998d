"""
Upload orchestration for gdupload.

Drives enumeration, folder materialization, optional compression and the
deduplicating upload for files and whole directory trees. Work is strictly
sequential and the first error stops the run.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import click

from gdupload.cache import DirectoryCache
from gdupload.compression import archive_name, prepared_upload
from gdupload.drive import DriveService
from gdupload.excludes import walk_directory
from gdupload.exceptions import LocalIOError
from gdupload.models import CompressionMode, TransferJob, TransferResult
from gdupload.resolver import materialize
from gdupload.transfer import upload_if_absent
from gdupload.utils import relative_remote_dir

logger = logging.getLogger(__name__)


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError as e:
        raise LocalIOError(f"stat {path}", e) from e


class Uploader:
    """
    Uploads local files and directories into a Drive folder.

    One instance is one run: it owns the directory cache shared by every
    path it uploads, so a folder is looked up or created at most once.

    Args:
        drive: Drive client.
        compression: Compression applied before upload.
        excludes: Exclude patterns applied when walking directories.
        cache: Directory cache; a fresh one is created when omitted.
    """

    def __init__(
        self,
        drive: DriveService,
        compression: CompressionMode = CompressionMode.NONE,
        excludes: Optional[Iterable[str]] = None,
        cache: Optional[DirectoryCache] = None,
    ) -> None:
        self.drive = drive
        self.compression = compression
        self.excludes: List[str] = list(excludes or [])
        self.cache = cache if cache is not None else DirectoryCache()

    def upload_paths(self, paths: Sequence[Path], parent_id: str) -> List[TransferResult]:
        """Upload each path in order into ``parent_id``."""
        results: List[TransferResult] = []
        for path in paths:
            results.extend(self.upload_path(Path(path), parent_id))
        return results

    def upload_path(self, path: Path, parent_id: str) -> List[TransferResult]:
        """
        Upload a file or a directory into ``parent_id``.

        Raises:
            LocalIOError: If ``path`` does not exist or is neither a file nor
                a directory.
        """
        if path.is_dir():
            return self.upload_directory(path, parent_id)
        if path.is_file():
            return [self.upload_file(path, parent_id)]
        if not path.exists():
            raise LocalIOError(f"read {path}", FileNotFoundError(f"No such file or directory: '{path}'"))
        raise LocalIOError(f"read {path}", ValueError("not a regular file or directory"))

    def upload_file(self, path: Path, parent_id: str) -> TransferResult:
        """
        Upload a single file directly under ``parent_id``.

        With compression enabled the file is archived on its own first and the
        archive (``<name>.tar.gz`` or ``<name>.zip``) is uploaded instead.
        """
        job = TransferJob(
            local_path=path,
            size=_file_size(path),
            remote_parent_id=parent_id,
            compression=self.compression,
        )
        return self._run_job(job, [path], path.name, base=path.parent)

    def upload_directory(self, root: Path, parent_id: str) -> List[TransferResult]:
        """
        Upload a directory tree into ``parent_id``.

        Without compression the tree, including the root directory itself, is
        first recreated as Drive folders and then every file is uploaded
        individually in enumeration order.
        With compression the whole tree becomes one archive named after the
        root, uploaded directly under ``parent_id``.

        Returns:
            One result per uploaded file (a single result in archive mode).
        """
        root = root.resolve()
        click.echo(f"📂 Uploading directory: {root}")
        files = walk_directory(root, self.excludes, root)
        if not files:
            click.echo("No files found to upload.")
            return []

        if self.compression is not CompressionMode.NONE:
            job = TransferJob(
                local_path=root,
                size=sum(_file_size(f) for f in files),
                remote_parent_id=parent_id,
                compression=self.compression,
            )
            return [self._run_job(job, files, root.name, base=root.parent)]

        # Every folder exists before the first file is sent
        remote_dirs = [relative_remote_dir(f, root) for f in files]
        folder_ids: Dict[str, str] = {}
        for remote_dir in remote_dirs:
            if remote_dir not in folder_ids:
                folder_ids[remote_dir] = materialize(self.drive, remote_dir, parent_id, self.cache)

        results: List[TransferResult] = []
        total = len(files)
        for index, (local_file, remote_dir) in enumerate(zip(files, remote_dirs), start=1):
            job = TransferJob(
                local_path=local_file,
                size=_file_size(local_file),
                remote_parent_id=folder_ids[remote_dir],
            )
            results.append(self._run_job(job, [local_file], local_file.name, progress=(index, total)))

        reused = sum(1 for r in results if r.reused)
        logger.info("Finished %s: %d uploaded, %d already present", root, total - reused, reused)
        return results

    def _run_job(
        self,
        job: TransferJob,
        sources: List[Path],
        name: str,
        base: Optional[Path] = None,
        progress: Optional[Tuple[int, int]] = None,
    ) -> TransferResult:
        remote_name = archive_name(name, job.compression)
        with prepared_upload(job.compression, sources, name, base=base) as upload_source:
            result = upload_if_absent(self.drive, upload_source, remote_name, job.remote_parent_id)

        result = replace(result, local_path=job.local_path)
        self._report(result, progress)
        return result

    def _report(self, result: TransferResult, progress: Optional[Tuple[int, int]]) -> None:
        prefix = f"[{progress[0]}/{progress[1]}] " if progress else ""
        if result.reused:
            click.echo(f"{prefix}⏭️  {result.local_path} (already in Drive: {result.remote_file_id})")
        else:
            click.echo(f"{prefix}✅ {result.local_path} → {result.remote_file_id}")
