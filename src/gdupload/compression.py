"""
Compression selection for gdupload.

Decides whether content is sent as-is or bundled into a temporary archive
first, and guarantees the archive is cleaned up afterwards.
"""

import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from gdupload.archive import build_tar_gz, build_zip
from gdupload.exceptions import ArchiveError
from gdupload.models import CompressionMode

logger = logging.getLogger(__name__)


def archive_name(name: str, mode: CompressionMode) -> str:
    """Return the archive file name for ``name``, e.g. ``docs.tar.gz``."""
    return f"{name}{mode.extension}"


@contextmanager
def prepared_upload(
    mode: CompressionMode,
    sources: Sequence[Path],
    name: str,
    base: Optional[Path] = None,
) -> Iterator[Path]:
    """
    Yield the local file that should be uploaded for ``sources``.

    With ``CompressionMode.NONE`` the single source is yielded unchanged and
    never removed. Otherwise an archive named after ``name`` is built in a
    private temporary directory, which is removed when the block exits,
    whether the upload succeeded or not.

    Args:
        mode: Compression mode.
        sources: Local files to send; exactly one for ``NONE``.
        name: Base name of the archive (without extension).
        base: Directory tar.gz entry names are made relative to.

    Raises:
        ValueError: If ``NONE`` is combined with more than one source.
        ArchiveError: If the archive cannot be built.
    """
    if not sources:
        raise ValueError("No sources to upload")

    if mode is CompressionMode.NONE:
        if len(sources) != 1:
            raise ValueError("Uploading several sources at once requires compression")
        yield Path(sources[0])
        return

    try:
        workdir = Path(tempfile.mkdtemp(prefix="gdupload-"))
    except OSError as e:
        raise ArchiveError("create temporary directory", e) from e

    try:
        dest = workdir / archive_name(name, mode)
        if mode is CompressionMode.GZIP_TAR:
            build_tar_gz(sources, dest, base=base)
        else:
            build_zip(sources, dest)
        logger.debug("Built %s from %d source(s)", dest, len(sources))
        yield dest
    finally:
        shutil.rmtree(workdir, ignore_errors=True)
