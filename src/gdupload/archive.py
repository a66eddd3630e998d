"""
Archive building and extraction for gdupload.

Two formats are supported and they intentionally differ in how they store
paths: tar.gz keeps each file's path relative to a base directory, while zip
stores base names only, flattening any directory structure.
"""

import logging
import shutil
import tarfile
import zipfile
import zlib
from pathlib import Path
from typing import Iterable, List, Optional, Set

from gdupload.exceptions import ArchiveError

logger = logging.getLogger(__name__)

GZIP_LEVEL = 9

_ARCHIVE_ERRORS = (OSError, tarfile.TarError, zipfile.BadZipFile, zlib.error, EOFError)


def _expand_sources(sources: Iterable[Path]) -> List[Path]:
    """Replace directories by the regular files below them, in sorted order."""
    files: List[Path] = []
    for source in sources:
        source = Path(source)
        if source.is_dir():
            files.extend(p for p in sorted(source.rglob("*")) if p.is_file())
        else:
            files.append(source)
    return files


def _tar_arcname(path: Path, base: Optional[Path]) -> str:
    if base is not None:
        try:
            return path.relative_to(base).as_posix()
        except ValueError:
            return path.name
    if path.is_absolute():
        return path.name
    return path.as_posix()


def _remove_partial(dest: Path) -> None:
    try:
        dest.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove partial archive %s: %s", dest, e)


def build_tar_gz(
    sources: Iterable[Path], dest: Path, base: Optional[Path] = None
) -> Path:
    """
    Write a gzip-compressed tar archive of ``sources`` to ``dest``.

    Args:
        sources: Files (or directories, expanded recursively) to include.
        dest: Archive file to create.
        base: Directory entry names are made relative to. Without it,
            relative source paths are stored as given and absolute ones by
            base name.

    Returns:
        ``dest``.

    Raises:
        ArchiveError: If any source cannot be read or the archive cannot be
            written. A partially written archive is removed.
    """
    dest = Path(dest)
    try:
        with tarfile.open(dest, "w:gz", compresslevel=GZIP_LEVEL) as tar:
            for path in _expand_sources(sources):
                tar.add(str(path), arcname=_tar_arcname(path, base), recursive=False)
    except _ARCHIVE_ERRORS as e:
        _remove_partial(dest)
        raise ArchiveError(f"build {dest.name}", e) from e
    return dest


def build_zip(sources: Iterable[Path], dest: Path) -> Path:
    """
    Write a deflate-compressed zip archive of ``sources`` to ``dest``.

    Entries are stored under their base names. When two sources share a base
    name only the first is kept.
    """
    dest = Path(dest)
    seen: Set[str] = set()
    try:
        with zipfile.ZipFile(dest, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in _expand_sources(sources):
                if path.name in seen:
                    logger.warning("Skipping %s: %s is already in %s", path, path.name, dest.name)
                    continue
                seen.add(path.name)
                zf.write(str(path), arcname=path.name)
    except _ARCHIVE_ERRORS as e:
        _remove_partial(dest)
        raise ArchiveError(f"build {dest.name}", e) from e
    return dest


def _safe_target(dest_dir: Path, member_name: str) -> Path:
    root = dest_dir.resolve()
    target = (root / member_name).resolve()
    if target != root and root not in target.parents:
        raise ArchiveError(
            f"extract {member_name}", ValueError("entry would be written outside the destination")
        )
    return target


def extract_tar_gz(archive: Path, dest_dir: Path) -> List[Path]:
    """
    Extract a tar.gz archive into ``dest_dir``.

    Only directories and regular files are restored; links and devices are
    skipped. Entries that would land outside ``dest_dir`` abort extraction.

    Returns:
        Paths of the extracted files.
    """
    extracted: List[Path] = []
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "r:gz") as tar:
            for member in tar.getmembers():
                target = _safe_target(dest_dir, member.name)
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                if not member.isfile():
                    logger.warning("Skipping non-regular entry %s in %s", member.name, archive)
                    continue
                source = tar.extractfile(member)
                if source is None:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with source, open(target, "wb") as out:
                    shutil.copyfileobj(source, out)
                target.chmod(member.mode & 0o777 or 0o644)
                extracted.append(target)
    except _ARCHIVE_ERRORS as e:
        raise ArchiveError(f"extract {Path(archive).name}", e) from e
    return extracted


def extract_zip(archive: Path, dest_dir: Path) -> List[Path]:
    """Extract a zip archive into ``dest_dir`` and return the extracted files."""
    extracted: List[Path] = []
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                target = _safe_target(dest_dir, info.filename)
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as source, open(target, "wb") as out:
                    shutil.copyfileobj(source, out)
                extracted.append(target)
    except _ARCHIVE_ERRORS as e:
        raise ArchiveError(f"extract {Path(archive).name}", e) from e
    return extracted


def extract_archive(archive: Path, dest_dir: Path) -> List[Path]:
    """Extract a ``.tar.gz``/``.tgz`` or ``.zip`` archive, chosen by file name."""
    name = Path(archive).name.lower()
    if name.endswith((".tar.gz", ".tgz")):
        return extract_tar_gz(archive, dest_dir)
    if name.endswith(".zip"):
        return extract_zip(archive, dest_dir)
    raise ArchiveError(f"extract {Path(archive).name}", ValueError("unsupported archive type"))
