"""
Remote directory materialization for gdupload.

Maps a local relative directory such as ``docs/sub`` onto a chain of Drive
folders, creating the ones that are missing.
"""

import logging
import os
from typing import List

from gdupload.cache import DirectoryCache
from gdupload.drive import DriveService

logger = logging.getLogger(__name__)


def split_segments(relative_dir: str) -> List[str]:
    """
    Split a relative directory path into its folder names.

    Both ``/`` and the OS separator are accepted; empty and ``.`` components
    are dropped, so ``""`` and ``"."`` yield an empty list.

    Args:
        relative_dir: Relative directory path.

    Returns:
        Folder names, outermost first.
    """
    normalized = relative_dir.replace(os.sep, "/")
    return [part for part in normalized.split("/") if part and part != "."]


def materialize(
    drive: DriveService, relative_dir: str, root_id: str, cache: DirectoryCache
) -> str:
    """
    Resolve or create every folder of ``relative_dir`` below ``root_id``.

    Segments are handled left to right; each resolved id becomes the parent
    of the next segment. A segment is taken from the cache when possible,
    otherwise looked up in Drive, and only created when the lookup finds
    nothing. Every resolved segment is stored in the cache.

    Args:
        drive: Drive client.
        relative_dir: Relative directory path, possibly empty.
        root_id: Drive id of the folder the path is relative to.
        cache: Run-scoped directory cache.

    Returns:
        Drive id of the innermost folder, or ``root_id`` for an empty path.

    Raises:
        RemoteAPIError: If a lookup or creation fails. Folders created before
            the failure are left in place.
    """
    parent_id = root_id

    for name in split_segments(relative_dir):
        cached_id = cache.get(parent_id, name)
        if cached_id is not None:
            parent_id = cached_id
            continue

        folder = drive.find_folder(name, parent_id)
        if folder is None:
            folder = drive.create_folder(name, parent_id)
        else:
            logger.debug("Found existing folder %s (%s) in %s", name, folder.id, parent_id)

        cache.put(parent_id, name, folder.id)
        parent_id = folder.id

    return parent_id
