"""
Remote directory cache for gdupload.

Remembers which Drive folder id a (parent id, folder name) pair resolved to,
so a directory tree only looks each folder up once per run.
"""

from typing import Dict, Iterator, Optional, Tuple

CacheKey = Tuple[str, str]


class DirectoryCache:
    """
    Run-scoped mapping of ``(parent_id, name)`` to a Drive folder id.

    Entries are added as folders are found or created and are never
    invalidated; create a new cache for a new run. Not thread-safe.
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, str] = {}

    def get(self, parent_id: str, name: str) -> Optional[str]:
        return self._entries.get((parent_id, name))

    def put(self, parent_id: str, name: str, folder_id: str) -> None:
        self._entries[(parent_id, name)] = folder_id

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CacheKey]:
        return iter(self._entries)
