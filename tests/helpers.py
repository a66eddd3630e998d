"""
Shared test helpers for gdupload tests.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

from gdupload.exceptions import RemoteAPIError
from gdupload.models import NodeKind, RemoteNode


class FakeDrive:
    """
    In-memory stand-in for DriveService.

    Stores nodes keyed by (parent id, name) and records every call so tests
    can assert on the order and number of Drive requests.
    """

    def __init__(self) -> None:
        self.nodes: Dict[Tuple[str, str], RemoteNode] = {}
        self.contents: Dict[str, bytes] = {}
        self.calls: List[Tuple[str, str, str]] = []
        self.fail_on_create: Optional[str] = None
        self._next_id = 0

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}{self._next_id}"

    def add_folder(self, name: str, parent_id: str) -> RemoteNode:
        node = RemoteNode(self._new_id("folder"), name, NodeKind.FOLDER, parent_id)
        self.nodes[(parent_id, name)] = node
        return node

    def add_file(self, name: str, parent_id: str, content: bytes = b"") -> RemoteNode:
        node = RemoteNode(self._new_id("file"), name, NodeKind.FILE, parent_id)
        self.nodes[(parent_id, name)] = node
        self.contents[node.id] = content
        return node

    def find_folder(self, name: str, parent_id: str) -> Optional[RemoteNode]:
        self.calls.append(("find_folder", name, parent_id))
        node = self.nodes.get((parent_id, name))
        return node if node is not None and node.is_folder else None

    def find_file(self, name: str, parent_id: str) -> Optional[RemoteNode]:
        self.calls.append(("find_file", name, parent_id))
        node = self.nodes.get((parent_id, name))
        return node if node is not None and not node.is_folder else None

    def create_folder(self, name: str, parent_id: str) -> RemoteNode:
        self.calls.append(("create_folder", name, parent_id))
        if self.fail_on_create == name:
            raise RemoteAPIError(f"create folder '{name}' in {parent_id}", status=500)
        return self.add_folder(name, parent_id)

    def create_file(self, local_path: Path, name: str, parent_id: str) -> RemoteNode:
        self.calls.append(("create_file", name, parent_id))
        if self.fail_on_create == name:
            raise RemoteAPIError(f"upload '{name}' to {parent_id}", status=500)
        return self.add_file(name, parent_id, Path(local_path).read_bytes())

    def children(self, parent_id: str) -> List[RemoteNode]:
        return [node for (parent, _), node in self.nodes.items() if parent == parent_id]

    def calls_named(self, method: str) -> List[Tuple[str, str, str]]:
        return [call for call in self.calls if call[0] == method]
