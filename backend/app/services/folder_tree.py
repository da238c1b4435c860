"""
Ollama Chat - Folder tree algorithms

Pure functions over folder records. Nothing here touches the database:
FolderStore fetches what is needed and hands it in, so the same code backs
create/move, the verify/repair pass and the tests.

A "folder" here is anything with ``id``, ``parent_id``, ``path`` (the
comma-joined materialized ancestry) and ``level`` attributes.
"""
import logging
from collections import deque
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import FolderNotFoundError
from ..models.organization import split_path

logger = logging.getLogger(__name__)


def path_contains(path: Optional[str], folder_id: str) -> bool:
    """True if ``folder_id`` is one of the segments of ``path``."""
    return folder_id in split_path(path)


def compute_path(
    folder_id: str,
    parent_id: Optional[str],
    parent_lookup: Callable[[str], Any],
) -> Tuple[List[str], int]:
    """
    Derive (path, level) for a folder from its parent.

    Root folders get ``[folder_id]`` at level 0. Otherwise the parent's path
    is extended with ``folder_id``. A parent that cannot be found raises
    FolderNotFoundError instead of quietly turning the folder into a root.
    """
    if parent_id is None:
        return [folder_id], 0

    parent = parent_lookup(parent_id)
    if parent is None:
        raise FolderNotFoundError(parent_id)

    return split_path(parent.path) + [folder_id], parent.level + 1


def would_create_cycle(
    folder_id: str,
    candidate_parent_id: Optional[str],
    parent_of: Mapping[str, Optional[str]],
) -> bool:
    """
    Would making ``candidate_parent_id`` the parent of ``folder_id`` close a loop?

    Walks the ancestor chain of the candidate through ``parent_of``
    (id -> parent id). The walk uses parent links rather than the stored
    paths so it stays correct even if a path has drifted, and it is bounded
    by the number of folders so corrupted data cannot make it spin forever.
    """
    if candidate_parent_id is None:
        return False
    if candidate_parent_id == folder_id:
        return True

    current = candidate_parent_id
    for _ in range(len(parent_of) + 2):
        if current is None:
            return False
        if current == folder_id:
            return True
        current = parent_of.get(current)

    # 祖先链本身有环（数据损坏），按循环处理
    logger.warning(
        f"Ancestor chain of folder {candidate_parent_id} does not reach a root; "
        f"treating move of {folder_id} as cyclic"
    )
    return True


def children_index(folders: Iterable[Any]) -> Dict[Optional[str], List[Any]]:
    """Group folders by ``parent_id``."""
    index: Dict[Optional[str], List[Any]] = {}
    for folder in folders:
        index.setdefault(folder.parent_id, []).append(folder)
    return index


def descendants(folder_id: str, children: Mapping[Optional[str], List[Any]]) -> List[Any]:
    """All folders below ``folder_id`` by parent links, parents before children."""
    result = []
    seen = {folder_id}
    queue = deque(children.get(folder_id, []))
    while queue:
        folder = queue.popleft()
        if folder.id in seen:
            continue
        seen.add(folder.id)
        result.append(folder)
        queue.extend(children.get(folder.id, []))
    return result


def expected_ancestry(folders: List[Any]) -> Dict[str, Tuple[Optional[str], List[str], int]]:
    """
    Rebuild (parent_id, path, level) for every folder from parent links alone.

    Folders whose parent no longer exists are re-rooted. Folders caught in a
    parent cycle (only possible with corrupted data) are cut loose by
    re-rooting the oldest member of the cycle.
    """
    by_id = {f.id: f for f in folders}
    children = children_index(folders)
    result: Dict[str, Tuple[Optional[str], List[str], int]] = {}

    def assign_from(root):
        result[root.id] = (None, [root.id], 0)
        for folder in descendants(root.id, children):
            if folder.id in result:
                continue
            _, parent_path, parent_level = result[folder.parent_id]
            result[folder.id] = (folder.parent_id, parent_path + [folder.id], parent_level + 1)

    roots = [f for f in folders if f.parent_id is None or f.parent_id not in by_id]
    for root in roots:
        assign_from(root)

    leftovers = sorted(
        (f for f in folders if f.id not in result),
        key=lambda f: (f.created_at or datetime.min, f.id),
    )
    for folder in leftovers:
        if folder.id not in result:
            assign_from(folder)

    return result


def find_inconsistent(folders: List[Any]) -> List[str]:
    """Ids of folders whose stored parent/path/level disagree with their parent links."""
    expected = expected_ancestry(folders)
    inconsistent = []
    for folder in folders:
        parent_id, path, level = expected[folder.id]
        if folder.parent_id != parent_id or split_path(folder.path) != path or folder.level != level:
            inconsistent.append(folder.id)
    return inconsistent


def build_tree(folders: List[Any]) -> List[Dict[str, Any]]:
    """
    Nest a flat folder list under its roots.

    Children are sorted by name. A folder whose parent is missing from the
    list is shown as a root rather than dropped.
    """
    nodes = {
        f.id: {
            "id": f.id,
            "name": f.name,
            "color": f.color,
            "parent_id": f.parent_id,
            "path": f.path,
            "level": f.level,
            "created_at": f.created_at,
            "updated_at": f.updated_at,
            "children": [],
        }
        for f in folders
    }

    roots = []
    for folder in folders:
        node = nodes[folder.id]
        if folder.parent_id is not None and folder.parent_id in nodes:
            nodes[folder.parent_id]["children"].append(node)
        else:
            roots.append(node)

    pending = [roots]
    while pending:
        level_nodes = pending.pop()
        level_nodes.sort(key=lambda n: (n["name"].lower(), n["id"]))
        pending.extend(n["children"] for n in level_nodes)

    return roots
