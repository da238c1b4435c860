"""
Ollama Chat - Folder persistence

FolderStore is the only code that writes folder rows, and it keeps
``path``/``level`` consistent with ``parent_id`` on every write. It flushes
but never commits: FolderService owns the transaction so that a move of a
whole subtree, or a cascade delete, lands atomically or not at all.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set
from uuid import uuid4

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..config import get_settings
from ..errors import CyclicMoveError, FolderNotFoundError, InvalidInputError
from ..models import Folder, join_path, split_path
from .conversation import ConversationService
from .folder_tree import (
    children_index,
    compute_path,
    descendants,
    expected_ancestry,
    path_contains,
    would_create_cycle,
)

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class DeleteResult:
    deleted_folder_ids: List[str] = field(default_factory=list)
    reparented_conversations: int = 0

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_folder_ids)

    @property
    def subfolder_count(self) -> int:
        return max(self.deleted_count - 1, 0)


def _clean_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise InvalidInputError("Folder name is required")
    return name.strip()


class FolderStore:
    def __init__(self, db: AsyncSession, linkage: Optional[ConversationService] = None):
        self.db = db
        self.linkage = linkage or ConversationService(db)

    # --- Reads ---

    async def find(self, folder_id: str) -> Optional[Folder]:
        result = await self.db.execute(
            select(Folder).where(Folder.id == folder_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, folder_id: str) -> Folder:
        folder = await self.find(folder_id)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        return folder

    async def list(self) -> List[Folder]:
        result = await self.db.execute(
            select(Folder)
            .order_by(Folder.level, Folder.name)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def subtree(self, folder_id: str) -> List[Folder]:
        """
        The folder and every folder whose path has ``folder_id`` as a segment.

        The LIKE prefilter can use the index on ``path``; segment matching in
        Python rules out ids that merely contain ``folder_id`` as a substring.
        """
        result = await self.db.execute(
            select(Folder)
            .where(Folder.path.contains(folder_id, autoescape=True))
            .execution_options(populate_existing=True)
        )
        return [f for f in result.scalars().all() if path_contains(f.path, folder_id)]

    # --- Writes ---

    async def create(self, name: str, color: Optional[str] = None, parent_id: Optional[str] = None) -> Folder:
        name = _clean_name(name)

        parent = None
        if parent_id is not None:
            parent = await self.find(parent_id)

        folder = Folder(
            id=str(uuid4()),
            name=name,
            color=color or settings.default_folder_color,
            parent_id=parent_id,
        )
        path, level = compute_path(folder.id, parent_id, {parent.id: parent}.get if parent else {}.get)
        folder.path = join_path(path)
        folder.level = level

        self.db.add(folder)
        await self.db.flush()
        logger.info(f"Created folder {folder.name} ({folder.id}) at level {folder.level}")
        return folder

    async def rename(self, folder_id: str, name: Optional[str] = None, color: Optional[str] = None) -> Folder:
        folder = await self.get(folder_id)

        if name is not None:
            folder.name = _clean_name(name)
        if color is not None:
            folder.color = color
        folder.updated_at = datetime.utcnow()

        try:
            await self.db.flush()
        except StaleDataError:
            # 读取之后被并发删除
            raise FolderNotFoundError(folder_id)
        return folder

    async def move(self, folder_id: str, new_parent_id: Optional[str] = None) -> Folder:
        """
        Reparent ``folder_id`` and recompute path/level for its whole subtree.

        Every descendant's ancestry changes with the move, so each one is
        rewritten here, parents before children.
        """
        folders = await self.list()
        by_id: Dict[str, Folder] = {f.id: f for f in folders}

        folder = by_id.get(folder_id)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        if new_parent_id == folder_id:
            raise InvalidInputError("Cannot set folder as its own parent")
        if new_parent_id is not None and new_parent_id not in by_id:
            raise FolderNotFoundError(new_parent_id)

        parent_of = {f.id: f.parent_id for f in folders}
        if would_create_cycle(folder_id, new_parent_id, parent_of):
            raise CyclicMoveError(folder_id, new_parent_id)

        now = datetime.utcnow()
        folder.parent_id = new_parent_id
        subtree = [folder] + descendants(folder_id, children_index(folders))
        for node in subtree:
            path, level = compute_path(node.id, node.parent_id, by_id.get)
            node.path = join_path(path)
            node.level = level
            node.updated_at = now

        await self.db.flush()
        logger.info(
            f"Moved folder {folder_id} under {new_parent_id or 'root'}; "
            f"recomputed {len(subtree)} paths"
        )
        return folder

    async def delete(self, folder_id: str) -> DeleteResult:
        return await CascadeDeleter(self).delete_subtree(folder_id)

    async def repair(self) -> List[str]:
        """Rewrite parent/path/level of every folder that drifted from its parent links."""
        folders = await self.list()
        expected = expected_ancestry(folders)
        now = datetime.utcnow()
        repaired = []

        for folder in folders:
            parent_id, path, level = expected[folder.id]
            if folder.parent_id == parent_id and split_path(folder.path) == path and folder.level == level:
                continue
            if folder.parent_id != parent_id:
                logger.warning(
                    f"Folder {folder.id} had unreachable parent {folder.parent_id}; moving it to root"
                )
            folder.parent_id = parent_id
            folder.path = join_path(path)
            folder.level = level
            folder.updated_at = now
            repaired.append(folder.id)

        if repaired:
            await self.db.flush()
            logger.info(f"Repaired ancestry of {len(repaired)} folders")
        return repaired


class CascadeDeleter:
    """Deletes a folder with its whole subtree and unfiles the conversations inside."""

    def __init__(self, store: FolderStore):
        self.store = store
        self.db = store.db

    async def collect(self, root_id: str) -> Set[str]:
        """Ids of ``root_id`` and all of its descendants."""
        ids = {f.id for f in await self.store.subtree(root_id)}
        ids.add(root_id)

        # 路径漂移时仍按 parent_id 补齐子孙，避免留下悬空的 parent_id
        while True:
            result = await self.db.execute(
                select(Folder.id).where(Folder.parent_id.in_(ids), Folder.id.notin_(ids))
            )
            stragglers = set(result.scalars().all())
            if not stragglers:
                return ids
            logger.warning(f"Folders {sorted(stragglers)} are below {root_id} by parent but not by path")
            ids |= stragglers

    async def delete_subtree(self, root_id: str) -> DeleteResult:
        await self.store.get(root_id)

        ids = await self.collect(root_id)

        # 先把会话移出，再删文件夹，保证会话不会指向不存在的文件夹
        reparented = await self.store.linkage.clear_folder(ids)

        await self.db.execute(
            delete(Folder).where(Folder.id.in_(ids)).execution_options(synchronize_session="fetch")
        )
        await self.db.flush()

        ordered = [root_id] + sorted(ids - {root_id})
        logger.info(
            f"Deleted folder {root_id} and {len(ids) - 1} subfolders; "
            f"unfiled {reparented} conversations"
        )
        return DeleteResult(deleted_folder_ids=ordered, reparented_conversations=reparented)
