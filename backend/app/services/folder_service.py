"""
Ollama Chat - Folder Service

Public folder operations. Each mutation runs in one transaction; moves,
deletes and creates under a parent additionally hold a subtree lock so
that concurrent writers never compute paths against a stale ancestor.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..errors import FolderNotFoundError, StoreUnavailableError
from ..models import Folder
from .conversation import ConversationService
from .folder_locks import SubtreeLocks, folder_locks
from .folder_store import DeleteResult, FolderStore
from .folder_tree import build_tree, children_index, descendants, find_inconsistent

settings = get_settings()
logger = logging.getLogger(__name__)


class FolderService:
    def __init__(
        self,
        db: AsyncSession,
        linkage: Optional[ConversationService] = None,
        locks: Optional[SubtreeLocks] = None,
    ):
        self.db = db
        self.store = FolderStore(db, linkage)
        self.locks = locks or folder_locks
        self.max_attempts = max(settings.folder_lock_retries, 1)

    @asynccontextmanager
    async def _store_errors(self):
        try:
            yield
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Folder store error: {e}")
            raise StoreUnavailableError("Folder store is unavailable") from e

    @asynccontextmanager
    async def _transaction(self):
        async with self._store_errors():
            try:
                yield
                await self.db.commit()
            except BaseException:
                await self.db.rollback()
                raise

    async def _locked_write(self, scope, write):
        """
        Run ``write`` while holding the ids returned by ``scope``.

        The scope is computed from a snapshot, then recomputed once the lock
        is held; if another writer changed it in between, start over.
        """
        for attempt in range(self.max_attempts):
            async with self._store_errors():
                expected = await scope()
                # 结束快照读事务，加锁后重新读取（expire_on_commit=False，已加载对象不失效）
                await self.db.commit()

            async with self.locks.hold(expected):
                async with self._transaction():
                    current = await scope()
                    if current != expected:
                        logger.info(f"Folder scope changed while waiting for lock (attempt {attempt + 1})")
                        continue
                    return await write()

        raise StoreUnavailableError("Folder tree changed concurrently, please retry")

    # --- Scopes ---

    async def _ancestry_scope(self, folder_id: Optional[str]) -> FrozenSet[str]:
        if folder_id is None:
            return frozenset()
        folder = await self.store.find(folder_id)
        if folder is None:
            return frozenset({folder_id})
        return frozenset(folder.path_ids) | {folder_id}

    async def _subtree_scope(self, folder_id: str) -> FrozenSet[str]:
        folders = await self.store.list()
        if not any(f.id == folder_id for f in folders):
            raise FolderNotFoundError(folder_id)
        below = descendants(folder_id, children_index(folders))
        by_path = {f.id for f in folders if folder_id in f.path_ids}
        return frozenset({folder_id} | {f.id for f in below} | by_path)

    # --- Reads ---

    async def list(self) -> List[Folder]:
        async with self._store_errors():
            return await self.store.list()

    async def get(self, folder_id: str) -> Folder:
        async with self._store_errors():
            return await self.store.get(folder_id)

    async def tree(self) -> List[Dict[str, Any]]:
        return build_tree(await self.list())

    async def verify(self) -> List[str]:
        inconsistent = find_inconsistent(await self.list())
        if inconsistent:
            logger.warning(f"{len(inconsistent)} folders have inconsistent ancestry")
        return inconsistent

    # --- Writes ---

    async def create(self, name: str, color: Optional[str] = None, parent_id: Optional[str] = None) -> Folder:
        async def scope():
            return await self._ancestry_scope(parent_id)

        async def write():
            return await self.store.create(name, color, parent_id)

        return await self._locked_write(scope, write)

    async def rename(self, folder_id: str, name: Optional[str] = None, color: Optional[str] = None) -> Folder:
        async with self._transaction():
            return await self.store.rename(folder_id, name, color)

    async def move(self, folder_id: str, new_parent_id: Optional[str] = None) -> Folder:
        async def scope():
            return await self._subtree_scope(folder_id) | await self._ancestry_scope(new_parent_id)

        async def write():
            return await self.store.move(folder_id, new_parent_id)

        return await self._locked_write(scope, write)

    async def update(self, folder_id: str, fields: Dict[str, Any]) -> Folder:
        """
        Apply a partial update.

        ``parent_id`` in ``fields`` (even None, meaning "move to root") routes
        to a move when it differs from the current parent; ``name``/``color``
        route to a rename. Both happen in the same transaction.
        """
        async def scope():
            ids = await self._subtree_scope(folder_id)
            if "parent_id" in fields:
                ids |= await self._ancestry_scope(fields["parent_id"])
            return ids

        async def write():
            folder = await self.store.get(folder_id)
            if "parent_id" in fields and fields["parent_id"] != folder.parent_id:
                folder = await self.store.move(folder_id, fields["parent_id"])
            if "name" in fields or "color" in fields:
                folder = await self.store.rename(folder_id, fields.get("name"), fields.get("color"))
            return folder

        if "parent_id" not in fields:
            async with self._transaction():
                return await write()
        return await self._locked_write(scope, write)

    async def delete(self, folder_id: str) -> DeleteResult:
        async def scope():
            return await self._subtree_scope(folder_id)

        async def write():
            return await self.store.delete(folder_id)

        return await self._locked_write(scope, write)

    async def repair(self) -> List[str]:
        async def scope():
            return frozenset(f.id for f in await self.store.list())

        async def write():
            return await self.store.repair()

        return await self._locked_write(scope, write)
