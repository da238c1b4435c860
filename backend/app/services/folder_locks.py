"""
Ollama Chat - Subtree locks for folder writes

Moves and deletes rewrite derived state across a whole subtree, so two of
them must never interleave on overlapping folders. A writer declares the
set of folder ids it reads or rewrites; it waits until no other writer
holds an intersecting set. Writers on disjoint subtrees run concurrently,
readers never wait.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import FrozenSet, Iterable, List, Optional

from ..config import get_settings
from ..errors import StoreUnavailableError

settings = get_settings()
logger = logging.getLogger(__name__)


class SubtreeLocks:
    def __init__(self):
        self._held: List[FrozenSet[str]] = []
        self._condition: Optional[asyncio.Condition] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _get_condition(self) -> asyncio.Condition:
        # asyncio primitives belong to one loop; a fresh loop (tests, reloads) starts clean
        loop = asyncio.get_running_loop()
        if self._loop is not loop:
            self._loop = loop
            self._condition = asyncio.Condition()
            self._held = []
        return self._condition

    def _is_free(self, ids: FrozenSet[str]) -> bool:
        return not any(ids & held for held in self._held)

    @property
    def held(self) -> List[FrozenSet[str]]:
        return list(self._held)

    @asynccontextmanager
    async def hold(self, ids: Iterable[str], timeout: Optional[float] = None):
        """Hold ``ids`` exclusively for the duration of the block."""
        ids = frozenset(ids)
        if timeout is None:
            timeout = settings.folder_lock_timeout
        condition = self._get_condition()

        async with condition:
            try:
                await asyncio.wait_for(condition.wait_for(lambda: self._is_free(ids)), timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Timed out after {timeout}s waiting for folder lock on {len(ids)} folders")
                raise StoreUnavailableError("Folder tree is busy, please retry")
            self._held.append(ids)

        try:
            yield
        finally:
            async with condition:
                self._held.remove(ids)
                condition.notify_all()


folder_locks = SubtreeLocks()
