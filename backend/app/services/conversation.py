import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, delete, desc, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import get_settings
from ..errors import FolderNotFoundError, ForbiddenError, InvalidInputError, NotFoundError, ShareExpiredError
from ..models import Conversation, Message, Folder, Tag

settings = get_settings()
logger = logging.getLogger(__name__)

SHARE_EXPIRY = {
    "1day": timedelta(days=1),
    "7days": timedelta(days=7),
    "30days": timedelta(days=30),
}


class ConversationService:
    """
    Conversation storage.

    Besides plain CRUD this is the folder subsystem's only way to touch
    conversations: ``clear_folder`` (bulk unfile, used by the cascade delete),
    ``set_folder`` and ``get_folder_id``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Folder linkage ---

    async def clear_folder(self, folder_ids: Iterable[str]) -> int:
        """
        Set ``folder_id`` to NULL for every conversation filed in ``folder_ids``.

        Does not commit; runs inside the caller's transaction. Returns the
        number of conversations that were unfiled.
        """
        folder_ids = list(folder_ids)
        if not folder_ids:
            return 0
        query = (
            update(Conversation)
            .where(Conversation.folder_id.in_(folder_ids))
            # 保持 updated_at 不变，侧边栏排序不受影响
            .values(folder_id=None, updated_at=Conversation.updated_at)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.db.execute(query)
        return result.rowcount

    async def get_folder_id(self, conversation_id: str) -> Optional[str]:
        result = await self.db.execute(
            select(Conversation.id, Conversation.folder_id).where(Conversation.id == conversation_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        return row.folder_id

    async def set_folder(self, conversation_id: str, folder_id: Optional[str]) -> Conversation:
        """File a single conversation under ``folder_id`` (None unfiles it)."""
        conversation = await self.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")

        if folder_id is not None:
            exists = await self.db.scalar(select(Folder.id).where(Folder.id == folder_id))
            if exists is None:
                raise FolderNotFoundError(folder_id)

        conversation.folder_id = folder_id
        conversation.updated_at = datetime.utcnow()
        await self.db.commit()
        logger.info(f"Conversation {conversation_id} filed under {folder_id or 'no folder'}")
        return await self.get(conversation_id)

    # --- Sharing ---

    async def share(
        self,
        conversation_id: str,
        is_public: bool = True,
        expiry: Optional[str] = None,
    ) -> Conversation:
        """
        Create or update the share link of a conversation.

        The link token is generated once and kept when the settings change.
        ``expiry`` is a key of SHARE_EXPIRY, or None for a link that never
        expires.
        """
        conversation = await self.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        if expiry is not None and expiry not in SHARE_EXPIRY:
            raise InvalidInputError(f"Unknown share expiry: {expiry}")

        if not conversation.share_link:
            conversation.share_link = secrets.token_hex(16)
        conversation.is_shared = True
        conversation.share_is_public = is_public
        conversation.share_allow_comments = False
        conversation.share_expires_at = datetime.utcnow() + SHARE_EXPIRY[expiry] if expiry else None

        await self.db.commit()
        logger.info(f"Conversation {conversation_id} shared (public={is_public}, expiry={expiry})")
        return await self.get(conversation_id)

    async def get_shared(self, share_link: str) -> Conversation:
        query = (
            select(Conversation)
            .options(selectinload(Conversation.messages), selectinload(Conversation.tags))
            .where(Conversation.share_link == share_link, Conversation.is_shared.is_(True))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        conversation = result.scalar_one_or_none()

        if conversation is None:
            raise NotFoundError("Shared conversation not found")
        if conversation.share_expires_at is not None and conversation.share_expires_at < datetime.utcnow():
            raise ShareExpiredError("Share link has expired")
        if not conversation.share_is_public:
            raise ForbiddenError("This conversation is not publicly shared")
        return conversation

    # --- CRUD ---

    async def create(
        self,
        model: str,
        title: Optional[str] = None,
        system_prompt: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        folder_id: Optional[str] = None,
        tag_ids: Optional[List[str]] = None,
    ) -> Conversation:
        if folder_id is not None:
            exists = await self.db.scalar(select(Folder.id).where(Folder.id == folder_id))
            if exists is None:
                raise FolderNotFoundError(folder_id)

        conversation = Conversation(
            title=title or settings.default_conversation_title,
            model=model,
            system_prompt=system_prompt,
            parameters=parameters or {},
            folder_id=folder_id,
        )
        conversation.tags = await self._load_tags(tag_ids or [])
        self.db.add(conversation)
        await self.db.commit()
        return await self.get(conversation.id)

    async def list(
        self,
        search: Optional[str] = None,
        folder_id: Optional[str] = None,
        tag_id: Optional[str] = None,
    ) -> List[Conversation]:
        query = (
            select(Conversation)
            .options(selectinload(Conversation.tags))
            .order_by(desc(Conversation.updated_at))
        )
        if search:
            query = query.where(Conversation.title.ilike(f"%{search}%"))
        if folder_id:
            query = query.where(Conversation.folder_id == folder_id)
        if tag_id:
            query = query.where(Conversation.tags.any(Tag.id == tag_id))

        result = await self.db.execute(query)
        conversations = result.scalars().all()

        counts = await self._message_counts([c.id for c in conversations])
        for conversation in conversations:
            conversation.message_count = counts.get(conversation.id, 0)
        return conversations

    async def get(self, id: str) -> Optional[Conversation]:
        query = (
            select(Conversation)
            .options(selectinload(Conversation.messages), selectinload(Conversation.tags))
            .where(Conversation.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        conversation = result.scalar_one_or_none()
        if conversation is not None:
            conversation.message_count = len(conversation.messages)
        return conversation

    async def update(self, id: str, fields: Dict[str, Any]) -> Optional[Conversation]:
        conversation = await self.get(id)
        if conversation is None:
            return None

        for key in ("title", "model"):
            if fields.get(key):
                setattr(conversation, key, fields[key])
        for key in ("system_prompt", "parameters"):
            if key in fields:
                setattr(conversation, key, fields[key])
        if "tag_ids" in fields:
            conversation.tags = await self._load_tags(fields["tag_ids"] or [])

        conversation.updated_at = datetime.utcnow()
        await self.db.commit()
        return await self.get(id)

    async def delete(self, id: str) -> bool:
        query = delete(Conversation).where(Conversation.id == id)
        result = await self.db.execute(query)
        await self.db.commit()
        return result.rowcount > 0

    async def add_message(self, conversation_id: str, role: str, content: str) -> Message:
        conversation = await self.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")

        message = Message(conversation_id=conversation_id, role=role, content=content)
        self.db.add(message)
        conversation.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def _load_tags(self, tag_ids: List[str]) -> List[Tag]:
        if not tag_ids:
            return []
        result = await self.db.execute(select(Tag).where(Tag.id.in_(tag_ids)))
        tags = result.scalars().all()
        missing = set(tag_ids) - {t.id for t in tags}
        if missing:
            raise NotFoundError(f"Tag not found: {', '.join(sorted(missing))}")
        return list(tags)

    async def _message_counts(self, conversation_ids: List[str]) -> Dict[str, int]:
        if not conversation_ids:
            return {}
        result = await self.db.execute(
            select(Message.conversation_id, func.count(Message.id))
            .where(Message.conversation_id.in_(conversation_ids))
            .group_by(Message.conversation_id)
        )
        return dict(result.all())
