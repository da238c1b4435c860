from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from ..config import get_settings
from ..database import Base

settings = get_settings()

PATH_SEPARATOR = ","


def split_path(path: Optional[str]) -> List[str]:
    return path.split(PATH_SEPARATOR) if path else []


def join_path(ids: Iterable[str]) -> str:
    return PATH_SEPARATOR.join(ids)


class Folder(Base):
    __tablename__ = "folders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(255), nullable=False)
    color = Column(String(32), default=settings.default_folder_color)
    parent_id = Column(String(36), ForeignKey("folders.id"), nullable=True, index=True)

    # Materialized ancestry, maintained by services.folder_tree.compute_path
    path = Column(Text, nullable=False, default="", index=True)  # "root_id,...,own_id"
    level = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    conversations = relationship("Conversation", back_populates="folder", passive_deletes=True)

    @property
    def path_ids(self) -> List[str]:
        return split_path(self.path)

    def __repr__(self):
        return f"<Folder(id={self.id}, name={self.name}, level={self.level})>"


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(100), unique=True, nullable=False)
    color = Column(String(32), default=settings.default_tag_color)
    created_at = Column(DateTime, default=datetime.utcnow)

    # conversations relationship is defined on Conversation via secondary


class ConversationTag(Base):
    __tablename__ = "conversation_tags"

    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow)
