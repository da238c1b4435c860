from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, JSON, Boolean
from sqlalchemy.orm import relationship

from ..config import get_settings
from ..database import Base

settings = get_settings()


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    title = Column(String(500), default=settings.default_conversation_title)
    model = Column(String(255), nullable=False)
    system_prompt = Column(Text, nullable=True)
    parameters = Column(JSON, default=dict)
    # 删除文件夹时由 CascadeDeleter 先置空
    folder_id = Column(String(36), ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Sharing
    is_shared = Column(Boolean, default=False, nullable=False)
    share_link = Column(String(64), unique=True, nullable=True, index=True)
    share_is_public = Column(Boolean, default=True, nullable=False)
    share_allow_comments = Column(Boolean, default=False, nullable=False)
    share_expires_at = Column(DateTime, nullable=True)

    folder = relationship("Folder", back_populates="conversations")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.timestamp",
    )
    tags = relationship("Tag", secondary="conversation_tags", backref="conversations")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"))
    role = Column(String(20))  # 'user' | 'assistant'
    content = Column(Text)
    timestamp = Column(DateTime, default=datetime.utcnow)

    conversation = relationship("Conversation", back_populates="messages")
