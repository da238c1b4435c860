"""
Ollama Chat - Services Module
会话文件夹、标签与会话存储
"""
from .conversation import ConversationService
from .folder_locks import SubtreeLocks, folder_locks
from .folder_store import FolderStore, CascadeDeleter, DeleteResult
from .folder_service import FolderService

__all__ = [
    # Conversations
    "ConversationService",

    # Folder write serialization
    "SubtreeLocks",
    "folder_locks",

    # Folder persistence
    "FolderStore",
    "CascadeDeleter",
    "DeleteResult",

    # Orchestration
    "FolderService",
]
