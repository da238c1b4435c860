"""
Ollama Chat - App Module
"""
from .config import get_settings, Settings
from .database import get_db, init_db, Base
from .models import Folder, Tag, ConversationTag, Conversation, Message

__all__ = [
    # Config
    "get_settings",
    "Settings",

    # Database
    "get_db",
    "init_db",

    # Models
    "Base",
    "Folder",
    "Tag",
    "ConversationTag",
    "Conversation",
    "Message",
]
