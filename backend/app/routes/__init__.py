"""
Ollama Chat - Routes Module
"""
from .conversations import router as conversations_router
from .folders import router as folders_router
from .share import router as share_router
from .tags import router as tags_router

__all__ = [
    "conversations_router",
    "folders_router",
    "share_router",
    "tags_router",
]
