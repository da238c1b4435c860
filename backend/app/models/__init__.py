from .organization import Folder, Tag, ConversationTag, PATH_SEPARATOR, join_path, split_path
from .conversation import Conversation, Message

__all__ = ["Folder", "Tag", "ConversationTag", "PATH_SEPARATOR", "join_path", "split_path", "Conversation", "Message"]
