from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any, Literal

class ConversationCreate(BaseModel):
    model: str
    title: Optional[str] = None
    system_prompt: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    folder_id: Optional[str] = None
    tag_ids: List[str] = Field(default_factory=list)

class ConversationUpdate(BaseModel):
    title: Optional[str] = None
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    tag_ids: Optional[List[str]] = None

class ConversationFolderUpdate(BaseModel):
    folder_id: Optional[str] = None

class MessageCreate(BaseModel):
    role: Literal["user", "assistant"]
    content: str

class MessageResponse(BaseModel):
    id: str
    role: str
    content: str
    timestamp: datetime

    class Config:
        from_attributes = True

class TagSummary(BaseModel):
    id: str
    name: str
    color: Optional[str] = None

    class Config:
        from_attributes = True

class ConversationResponse(BaseModel):
    id: str
    title: str
    model: str
    system_prompt: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    folder_id: Optional[str] = None
    tags: List[TagSummary] = []
    created_at: datetime
    updated_at: datetime
    message_count: Optional[int] = 0
    is_shared: bool = False
    share_link: Optional[str] = None

    class Config:
        from_attributes = True

class ConversationDetailResponse(ConversationResponse):
    messages: List[MessageResponse]

# --- Sharing ---

class ShareCreate(BaseModel):
    is_public: bool = True
    expiry: Optional[str] = None  # "1day" | "7days" | "30days" | None

class ShareResponse(BaseModel):
    share_link: str
    is_shared: bool
    is_public: bool
    allow_comments: bool
    expires_at: Optional[datetime] = None

class SharedConversationResponse(BaseModel):
    id: str
    title: str
    model: str
    messages: List[MessageResponse]
    is_public: bool
    allow_comments: bool
    expires_at: Optional[datetime] = None
