from pydantic import BaseModel, field_validator
from typing import List, Optional
from datetime import datetime

from ..models.organization import split_path

# --- Folder Schemas ---

class FolderCreate(BaseModel):
    name: str
    color: Optional[str] = None
    parent_id: Optional[str] = None

    @field_validator("parent_id")
    @classmethod
    def blank_parent_is_root(cls, value):
        # 空字符串与 null 相同：根目录
        return value or None

class FolderUpdate(BaseModel):
    # 只应用请求中出现的字段；parent_id 显式为 null 表示移到根目录
    name: Optional[str] = None
    color: Optional[str] = None
    parent_id: Optional[str] = None

    @field_validator("parent_id")
    @classmethod
    def blank_parent_is_root(cls, value):
        # 空字符串与 null 相同：根目录
        return value or None

class FolderResponse(BaseModel):
    id: str
    name: str
    color: Optional[str] = None
    parent_id: Optional[str] = None
    path: List[str]
    level: int
    created_at: datetime
    updated_at: datetime

    @field_validator("path", mode="before")
    @classmethod
    def path_as_list(cls, value):
        if isinstance(value, str):
            return split_path(value)
        return value

    class Config:
        from_attributes = True

class FolderTreeResponse(FolderResponse):
    children: List["FolderTreeResponse"] = []

class FolderDeleteResponse(BaseModel):
    deleted_count: int
    subfolder_count: int
    deleted_folder_ids: List[str]
    reparented_conversations: int
    message: str

class FolderVerifyResponse(BaseModel):
    inconsistent: List[str]

class FolderRepairResponse(BaseModel):
    repaired: List[str]

# --- Tag Schemas ---

class TagBase(BaseModel):
    name: str
    color: Optional[str] = None

class TagCreate(TagBase):
    pass

class TagUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None

class TagResponse(TagBase):
    id: str
    created_at: datetime
    conversation_count: Optional[int] = 0

    class Config:
        from_attributes = True

# Resolve forward reference
FolderTreeResponse.model_rebuild()
