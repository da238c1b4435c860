from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from ..database import get_db
from ..services.conversation import ConversationService
from ..schemas.conversation import (
    ConversationCreate,
    ConversationResponse,
    ConversationDetailResponse,
    ConversationUpdate,
    ConversationFolderUpdate,
    MessageCreate,
    MessageResponse,
    ShareCreate,
    ShareResponse,
)

router = APIRouter()


@router.get("/", response_model=List[ConversationResponse])
async def list_conversations(
    search: Optional[str] = None,
    folder_id: Optional[str] = None,
    tag_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    return await service.list(search=search, folder_id=folder_id, tag_id=tag_id)

@router.post("/", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(data: ConversationCreate, db: AsyncSession = Depends(get_db)):
    service = ConversationService(db)
    return await service.create(
        model=data.model,
        title=data.title,
        system_prompt=data.system_prompt,
        parameters=data.parameters,
        folder_id=data.folder_id,
        tag_ids=data.tag_ids,
    )

@router.get("/{id}", response_model=ConversationDetailResponse)
async def get_conversation(
    id: str,
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    conversation = await service.get(id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation

@router.patch("/{id}", response_model=ConversationResponse)
async def update_conversation(
    id: str,
    data: ConversationUpdate,
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    conversation = await service.update(id, data.model_dump(exclude_unset=True))
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation

@router.put("/{id}/folder", response_model=ConversationResponse)
async def move_conversation(
    id: str,
    data: ConversationFolderUpdate,
    db: AsyncSession = Depends(get_db)
):
    """File a conversation under a folder, or unfile it with folder_id = null."""
    service = ConversationService(db)
    return await service.set_folder(id, data.folder_id)

@router.delete("/{id}")
async def delete_conversation(
    id: str,
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    success = await service.delete(id)
    if not success:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"status": "success"}

@router.post("/{id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def add_message(
    id: str,
    data: MessageCreate,
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    return await service.add_message(id, data.role, data.content)

@router.post("/{id}/share", response_model=ShareResponse)
async def share_conversation(
    id: str,
    data: ShareCreate,
    db: AsyncSession = Depends(get_db)
):
    """Create or update the share link; an existing link keeps its token."""
    service = ConversationService(db)
    conversation = await service.share(id, is_public=data.is_public, expiry=data.expiry)
    return {
        "share_link": conversation.share_link,
        "is_shared": conversation.is_shared,
        "is_public": conversation.share_is_public,
        "allow_comments": conversation.share_allow_comments,
        "expires_at": conversation.share_expires_at,
    }
