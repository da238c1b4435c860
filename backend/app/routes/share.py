from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.conversation import MessageResponse, SharedConversationResponse
from ..services.conversation import ConversationService

router = APIRouter()


@router.get("/{share_id}", response_model=SharedConversationResponse)
async def get_shared_conversation(share_id: str, db: AsyncSession = Depends(get_db)):
    """
    Read-only view of a shared conversation.

    404 for an unknown link, 410 once it has expired, 403 if it is not public.
    """
    conversation = await ConversationService(db).get_shared(share_id)
    return {
        "id": conversation.id,
        "title": conversation.title,
        "model": conversation.model,
        "messages": [MessageResponse.model_validate(m) for m in conversation.messages],
        "is_public": conversation.share_is_public,
        "allow_comments": conversation.share_allow_comments,
        "expires_at": conversation.share_expires_at,
    }
