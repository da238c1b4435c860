from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete
from sqlalchemy.exc import IntegrityError
from typing import List

from ..config import get_settings
from ..database import get_db
from ..models.organization import Tag, ConversationTag
from ..schemas.organization import TagCreate, TagUpdate, TagResponse

router = APIRouter()
settings = get_settings()

@router.get("/", response_model=List[TagResponse])
async def get_tags(db: AsyncSession = Depends(get_db)):
    # Get tags with conversation count
    # equivalent to: SELECT t.*, count(ct.conversation_id) ... GROUP BY t.id

    stmt = (
        select(Tag, func.count(ConversationTag.conversation_id).label("conversation_count"))
        .outerjoin(ConversationTag, Tag.id == ConversationTag.tag_id)
        .group_by(Tag.id)
        .order_by(Tag.name)
    )

    result = await db.execute(stmt)
    tags_with_counts = result.all()

    response = []
    for tag, count in tags_with_counts:
        # conversation_count is not a column on Tag, set it for the response model
        tag.conversation_count = count
        response.append(tag)

    return response

@router.post("/", response_model=TagResponse)
async def create_tag(tag: TagCreate, db: AsyncSession = Depends(get_db)):
    name = tag.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Tag name is required")

    # Check if tag exists
    result = await db.execute(select(Tag).where(Tag.name == name))
    existing = result.scalar_one_or_none()
    if existing:
        existing.conversation_count = await _conversation_count(db, existing.id)
        return existing

    db_tag = Tag(name=name, color=tag.color or settings.default_tag_color)
    db.add(db_tag)
    await db.commit()
    await db.refresh(db_tag)
    db_tag.conversation_count = 0
    return db_tag

@router.patch("/{id}", response_model=TagResponse)
async def update_tag(id: str, tag_update: TagUpdate, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Tag).where(Tag.id == id))
    db_tag = result.scalar_one_or_none()

    if not db_tag:
        raise HTTPException(status_code=404, detail="Tag not found")

    update_data = tag_update.model_dump(exclude_unset=True)
    if "name" in update_data:
        if not update_data["name"] or not update_data["name"].strip():
            raise HTTPException(status_code=400, detail="Tag name is required")
        update_data["name"] = update_data["name"].strip()
    for key, value in update_data.items():
        if value is not None:
            setattr(db_tag, key, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Tag name already exists")
    await db.refresh(db_tag)
    db_tag.conversation_count = await _conversation_count(db, db_tag.id)
    return db_tag

@router.delete("/{id}")
async def delete_tag(id: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Tag).where(Tag.id == id))
    db_tag = result.scalar_one_or_none()

    if not db_tag:
        raise HTTPException(status_code=404, detail="Tag not found")

    # conversation_tags rows go with it (ON DELETE CASCADE)
    await db.execute(delete(Tag).where(Tag.id == id))
    await db.commit()
    return {"status": "success"}

async def _conversation_count(db: AsyncSession, tag_id: str) -> int:
    return await db.scalar(
        select(func.count(ConversationTag.conversation_id)).where(ConversationTag.tag_id == tag_id)
    )
