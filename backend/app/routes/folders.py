from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from ..database import get_db
from ..schemas.organization import (
    FolderCreate,
    FolderUpdate,
    FolderResponse,
    FolderTreeResponse,
    FolderDeleteResponse,
    FolderVerifyResponse,
    FolderRepairResponse,
)
from ..services.folder_service import FolderService

router = APIRouter()


@router.get("/", response_model=List[FolderResponse])
async def get_folders(db: AsyncSession = Depends(get_db)):
    """Get all folders as a flat list ordered by level, then name. The frontend builds the tree."""
    return await FolderService(db).list()


@router.get("/tree", response_model=List[FolderTreeResponse])
async def get_folder_tree(db: AsyncSession = Depends(get_db)):
    """Root folders with their children nested, each level sorted by name."""
    return await FolderService(db).tree()


@router.get("/verify", response_model=FolderVerifyResponse)
async def verify_folders(db: AsyncSession = Depends(get_db)):
    return {"inconsistent": await FolderService(db).verify()}


@router.post("/repair", response_model=FolderRepairResponse)
async def repair_folders(db: AsyncSession = Depends(get_db)):
    """Recompute path/level of every folder from parent links."""
    return {"repaired": await FolderService(db).repair()}


@router.get("/{id}", response_model=FolderResponse)
async def get_folder(id: str, db: AsyncSession = Depends(get_db)):
    return await FolderService(db).get(id)


@router.post("/", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(folder: FolderCreate, db: AsyncSession = Depends(get_db)):
    return await FolderService(db).create(
        name=folder.name,
        color=folder.color,
        parent_id=folder.parent_id,
    )


@router.patch("/{id}", response_model=FolderResponse)
@router.put("/{id}", response_model=FolderResponse)
async def update_folder(id: str, folder_update: FolderUpdate, db: AsyncSession = Depends(get_db)):
    """
    Rename, recolor and/or move a folder.

    A parent_id present in the body moves the folder (null moves it to the
    root); name and color are applied as given.
    """
    update_data = folder_update.model_dump(exclude_unset=True)
    return await FolderService(db).update(id, update_data)


@router.delete("/{id}", response_model=FolderDeleteResponse)
async def delete_folder(id: str, db: AsyncSession = Depends(get_db)):
    """Delete a folder with all of its subfolders; their conversations are kept but unfiled."""
    result = await FolderService(db).delete(id)
    return {
        "deleted_count": result.deleted_count,
        "subfolder_count": result.subfolder_count,
        "deleted_folder_ids": result.deleted_folder_ids,
        "reparented_conversations": result.reparented_conversations,
        "message": f"Deleted folder and {result.subfolder_count} subfolders",
    }
