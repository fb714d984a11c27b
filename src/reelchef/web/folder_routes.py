"""API endpoints for recipe folders."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..db.store import SupabaseRecipeStore
from .dependencies import get_store

router = APIRouter(prefix="/folders", tags=["folders"])


class FolderRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)


@router.get("")
def list_folders(store: SupabaseRecipeStore = Depends(get_store)):
    return {"success": True, "data": store.list_folders()}


@router.get("/{folder_id}")
def get_folder(folder_id: str, store: SupabaseRecipeStore = Depends(get_store)):
    """Folder detail with its recipes, newest first."""
    folder = store.get_folder(folder_id)
    recipes = store.search(folder_id=folder_id)
    return {
        "success": True,
        "data": {**folder, "recipe_count": len(recipes), "recipes": [r.to_dict() for r in recipes]},
    }


@router.post("", status_code=201)
def create_folder(req: FolderRequest, store: SupabaseRecipeStore = Depends(get_store)):
    return JSONResponse(status_code=201, content={"success": True, "data": store.create_folder(req.name)})


@router.patch("/{folder_id}")
def rename_folder(folder_id: str, req: FolderRequest, store: SupabaseRecipeStore = Depends(get_store)):
    return {"success": True, "data": store.rename_folder(folder_id, req.name)}


@router.delete("/{folder_id}")
def delete_folder(folder_id: str, store: SupabaseRecipeStore = Depends(get_store)):
    """Delete a folder. Its recipes are kept and detached."""
    store.delete_folder(folder_id)
    return {"success": True}
