"""API endpoints for recipe tags."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..db.store import SupabaseRecipeStore
from .dependencies import get_store

router = APIRouter(prefix="/tags", tags=["tags"])


class TagCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)


@router.get("")
def list_tags(store: SupabaseRecipeStore = Depends(get_store)):
    """All tags with their recipe counts, by name."""
    return {"success": True, "data": store.list_tags()}


@router.post("", status_code=201)
def create_tag(req: TagCreateRequest, store: SupabaseRecipeStore = Depends(get_store)):
    """Create a tag, or return the existing tag with the same name."""
    return JSONResponse(status_code=201, content={"success": True, "data": store.create_tag(req.name)})


@router.delete("/{tag_id}")
def delete_tag(tag_id: str, store: SupabaseRecipeStore = Depends(get_store)):
    store.delete_tag(tag_id)
    return {"success": True}
