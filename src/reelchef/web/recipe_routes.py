"""API endpoints for the saved recipe library."""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, HttpUrl

from ..db.store import SupabaseRecipeStore
from ..pipeline.models import Recipe
from .dependencies import get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recipes", tags=["recipes"])


# =============================================================================
# Request Models
# =============================================================================


class RecipeCreateRequest(BaseModel):
    """A recipe to save, from /process output or typed in by hand."""

    title: str = Field(min_length=1)
    source_url: HttpUrl
    ingredients: list[str] = []
    steps: list[str] = []
    servings: str | None = None
    prep_time: str | None = None
    cook_time: str | None = None
    tips: list[str] = []
    image_url: HttpUrl | None = None
    tag_ids: list[str] = []
    folder_id: str | None = None


class RecipeUpdateRequest(BaseModel):
    """Partial update. Omitted fields are left alone; folder_id=null detaches."""

    title: str | None = Field(default=None, min_length=1)
    source_url: HttpUrl | None = None
    ingredients: list[str] | None = None
    steps: list[str] | None = None
    servings: str | None = None
    prep_time: str | None = None
    cook_time: str | None = None
    tips: list[str] | None = None
    image_url: HttpUrl | None = None
    tag_ids: list[str] | None = None
    folder_id: str | None = None


def _split_ids(values: list[str]) -> list[str]:
    """Accept both ?tag_ids=a&tag_ids=b and ?tag_ids=a,b."""
    ids = []
    for value in values:
        ids.extend(part.strip() for part in value.split(",") if part.strip())
    return ids


# =============================================================================
# Endpoints
# =============================================================================


@router.get("")
def list_recipes(
    q: str | None = None,
    tag_ids: list[str] = Query(default=[]),
    folder_id: str | None = None,
    store: SupabaseRecipeStore = Depends(get_store),
):
    """Search recipes by text, tags (all must match) and folder."""
    records = store.search(q=q, tag_ids=_split_ids(tag_ids), folder_id=folder_id)
    return {"success": True, "data": [r.to_dict() for r in records]}


@router.get("/{recipe_id}")
def get_recipe(recipe_id: str, store: SupabaseRecipeStore = Depends(get_store)):
    return {"success": True, "data": store.get(recipe_id).to_dict()}


@router.post("", status_code=201)
def create_recipe(req: RecipeCreateRequest, store: SupabaseRecipeStore = Depends(get_store)):
    recipe = Recipe(
        title=req.title.strip(),
        source_url=str(req.source_url),
        ingredients=req.ingredients,
        steps=req.steps,
        servings=req.servings,
        prep_time=req.prep_time,
        cook_time=req.cook_time,
        tips=req.tips,
        image_url=str(req.image_url) if req.image_url else None,
    )
    recipe_id = store.save(recipe, req.tag_ids, req.folder_id)
    return JSONResponse(status_code=201, content={"success": True, "data": store.get(recipe_id).to_dict()})


@router.patch("/{recipe_id}")
def update_recipe(
    recipe_id: str,
    req: RecipeUpdateRequest,
    store: SupabaseRecipeStore = Depends(get_store),
):
    updates = req.model_dump(exclude_unset=True, mode="json")
    logger.info(f"Updating recipe {recipe_id}: {sorted(updates)}")
    return {"success": True, "data": store.update(recipe_id, updates).to_dict()}


@router.delete("/{recipe_id}")
def delete_recipe(recipe_id: str, store: SupabaseRecipeStore = Depends(get_store)):
    store.delete(recipe_id)
    return {"success": True}
