"""
Recipe library persistence on Supabase.

Tables (see migrations/001_recipes.sql):
    recipes      one row per saved recipe; ingredients/steps/tips are jsonb arrays
    tags         unique names
    recipe_tags  many-to-many, cascades with either side
    folders      recipes.folder_id is ON DELETE SET NULL

The pipeline only needs `save`; the rest backs the library routes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from supabase import Client

from ..errors import NotFoundError
from ..pipeline.models import Recipe

logger = logging.getLogger(__name__)

RECIPE_SELECT = "*, recipe_tags(tag_id, tags(id, name)), folders(id, name)"

# Columns a caller may change through update()
RECIPE_FIELDS = ("title", "ingredients", "steps", "servings", "prep_time", "cook_time", "tips", "source_url", "image_url")


@dataclass
class RecipeRecord:
    """A stored recipe with its library metadata."""

    recipe: Recipe
    tag_ids: list[str] = field(default_factory=list)
    tag_names: list[str] = field(default_factory=list)
    folder_id: str | None = None
    folder_name: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def id(self) -> str:
        return self.recipe.id

    def to_dict(self) -> dict:
        return {
            **self.recipe.to_dict(),
            "tag_ids": self.tag_ids,
            "tag_names": self.tag_names,
            "folder_id": self.folder_id,
            "folder_name": self.folder_name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class RecipeStore(Protocol):
    """Persistence collaborator used by the pipeline and the library routes."""

    def save(self, recipe: Recipe, tag_ids: list[str], folder_id: str | None) -> str: ...

    def search(
        self,
        q: str | None = None,
        tag_ids: list[str] | None = None,
        folder_id: str | None = None,
    ) -> list[RecipeRecord]: ...

    def get(self, recipe_id: str) -> RecipeRecord: ...

    def delete(self, recipe_id: str) -> None: ...


# =============================================================================
# Row mapping
# =============================================================================


def _as_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def recipe_to_row(recipe: Recipe) -> dict:
    """Map a Recipe to a `recipes` insert payload (id left to the database)."""
    return {
        "title": recipe.title,
        "ingredients": list(recipe.ingredients),
        "steps": list(recipe.steps),
        "servings": recipe.servings,
        "prep_time": recipe.prep_time,
        "cook_time": recipe.cook_time,
        "tips": list(recipe.tips),
        "source_url": recipe.source_url,
        "image_url": recipe.image_url,
    }


def row_to_record(row: dict) -> RecipeRecord:
    """Map a `recipes` row (with embedded tags and folder) to a RecipeRecord."""
    recipe = Recipe(
        id=row.get("id"),
        title=row.get("title") or "",
        source_url=row.get("source_url") or "",
        ingredients=_as_list(row.get("ingredients")),
        steps=_as_list(row.get("steps")),
        servings=row.get("servings"),
        prep_time=row.get("prep_time"),
        cook_time=row.get("cook_time"),
        tips=_as_list(row.get("tips")),
        image_url=row.get("image_url"),
    )

    tag_ids, tag_names = [], []
    for link in row.get("recipe_tags") or []:
        tag = link.get("tags") or {}
        tag_id = tag.get("id") or link.get("tag_id")
        if tag_id:
            tag_ids.append(tag_id)
        if tag.get("name"):
            tag_names.append(tag["name"])

    folder = row.get("folders") or {}
    return RecipeRecord(
        recipe=recipe,
        tag_ids=tag_ids,
        tag_names=tag_names,
        folder_id=row.get("folder_id"),
        folder_name=folder.get("name"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _count(row: dict, relation: str) -> int:
    """Read an embedded `relation(count)` aggregate."""
    value = row.get(relation)
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return int(value[0].get("count", 0))
    return 0


def _matches_text(record: RecipeRecord, q: str) -> bool:
    needle = q.lower()
    haystack = [record.recipe.title, *record.recipe.ingredients, *record.recipe.steps]
    return any(needle in text.lower() for text in haystack)


# =============================================================================
# Supabase store
# =============================================================================


class SupabaseRecipeStore:
    """
    RecipeStore backed by Supabase (PostgREST).

    Calls are synchronous; async callers run them in a worker thread.
    """

    def __init__(self, client: Client):
        self.client = client

    @classmethod
    def from_settings(cls, settings) -> "SupabaseRecipeStore | None":
        """Build the store, or None when Supabase is not configured."""
        if not settings.persistence_enabled:
            return None
        from .client import get_client

        return cls(get_client())

    # -------------------------------------------------------------------------
    # Recipes
    # -------------------------------------------------------------------------

    def save(self, recipe: Recipe, tag_ids: list[str] | None = None, folder_id: str | None = None) -> str:
        """Insert a recipe with its tag links. Returns the new id."""
        row = recipe_to_row(recipe)
        row["folder_id"] = folder_id

        response = self.client.table("recipes").insert(row).execute()
        recipe_id = response.data[0]["id"]

        try:
            self._link_tags(recipe_id, tag_ids or [])
        except Exception:
            # No transaction across the two inserts; undo the recipe row by hand
            logger.error(f"Linking tags to recipe {recipe_id} failed, removing the recipe row")
            self.client.table("recipes").delete().eq("id", recipe_id).execute()
            raise

        logger.info(f"Saved recipe {recipe_id} ('{recipe.title}', {len(tag_ids or [])} tags)")
        return recipe_id

    def search(
        self,
        q: str | None = None,
        tag_ids: list[str] | None = None,
        folder_id: str | None = None,
    ) -> list[RecipeRecord]:
        """
        Search the library, newest first.

        A recipe matches tag_ids only if it carries every one of them.
        `q` matches title, ingredients and steps case-insensitively.
        """
        matching: set[str] | None = None
        if tag_ids:
            matching = self._recipes_with_all_tags(tag_ids)
            if not matching:
                return []

        query = self.client.table("recipes").select(RECIPE_SELECT)
        if folder_id:
            query = query.eq("folder_id", folder_id)
        if matching is not None:
            query = query.in_("id", sorted(matching))

        response = query.order("updated_at", desc=True).execute()
        records = [row_to_record(row) for row in response.data or []]

        q = (q or "").strip()
        if q:
            records = [r for r in records if _matches_text(r, q)]
        return records

    def get(self, recipe_id: str) -> RecipeRecord:
        response = (
            self.client.table("recipes")
            .select(RECIPE_SELECT)
            .eq("id", recipe_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            raise NotFoundError("Recipe", recipe_id)
        return row_to_record(response.data[0])

    def update(self, recipe_id: str, updates: dict) -> RecipeRecord:
        """
        Partially update a recipe.

        `updates` may hold any RECIPE_FIELDS, `folder_id` (None detaches)
        and `tag_ids` (replaces every tag link).
        """
        self.get(recipe_id)

        row = {k: v for k, v in updates.items() if k in RECIPE_FIELDS}
        if "folder_id" in updates:
            row["folder_id"] = updates["folder_id"]
        if row:
            self.client.table("recipes").update(row).eq("id", recipe_id).execute()

        if "tag_ids" in updates and updates["tag_ids"] is not None:
            self.client.table("recipe_tags").delete().eq("recipe_id", recipe_id).execute()
            self._link_tags(recipe_id, updates["tag_ids"])

        return self.get(recipe_id)

    def delete(self, recipe_id: str) -> None:
        response = self.client.table("recipes").delete().eq("id", recipe_id).execute()
        if not response.data:
            raise NotFoundError("Recipe", recipe_id)
        logger.info(f"Deleted recipe {recipe_id}")

    def _link_tags(self, recipe_id: str, tag_ids: list[str]) -> None:
        unique = list(dict.fromkeys(t for t in tag_ids if t))
        if not unique:
            return
        links = [{"recipe_id": recipe_id, "tag_id": tag_id} for tag_id in unique]
        self.client.table("recipe_tags").insert(links).execute()

    def _recipes_with_all_tags(self, tag_ids: list[str]) -> set[str]:
        wanted = set(tag_ids)
        response = (
            self.client.table("recipe_tags")
            .select("recipe_id, tag_id")
            .in_("tag_id", sorted(wanted))
            .execute()
        )
        found: dict[str, set[str]] = {}
        for link in response.data or []:
            found.setdefault(link["recipe_id"], set()).add(link["tag_id"])
        return {recipe_id for recipe_id, tags in found.items() if tags >= wanted}

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    def list_tags(self) -> list[dict]:
        response = self.client.table("tags").select("id, name, recipe_tags(count)").order("name").execute()
        return [
            {"id": row["id"], "name": row["name"], "recipe_count": _count(row, "recipe_tags")}
            for row in response.data or []
        ]

    def create_tag(self, name: str) -> dict:
        """Create a tag, or return the existing one with the same name."""
        name = name.strip()
        existing = self.client.table("tags").select("id, name").eq("name", name).limit(1).execute()
        if existing.data:
            return existing.data[0]
        response = self.client.table("tags").insert({"name": name}).execute()
        return response.data[0]

    def delete_tag(self, tag_id: str) -> None:
        response = self.client.table("tags").delete().eq("id", tag_id).execute()
        if not response.data:
            raise NotFoundError("Tag", tag_id)

    # -------------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------------

    def list_folders(self) -> list[dict]:
        response = (
            self.client.table("folders")
            .select("id, name, created_at, updated_at, recipes(count)")
            .order("name")
            .execute()
        )
        return [
            {
                "id": row["id"],
                "name": row["name"],
                "recipe_count": _count(row, "recipes"),
                "created_at": row.get("created_at"),
                "updated_at": row.get("updated_at"),
            }
            for row in response.data or []
        ]

    def get_folder(self, folder_id: str) -> dict:
        response = self.client.table("folders").select("*").eq("id", folder_id).limit(1).execute()
        if not response.data:
            raise NotFoundError("Folder", folder_id)
        return response.data[0]

    def create_folder(self, name: str) -> dict:
        response = self.client.table("folders").insert({"name": name.strip()}).execute()
        return response.data[0]

    def rename_folder(self, folder_id: str, name: str) -> dict:
        response = self.client.table("folders").update({"name": name.strip()}).eq("id", folder_id).execute()
        if not response.data:
            raise NotFoundError("Folder", folder_id)
        return response.data[0]

    def delete_folder(self, folder_id: str) -> None:
        """Delete a folder; its recipes stay, detached (ON DELETE SET NULL)."""
        response = self.client.table("folders").delete().eq("id", folder_id).execute()
        if not response.data:
            raise NotFoundError("Folder", folder_id)
