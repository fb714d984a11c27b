"""
FastAPI dependency providers.

Routes depend on these so tests can swap them via `app.dependency_overrides`.
"""

from functools import lru_cache

from ..config import get_settings
from ..db.store import SupabaseRecipeStore
from ..errors import StoreUnavailable
from ..pipeline.orchestrator import RecipeExtractionService


@lru_cache
def _store() -> SupabaseRecipeStore | None:
    return SupabaseRecipeStore.from_settings(get_settings())


@lru_cache
def get_extraction_service() -> RecipeExtractionService:
    """Process-wide service; owns the admission queue shared by all requests."""
    return RecipeExtractionService.from_settings(get_settings(), store=_store())


def get_store() -> SupabaseRecipeStore:
    """Recipe library store. Raises StoreUnavailable when Supabase is not configured."""
    store = _store()
    if store is None:
        raise StoreUnavailable()
    return store
