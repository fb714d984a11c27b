"""
ReelChef - Recipe library persistence.

Supabase-backed store for saved recipes, tags and folders.
"""

from reelchef.db.store import RecipeRecord, RecipeStore, SupabaseRecipeStore

__all__ = [
    "RecipeRecord",
    "RecipeStore",
    "SupabaseRecipeStore",
]
