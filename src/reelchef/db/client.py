"""
ReelChef - Supabase Client.

Low-level database access for the recipe library.
"""

from supabase import Client, create_client

from ..config import settings

# Singleton client instance
_client: Client | None = None


def get_client() -> Client:
    """
    Get the Supabase client.

    Uses singleton pattern to reuse connection.
    Callers check `settings.persistence_enabled` first.
    """
    global _client

    if _client is None:
        _client = create_client(
            settings.supabase_url,
            settings.supabase_key,
        )

    return _client
