"""
ReelChef - Structuring backend client.

Provides schema-constrained JSON calls via google-genai.
"""

from reelchef.llm.client import BackendResponse, generate_json, get_client, is_quota_error

__all__ = [
    "BackendResponse",
    "generate_json",
    "get_client",
    "is_quota_error",
]
