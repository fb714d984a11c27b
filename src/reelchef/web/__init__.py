"""ReelChef HTTP API."""
