"""Normalization utilities for backend recipe payloads."""

import re

from .models import Recipe


def normalize_text(value) -> str | None:
    """
    Normalize an optional scalar field to a stripped string.

    Examples:
        "  20 min " -> "20 min"
        4 -> "4"
        "" -> None
        None -> None
    """
    if value is None or isinstance(value, (list, dict)):
        return None
    text = str(value).strip()
    return text or None


def normalize_ingredients(ingredients: list | str | None) -> list[str]:
    """
    Normalize ingredients to list of strings.

    Handles:
        - List of strings
        - List of dicts with 'text' or 'name' field
        - A single newline-separated string
    """
    if not ingredients:
        return []

    if isinstance(ingredients, str):
        ingredients = ingredients.splitlines()

    if not isinstance(ingredients, list):
        return []

    result = []
    for item in ingredients:
        if isinstance(item, str):
            text = item.strip().lstrip("-•*").strip()
            if text:
                result.append(text)
        elif isinstance(item, dict):
            text = item.get("text") or item.get("name") or ""
            if isinstance(text, str) and text.strip():
                result.append(text.strip())

    return result


def normalize_steps(steps: list | str | None) -> list[str]:
    """
    Extract step text from various formats.

    Handles:
        - List of strings
        - List of HowToStep dicts with 'text' field
        - Plain strings (split by numbered steps or newlines)
    """
    if not steps:
        return []

    if isinstance(steps, list):
        result = []
        for item in steps:
            if isinstance(item, str):
                text = item.strip()
                if text:
                    result.append(text)
            elif isinstance(item, dict):
                text = item.get("text") or item.get("@text") or ""
                if isinstance(text, str) and text.strip():
                    result.append(text.strip())
        return result

    if isinstance(steps, str):
        # Try splitting by numbered patterns like "1." or "1)"
        parts = re.split(r"(?:^|\n)\s*\d+[\.\)]\s*", steps)
        parts = [p.strip() for p in parts if p.strip()]
        if len(parts) > 1:
            return parts

        parts = [p.strip() for p in steps.splitlines() if p.strip()]
        return parts

    return []


def payload_to_recipe(data: dict, source_url: str) -> Recipe:
    """Build a Recipe from a backend JSON object. Arrays are never None."""
    return Recipe(
        title=normalize_text(data.get("title")) or "",
        source_url=source_url,
        ingredients=normalize_ingredients(data.get("ingredients")),
        steps=normalize_steps(data.get("steps")),
        servings=normalize_text(data.get("servings")),
        prep_time=normalize_text(data.get("prep_time")),
        cook_time=normalize_text(data.get("cook_time")),
        tips=normalize_ingredients(data.get("tips")),
    )


def is_empty_recipe(recipe: Recipe) -> bool:
    """True when the backend found nothing at all."""
    return not (recipe.title or recipe.ingredients or recipe.steps)
