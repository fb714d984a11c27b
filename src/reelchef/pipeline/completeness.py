"""
Completeness evaluation for candidate recipes.

Pure and deterministic: no I/O, same verdict for the same input.
A recipe without steps is never complete, whatever else it contains.
"""

from .models import CompletenessVerdict, Recipe

MIN_STEP_LENGTH = 10  # A step must be longer than this after trimming
MIN_INGREDIENT_LENGTH = 2


def evaluate(recipe: Recipe, self_reported_incomplete: bool = False) -> CompletenessVerdict:
    """
    Judge whether a candidate recipe is usable without further fallback.

    Checks run in order; the first failing check supplies the reason:
    1. Backend reported the recipe as incomplete
    2. No steps
    3. No ingredients
    4. No step longer than MIN_STEP_LENGTH characters
    5. No ingredient longer than MIN_INGREDIENT_LENGTH characters
    """
    steps = [s for s in (recipe.steps or []) if isinstance(s, str)]
    ingredients = [i for i in (recipe.ingredients or []) if isinstance(i, str)]

    if self_reported_incomplete:
        return CompletenessVerdict(False, "AI marked the recipe as incomplete")

    if not steps:
        return CompletenessVerdict(False, "No preparation steps found")

    if not ingredients:
        return CompletenessVerdict(False, "No ingredients found")

    if not any(len(s.strip()) > MIN_STEP_LENGTH for s in steps):
        return CompletenessVerdict(False, "Steps are too short to be meaningful")

    if not any(len(i.strip()) > MIN_INGREDIENT_LENGTH for i in ingredients):
        return CompletenessVerdict(False, "Ingredients are too short to be meaningful")

    return CompletenessVerdict(True)


def has_steps(recipe: Recipe | None) -> bool:
    """True if the recipe has at least one non-blank step."""
    if recipe is None:
        return False
    return any(isinstance(s, str) and s.strip() for s in recipe.steps or [])
