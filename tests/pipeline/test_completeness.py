"""Tests for the completeness evaluator."""

import pytest

from reelchef.pipeline.completeness import evaluate, has_steps
from reelchef.pipeline.models import Recipe

URL = "https://www.instagram.com/reel/ABC/"


def _recipe(ingredients=None, steps=None) -> Recipe:
    return Recipe(title="Cake", source_url=URL, ingredients=ingredients or [], steps=steps or [])


class TestEvaluate:
    @pytest.mark.parametrize("ingredients", [
        [],
        ["farine"],
        ["200g farine", "100g sucre", "3 oeufs", "1 sachet de levure"],
    ])
    def test_no_steps_is_incomplete_whatever_the_ingredients(self, ingredients):
        verdict = evaluate(_recipe(ingredients=ingredients, steps=[]))
        assert verdict.complete is False
        assert verdict.reason == "No preparation steps found"

    def test_self_reported_incomplete_wins(self):
        recipe = _recipe(ingredients=["200g farine"], steps=["Mélanger la farine et le sucre"])
        verdict = evaluate(recipe, self_reported_incomplete=True)
        assert verdict.complete is False
        assert verdict.reason == "AI marked the recipe as incomplete"

    def test_self_reported_checked_before_steps(self):
        verdict = evaluate(_recipe(), self_reported_incomplete=True)
        assert verdict.reason == "AI marked the recipe as incomplete"

    def test_no_ingredients(self):
        verdict = evaluate(_recipe(steps=["Mélanger la farine et le sucre"]))
        assert verdict.complete is False
        assert verdict.reason == "No ingredients found"

    def test_only_short_steps(self):
        verdict = evaluate(_recipe(ingredients=["farine"], steps=["Mélanger", "  Cuire   ", "0123456789"]))
        assert verdict.complete is False
        assert verdict.reason == "Steps are too short to be meaningful"

    def test_only_short_ingredients(self):
        verdict = evaluate(_recipe(ingredients=["a", "ab", " œ "], steps=["Mélanger la farine et le sucre"]))
        assert verdict.complete is False
        assert verdict.reason == "Ingredients are too short to be meaningful"

    @pytest.mark.parametrize("steps,ingredients", [
        (["cuire 20 min"], ["sel"]),
        (["Mélanger", "cuire 20 min"], ["farine", "sucre"]),
        (["x", "Préchauffer le four à 180°C"], ["a", "200g farine"]),
    ])
    def test_one_long_step_and_ingredient_is_complete(self, steps, ingredients):
        verdict = evaluate(_recipe(ingredients=ingredients, steps=steps))
        assert verdict.complete is True
        assert verdict.reason is None

    def test_step_length_measured_after_trim(self):
        # 10 characters padded with whitespace is still too short
        verdict = evaluate(_recipe(ingredients=["farine"], steps=["   0123456789   "]))
        assert verdict.complete is False

    def test_idempotent_and_pure(self):
        recipe = _recipe(ingredients=["farine", "sucre"], steps=["Mélanger", "cuire 20 min"])
        snapshot = (list(recipe.ingredients), list(recipe.steps))

        first = evaluate(recipe)
        second = evaluate(recipe)

        assert first == second
        assert (recipe.ingredients, recipe.steps) == snapshot


class TestHasSteps:
    def test_none(self):
        assert has_steps(None) is False

    def test_blank_steps_do_not_count(self):
        assert has_steps(_recipe(steps=["", "   "])) is False

    def test_with_steps(self):
        assert has_steps(_recipe(steps=["Mix"])) is True
