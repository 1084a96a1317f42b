"""
Tests for analysis_helpers.py.

Covers:
  - detect_allergens: categories, plurals, whole-word matching, bad input
  - calculate_health_score: range, weights, monotonic in Bad entries
  - detect_harmful_ingredients: name / reason / concern matches, de-duplication
"""
from __future__ import annotations

import pytest

from analysis_helpers import calculate_health_score, detect_allergens, detect_harmful_ingredients
from providers.base import AnalysisEntry, AnalysisStatus


def entry(name: str, status: AnalysisStatus = AnalysisStatus.NEUTRAL, reason: str = "", concerns=()) -> AnalysisEntry:
    return AnalysisEntry(ingredient=name, status=status, reason=reason, concerns=tuple(concerns))


GOOD, BAD, NEUTRAL = AnalysisStatus.GOOD, AnalysisStatus.BAD, AnalysisStatus.NEUTRAL


# ── detect_allergens ──────────────────────────────────────────────────────────

class TestDetectAllergens:
    def test_finds_categories_in_declared_order(self):
        text = "Wheat flour, sugar, milk solids, peanuts, soy lecithin"
        assert detect_allergens(text) == ["Milk", "Peanuts", "Soy", "Gluten"]

    def test_plural_forms(self):
        assert detect_allergens("Eggs, almonds") == ["Eggs", "Tree nuts"]

    def test_whole_words_only(self):
        # "til" must not fire inside "distilled"; "cod" not inside "code"
        assert detect_allergens("distilled vinegar, code 123") == []

    def test_codes_are_not_cod(self):
        assert detect_allergens("Emulsifier (INS codes 322, 476)") == []

    @pytest.mark.parametrize("text", [
        "Sugar, cocoa butter, cocoa mass",
        "Shea butter, palm fat",
        "Stabiliser, coconut cream",
        "Raising agent (cream of tartar)",
    ])
    def test_plant_fats_and_tartar_are_not_milk(self, text):
        assert "Milk" not in detect_allergens(text)

    def test_peanut_butter_is_peanut_not_milk(self):
        assert detect_allergens("Peanut butter, salt") == ["Peanuts"]

    def test_dairy_butter_and_cream_still_milk(self):
        assert detect_allergens("Butter, fresh cream") == ["Milk"]
        assert detect_allergens("Cocoa butter, butter oil") == ["Milk"]

    def test_case_insensitive(self):
        assert detect_allergens("SESAME SEEDS") == ["Sesame"]

    @pytest.mark.parametrize("bad", [None, "", 42, ["milk"]])
    def test_malformed_input_matches_nothing(self, bad):
        assert detect_allergens(bad) == []


# ── calculate_health_score ────────────────────────────────────────────────────

class TestHealthScore:
    def test_all_good_is_100(self):
        assert calculate_health_score([entry("a", GOOD), entry("b", GOOD)]) == 100

    def test_all_bad_is_0(self):
        assert calculate_health_score([entry("a", BAD)]) == 0

    def test_neutral_counts_half(self):
        assert calculate_health_score([entry("a", NEUTRAL)]) == 50
        assert calculate_health_score([entry("a", GOOD), entry("b", BAD)]) == 50

    def test_empty_is_zero(self):
        assert calculate_health_score([]) == 0
        assert calculate_health_score(None) == 0

    def test_adding_bad_never_raises_score(self):
        entries = [entry("a", GOOD), entry("b", NEUTRAL)]
        previous = calculate_health_score(entries)
        for i in range(6):
            entries.append(entry(f"bad{i}", BAD))
            current = calculate_health_score(entries)
            assert current <= previous
            previous = current

    def test_turning_entry_bad_never_raises_score(self):
        base = [entry("a", GOOD), entry("b", NEUTRAL), entry("c", GOOD)]
        before = calculate_health_score(base)
        for i in range(len(base)):
            changed = list(base)
            changed[i] = entry(base[i].ingredient, BAD)
            assert calculate_health_score(changed) <= before

    def test_ignores_non_entries(self):
        assert calculate_health_score([entry("a", GOOD), {"status": "Bad"}]) == 100


# ── detect_harmful_ingredients ────────────────────────────────────────────────

class TestDetectHarmful:
    def test_match_on_name(self):
        flagged = detect_harmful_ingredients([entry("High Fructose Corn Syrup", BAD)])
        assert flagged == [{
            "ingredient": "High Fructose Corn Syrup",
            "keyword": "high fructose corn syrup",
            "category": "Added sugar",
        }]

    def test_match_on_reason_and_concerns(self):
        flagged = detect_harmful_ingredients([
            entry("INS 211", BAD, reason="Sodium benzoate preservative"),
            entry("Vanaspati", BAD, concerns=["contains trans fats"]),
        ])
        assert [f["category"] for f in flagged] == ["Preservative", "Trans fat"]

    def test_one_flag_per_ingredient(self):
        flagged = detect_harmful_ingredients([
            entry("Partially hydrogenated palm oil", BAD),
            entry("partially hydrogenated palm oil", BAD),
        ])
        assert len(flagged) == 1

    def test_clean_list(self):
        assert detect_harmful_ingredients([entry("Water", GOOD), entry("Oats", GOOD)]) == []

    @pytest.mark.parametrize("bad", [None, [], ["sugar"], [{"ingredient": "aspartame"}]])
    def test_malformed_input_matches_nothing(self, bad):
        assert detect_harmful_ingredients(bad) == []
