"""
analysis_helpers.py — deterministic post-processing of a finished analysis.

  detect_allergens           keyword match over the ingredient text
  calculate_health_score     0–100 from the per-ingredient statuses
  detect_harmful_ingredients keyword match over names, reasons and concerns

No I/O and no failure modes: anything malformed simply matches nothing.
"""
from __future__ import annotations

import re
from typing import Any, Iterable

from providers.base import AnalysisEntry, AnalysisStatus

# ── Allergens ─────────────────────────────────────────────────────────────────
# Category → keyword patterns, each with its own plural form. Order is the order
# categories are reported in. Plant fats and cream of tartar are not dairy.
ALLERGEN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Milk":      (r"milk", r"dairy", r"lactose", r"whey", r"caseins?", r"caseinates?",
                  r"(?<!cocoa\s)(?<!shea\s)(?<!coconut\s)(?<!peanut\s)(?<!nut\s)butter",
                  r"(?<!coconut\s)cream(?!\s+of\s+tartar)",
                  r"cheeses?", r"ghee", r"yogh?urts?", r"curds?"),
    "Eggs":      (r"eggs?", r"albumin", r"ovalbumin", r"mayonnaise"),
    "Peanuts":   (r"peanuts?", r"groundnuts?"),
    "Tree nuts": (r"almonds?", r"cashews?", r"walnuts?", r"pecans?", r"pistachios?", r"hazelnuts?",
                  r"macadamias?", r"brazil\s+nuts?"),
    "Soy":       (r"soy", r"soya", r"soybeans?", r"tofu", r"edamame"),
    "Gluten":    (r"wheat", r"gluten", r"barley", r"rye", r"oats?", r"malt", r"maida", r"semolina", r"atta"),
    "Fish":      (r"fish", r"anchov(?:y|ies)", r"salmon", r"tuna", r"cod"),
    "Shellfish": (r"shrimps?", r"prawns?", r"crabs?", r"lobsters?", r"shellfish"),
    "Sesame":    (r"sesame", r"til", r"tahini"),
    "Mustard":   (r"mustard",),
    "Sulphites": (r"sulphites?", r"sulfites?", r"sulphur\s+dioxide", r"sulfur\s+dioxide", r"ins\s?220"),
}

# ── Harmful ingredients ───────────────────────────────────────────────────────
# Keyword → category
HARMFUL_KEYWORDS: dict[str, str] = {
    "high fructose corn syrup": "Added sugar",
    "corn syrup":               "Added sugar",
    "hydrogenated":             "Trans fat",
    "trans fat":                "Trans fat",
    "palm oil":                 "Saturated fat",
    "monosodium glutamate":     "Flavour enhancer",
    "msg":                      "Flavour enhancer",
    "aspartame":                "Artificial sweetener",
    "acesulfame":               "Artificial sweetener",
    "sucralose":                "Artificial sweetener",
    "saccharin":                "Artificial sweetener",
    "sodium nitrite":           "Preservative",
    "sodium nitrate":           "Preservative",
    "sodium benzoate":          "Preservative",
    "potassium bromate":        "Additive",
    "bha":                      "Preservative",
    "bht":                      "Preservative",
    "tbhq":                     "Preservative",
    "artificial colour":        "Artificial colour",
    "artificial color":         "Artificial colour",
    "tartrazine":               "Artificial colour",
    "sunset yellow":            "Artificial colour",
    "red 40":                   "Artificial colour",
    "yellow 5":                 "Artificial colour",
    "carcinogen":               "Health risk",
}


def _word_pattern(fragment: str) -> re.Pattern:
    # whole-word match so "til" does not fire inside "distilled"
    return re.compile(r"(?<![a-z0-9])(?:" + fragment + r")(?![a-z0-9])", re.IGNORECASE)


_ALLERGEN_PATTERNS = {
    category: tuple(_word_pattern(k) for k in keywords)
    for category, keywords in ALLERGEN_KEYWORDS.items()
}
_HARMFUL_PATTERNS = [
    (keyword, category, _word_pattern(re.escape(keyword) + "s?"))
    for keyword, category in HARMFUL_KEYWORDS.items()
]

# Statuses below weigh into the health score; Bad contributes nothing.
_STATUS_WEIGHT = {
    AnalysisStatus.GOOD:    1.0,
    AnalysisStatus.NEUTRAL: 0.5,
    AnalysisStatus.BAD:     0.0,
}


def detect_allergens(ingredients_text: Any) -> list[str]:
    if not isinstance(ingredients_text, str) or not ingredients_text:
        return []
    return [
        category
        for category, patterns in _ALLERGEN_PATTERNS.items()
        if any(p.search(ingredients_text) for p in patterns)
    ]


def calculate_health_score(entries: Iterable[AnalysisEntry]) -> int:
    """
    Weighted share of non-Bad entries, scaled to 0–100.
    Adding a Bad entry, or turning any entry Bad, never raises the score.
    """
    statuses = [e.status for e in (entries or ()) if isinstance(e, AnalysisEntry)]
    if not statuses:
        return 0
    total = sum(_STATUS_WEIGHT[s] for s in statuses)
    return int(round(100 * total / len(statuses)))


def detect_harmful_ingredients(entries: Iterable[AnalysisEntry]) -> list[dict[str, str]]:
    flagged: list[dict[str, str]] = []
    seen: set[str] = set()
    for entry in entries or ():
        if not isinstance(entry, AnalysisEntry):
            continue
        haystack = " ".join((entry.ingredient, entry.reason, *entry.concerns))
        for keyword, category, pattern in _HARMFUL_PATTERNS:
            if pattern.search(haystack):
                name = entry.ingredient.lower()
                if name not in seen:
                    seen.add(name)
                    flagged.append({"ingredient": entry.ingredient, "keyword": keyword, "category": category})
                break
    return flagged
