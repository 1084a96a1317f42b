"""
ingredients.py — pull the ingredient list out of raw OCR text.

Primary path:  find the "Ingredients:" heading and keep everything up to the
               next label section (nutrition table, allergen advice, storage,
               manufacturer block, ...).
Fallback path: when the primary path finds too little (no heading, or the
               heading was mangled by OCR), take the whole text and cut off the
               trailing boilerplate sections instead.

Nothing here raises. The caller decides what to do with an insufficient result.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

import config

_ANCHOR = re.compile(r"\bingred[il1]ents?\b\s*[:;.\-]?\s*", re.IGNORECASE)

# Headings that start the section after the ingredient list
_SECTION_BOUNDARY = re.compile(
    r"\b(?:"
    r"nutrition(?:al)?(?:\s+(?:facts|information|info|values?)\b|\s*:)"
    r"|allergen(?:s)?(?:\s+(?:advice|information|info))?\s*:"
    r"|contains\s*:"
    r"|may\s+contain"
    r"|serving\s+size"
    r"|servings\s+per"
    r"|manufactured|mfd\.?\s+by|packed\s+by|marketed\s+by|distributed\s+by"
    r"|store\s+in|storage"
    r"|best\s+before|use\s+by|expiry"
    r"|net\s*(?:wt|weight|qty|quantity)"
    r"|directions"
    r")",
    re.IGNORECASE,
)

# Trailing sections stripped by the fallback; everything from the match onward goes
_FALLBACK_STRIP = (
    re.compile(r"nutrition(?:al)?\s+(?:information|facts).*$", re.IGNORECASE | re.DOTALL),
    re.compile(r"serving\s+size.*$", re.IGNORECASE | re.DOTALL),
    re.compile(r"manufactured.*$", re.IGNORECASE | re.DOTALL),
)

_WHITESPACE = re.compile(r"\s+")


def _squash(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def extract_ingredients(text: str) -> str:
    """
    Return the text between the ingredients heading and the next section,
    whitespace-collapsed. Empty string when there is no heading.
    """
    if not text:
        return ""
    anchor = _ANCHOR.search(text)
    if not anchor:
        return ""
    body = text[anchor.end():]
    boundary = _SECTION_BOUNDARY.search(body)
    if boundary:
        body = body[:boundary.start()]
    return _squash(body)


def strip_non_ingredient_sections(text: str) -> str:
    """Drop nutrition / serving / manufacturer sections from the raw text."""
    remainder = text or ""
    for pattern in _FALLBACK_STRIP:
        remainder = pattern.sub("", remainder)
    return _squash(remainder)


@dataclass(frozen=True)
class ExtractedIngredients:
    text: str                 # what gets analysed
    primary_text: str         # what the heading-based pass found (debug context)
    used_fallback: bool

    @property
    def is_sufficient(self) -> bool:
        minimum = (
            config.MIN_FALLBACK_INGREDIENTS_LENGTH if self.used_fallback
            else config.MIN_INGREDIENTS_LENGTH
        )
        return len(self.text) >= minimum


def select_ingredients(text: str) -> ExtractedIngredients:
    primary = extract_ingredients(text)
    if len(primary) >= config.MIN_INGREDIENTS_LENGTH:
        return ExtractedIngredients(text=primary, primary_text=primary, used_fallback=False)
    return ExtractedIngredients(
        text=strip_non_ingredient_sections(text),
        primary_text=primary,
        used_fallback=True,
    )
