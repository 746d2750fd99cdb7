"""
Automatic category assignment.

Categories with a regex (explicit, or a built-in default for well-known
names) are tried first, deepest and longest-named first; the first match on
the title wins. Otherwise each category's name tokens are scored against the
title, and the best category is picked by (score, depth, name length).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern

from ..entries import CategoryDefinition

logger = logging.getLogger(__name__)

DEFAULT_REGEX: Dict[str, str] = {
    "спліттери": r"(спліттер|сплиттер|splitter|lip|губа|передній дифузор|передный диффузор)",
    "дифузори": r"(дифузор|диффузор|diffuser)",
    "спойлери": r"(спойлер|spoiler)",
    "пороги": r"(поріг|порог|side\s*skirt|skirt)",
    "решітки": r"(решітка|решетка|решітки|решетки|grill|grille|гриль)",
    "бампери": r"(бампер|bumper)",
    "диски": r"(диск|wheels?|\br\d{2}\b)",
}

STOPWORDS = frozenset(
    {"і", "й", "та", "або", "для", "в", "у", "на", "по", "з", "до", "від", "під", "над",
     "комплект", "набір", "набори", "комплекти"}
)
PLURAL_SUFFIXES = ("и", "і", "ї", "ы", "я", "а", "es", "s")
MAX_DEPTH = 32

_SEPARATORS = re.compile(r"[_/\\\-—–]")
_NON_WORD = re.compile(r"[^\w\s]")


def normalize_text(text: str) -> str:
    text = _SEPARATORS.sub(" ", text.lower())
    return _NON_WORD.sub(" ", text).replace("_", " ")


def name_tokens(name: str) -> List[str]:
    """Tokens of a category name plus crude singular forms."""
    tokens = []
    for token in normalize_text(name).split():
        if len(token) < 3 or token in STOPWORDS:
            continue
        tokens.append(token)
        for suffix in PLURAL_SUFFIXES:
            if token.endswith(suffix) and len(token) > len(suffix) + 2:
                tokens.append(token[: -len(suffix)])
    return tokens


def _depth(category_id: str, by_id: Dict[str, CategoryDefinition]) -> int:
    depth = 0
    seen = set()
    current = by_id.get(category_id)
    while current is not None and current.parent_id and depth < MAX_DEPTH:
        if current.parent_id in seen:
            break
        seen.add(current.parent_id)
        depth += 1
        current = by_id.get(current.parent_id)
    return depth


@dataclass
class PreparedCategory:
    id: str
    name: str
    depth: int
    regex: Optional[Pattern[str]] = None
    tokens: List[str] = field(default_factory=list)


class CategoryMatcher:
    """Guesses a category id for a product title."""

    def __init__(self, categories: Iterable[CategoryDefinition]):
        categories = list(categories)
        by_id = {c.id: c for c in categories}
        prepared = []
        for category in categories:
            pattern = category.regex or DEFAULT_REGEX.get(normalize_text(category.name).strip())
            regex = None
            if pattern:
                try:
                    regex = re.compile(pattern, re.IGNORECASE)
                except re.error as e:
                    logger.warning(f"Invalid regex for category {category.name}: {e}")
            prepared.append(
                PreparedCategory(
                    id=category.id,
                    name=category.name,
                    depth=_depth(category.id, by_id),
                    regex=regex,
                    tokens=[] if regex else name_tokens(category.name),
                )
            )
        prepared.sort(key=lambda c: (-c.depth, -len(c.name)))
        self._ordered = prepared

    def __bool__(self) -> bool:
        return bool(self._ordered)

    def guess(self, title: str) -> Optional[str]:
        title = (title or "").strip()
        if not title or not self._ordered:
            return None

        for category in self._ordered:
            if category.regex is not None and category.regex.search(title):
                return category.id

        haystack = normalize_text(title)
        best = None
        best_rank = None
        for category in self._ordered:
            if not category.tokens:
                continue
            score = sum(1 for token in set(category.tokens) if token in haystack)
            if score == 0:
                continue
            rank = (score, category.depth, len(category.name))
            if best_rank is None or rank > best_rank:
                best, best_rank = category, rank
        return best.id if best else None


__all__ = ["CategoryMatcher", "name_tokens", "normalize_text"]
