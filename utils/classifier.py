"""Deterministic keyword classifier for complaint category and priority.

The engine only depends on the ``categorize``/``detect_priority`` pair, so any
object exposing those two methods can replace ``KeywordClassifier``.
"""
from __future__ import annotations

from typing import Dict, Iterable, Protocol, Tuple

# Insertion order is the match order: the first category with a hit wins.
CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "mess": ("food", "mess", "dining", "meal", "canteen", "cafeteria", "kitchen", "taste", "hygiene food", "menu"),
    "infrastructure": (
        "room", "building", "wifi", "electricity", "water", "plumbing", "ac", "fan",
        "furniture", "repair", "maintenance", "broken", "damaged",
    ),
    "harassment": (
        "harassment", "bully", "threat", "abuse", "assault", "misbehavior",
        "inappropriate", "unsafe", "ragging", "discrimination",
    ),
    "hygiene": ("clean", "dirty", "washroom", "toilet", "bathroom", "sanitation", "garbage", "smell", "pest"),
    "security": ("security", "safety", "guard", "entry", "gate", "theft", "lost", "stolen", "unauthorized"),
    "academic": ("class", "professor", "teacher", "exam", "assignment", "grade", "course", "lab", "library", "books"),
}

URGENT_KEYWORDS: Tuple[str, ...] = ("urgent", "emergency", "immediate", "critical", "severe", "danger", "serious")

CATEGORY_DEFAULT_PRIORITY: Dict[str, str] = {
    "security": "high",
    "hygiene": "high",
    "infrastructure": "medium",
    "mess": "medium",
}


class ComplaintClassifier(Protocol):
    def categorize(self, title: str, description: str) -> str: ...

    def detect_priority(self, description: str, category: str) -> str: ...


class KeywordClassifier:
    """Substring keyword matching over lower-cased text."""

    def __init__(
        self,
        category_keywords: Dict[str, Iterable[str]] | None = None,
        urgent_keywords: Iterable[str] | None = None,
    ) -> None:
        source = category_keywords if category_keywords is not None else CATEGORY_KEYWORDS
        self.category_keywords = {name: tuple(words) for name, words in source.items()}
        self.urgent_keywords = tuple(urgent_keywords if urgent_keywords is not None else URGENT_KEYWORDS)

    def categorize(self, title: str, description: str) -> str:
        text = f"{title or ''} {description or ''}".lower()
        for category, keywords in self.category_keywords.items():
            if category == "other":
                continue
            if any(keyword in text for keyword in keywords):
                return category
        return "other"

    def detect_priority(self, description: str, category: str) -> str:
        if category == "harassment":
            return "urgent"
        text = (description or "").lower()
        if any(keyword in text for keyword in self.urgent_keywords):
            return "urgent"
        return CATEGORY_DEFAULT_PRIORITY.get(category, "low")
