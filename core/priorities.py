"""Utility helpers for task priorities."""
from __future__ import annotations

from typing import Dict

# Ordered from least to most pressing; the rank drives list sorting.
PRIORITY_RANK: Dict[str, int] = {
    "low": 0,
    "medium": 1,
    "high": 2,
    "urgent": 3,
}

DEFAULT_PRIORITY = "medium"


def normalize_priority(value: str | None) -> str:
    """Map external values onto the supported priority names."""
    if value is None:
        return DEFAULT_PRIORITY
    lowered = str(value).strip().lower()
    if lowered in PRIORITY_RANK:
        return lowered
    return DEFAULT_PRIORITY
