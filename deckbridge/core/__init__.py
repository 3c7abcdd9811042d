"""
Core module containing configuration and shared utilities.
"""
from deckbridge.core.config import settings
from deckbridge.core.constants import (
    CardCondition,
    normalize_condition,
    CONDITION_ALIASES,
)

__all__ = [
    "settings",
    "CardCondition",
    "normalize_condition",
    "CONDITION_ALIASES",
]
