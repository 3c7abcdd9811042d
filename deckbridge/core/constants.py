"""
Card condition constants.

Deck exports from collection-oriented platforms (CSV in particular) carry a
condition column using whatever vocabulary the exporting site prefers. This
module maps those strings onto one standard enum.
"""
from enum import Enum
from typing import Optional


class CardCondition(str, Enum):
    """Standardized card condition grades."""
    MINT = "MINT"
    NEAR_MINT = "NEAR_MINT"
    LIGHTLY_PLAYED = "LIGHTLY_PLAYED"
    MODERATELY_PLAYED = "MODERATELY_PLAYED"
    HEAVILY_PLAYED = "HEAVILY_PLAYED"
    DAMAGED = "DAMAGED"


# Keys are compared case-insensitively by normalize_condition()
CONDITION_ALIASES: dict[str, CardCondition] = {
    # Full names (TCGPlayer, Moxfield, Archidekt exports)
    "mint": CardCondition.MINT,
    "near mint": CardCondition.NEAR_MINT,
    "near_mint": CardCondition.NEAR_MINT,
    "nearmint": CardCondition.NEAR_MINT,
    "near mint/mint": CardCondition.NEAR_MINT,
    "lightly played": CardCondition.LIGHTLY_PLAYED,
    "lightly_played": CardCondition.LIGHTLY_PLAYED,
    "light played": CardCondition.LIGHTLY_PLAYED,
    "moderately played": CardCondition.MODERATELY_PLAYED,
    "moderately_played": CardCondition.MODERATELY_PLAYED,
    "played": CardCondition.MODERATELY_PLAYED,
    "heavily played": CardCondition.HEAVILY_PLAYED,
    "heavily_played": CardCondition.HEAVILY_PLAYED,
    "damaged": CardCondition.DAMAGED,
    "poor": CardCondition.DAMAGED,

    # Abbreviations
    "m": CardCondition.MINT,
    "nm": CardCondition.NEAR_MINT,
    "nm-m": CardCondition.NEAR_MINT,
    "ex": CardCondition.LIGHTLY_PLAYED,
    "excellent": CardCondition.LIGHTLY_PLAYED,
    "lp": CardCondition.LIGHTLY_PLAYED,
    "sp": CardCondition.LIGHTLY_PLAYED,  # Slightly Played = LP
    "good": CardCondition.MODERATELY_PLAYED,
    "gd": CardCondition.MODERATELY_PLAYED,
    "mp": CardCondition.MODERATELY_PLAYED,
    "hp": CardCondition.HEAVILY_PLAYED,
    "dmg": CardCondition.DAMAGED,
    "po": CardCondition.DAMAGED,
}


def normalize_condition(condition: Optional[str]) -> Optional[CardCondition]:
    """
    Normalize a raw condition string to the standard CardCondition enum.

    Args:
        condition: Raw condition string from an export file.

    Returns:
        Normalized CardCondition, or None when the input is blank or unknown.

    Examples:
        >>> normalize_condition("Near Mint")
        <CardCondition.NEAR_MINT: 'NEAR_MINT'>
        >>> normalize_condition("LP")
        <CardCondition.LIGHTLY_PLAYED: 'LIGHTLY_PLAYED'>
        >>> normalize_condition("") is None
        True
    """
    if condition is None:
        return None

    key = condition.strip().lower()
    if not key:
        return None

    if key in CONDITION_ALIASES:
        return CONDITION_ALIASES[key]

    # Accept the enum's own values ("NEAR_MINT") as well
    for member in CardCondition:
        if member.value.lower() == key:
            return member

    return None
