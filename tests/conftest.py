"""
Pytest configuration and fixtures.

Provides fixtures for:
- A representative Commander deck in the standard model
- A mocked fetch collaborator (no network in tests)
- A registry populated with the built-in adapters
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from deckbridge.services.platforms import initialize_adapters
from deckbridge.services.platforms.fetch import PlatformFetcher
from deckbridge.services.platforms.registry import AdapterRegistry
from deckbridge.services.platforms.types import (
    DeckCategory,
    DeckMetadata,
    StandardCard,
    StandardDeck,
)

ATRAXA = "Atraxa, Praetors' Voice"


@pytest.fixture
def fetcher():
    """PlatformFetcher double; set ``fetcher.get_text.return_value`` per test."""
    mock = MagicMock(spec=PlatformFetcher)
    mock.get_text = AsyncMock(return_value="")
    return mock


@pytest.fixture
def registry(fetcher) -> AdapterRegistry:
    """Fresh registry with the built-in adapters in default order."""
    return initialize_adapters(AdapterRegistry(), fetcher=fetcher)


@pytest.fixture
def sample_deck() -> StandardDeck:
    """Small Atraxa deck with a category, a sideboard and a maybeboard."""
    return StandardDeck(
        name="Atraxa Superfriends",
        description="Proliferate planeswalkers",
        format="commander",
        commander=StandardCard(
            name=ATRAXA,
            quantity=1,
            metadata={
                "type_line": "Legendary Creature \u2014 Phyrexian Angel Horror",
                "color_identity": ["W", "U", "B", "G"],
            },
        ),
        cards=[
            StandardCard(name="Sol Ring", quantity=1, category="Ramp", set_code="C21"),
            StandardCard(name="Arcane Signet", quantity=1, category="Ramp"),
            StandardCard(name="Doubling Season", quantity=1, is_foil=True),
            StandardCard(name="Forest", quantity=10),
        ],
        sideboard=[StandardCard(name="Swords to Plowshares", quantity=1)],
        maybeboard=[StandardCard(name="Deepglow Skate", quantity=1)],
        categories=[DeckCategory(name="Ramp", cards=["Sol Ring", "Arcane Signet"])],
        metadata=DeckMetadata(source="Test", author="planeswalker"),
    )


@pytest.fixture
def quantities():
    """Name -> summed quantity for a deck's main board."""
    def _quantities(deck: StandardDeck) -> dict[str, int]:
        totals: dict[str, int] = {}
        for card in deck.cards:
            totals[card.name] = totals.get(card.name, 0) + card.quantity
        return totals
    return _quantities
