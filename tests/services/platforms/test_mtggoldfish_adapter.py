"""Tests for the MTGGoldfish adapter."""
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from deckbridge.services.platforms.adapters import MTGGoldfishAdapter, mtggoldfish
from deckbridge.services.platforms.types import CommanderSource, ExportOptions

ATRAXA = "Atraxa, Praetors' Voice"

GOLDFISH_TEXT = """Deck: Mono Red Burn
Format: Modern
Author: goldfisher
Date: 2024-02-10

Mainboard
4 Lightning Bolt $1.25
4 Lava Spike $0.50
12 Mountain

Sideboard
2 Pyroblast $3.00
"""


@pytest.fixture
def adapter(fetcher):
    return MTGGoldfishAdapter(fetcher=fetcher)


class TestDetection:
    """Tests for MTGGoldfish input detection."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", [
        "https://www.mtggoldfish.com/deck/12345",
        "https://mtggoldfish.com/archetype/678#paper",
    ])
    async def test_deck_urls(self, adapter, url):
        assert await adapter.score_input(url) == 1.0

    @pytest.mark.asyncio
    async def test_section_headers(self, adapter):
        assert await adapter.score_input(GOLDFISH_TEXT) == 0.85

    @pytest.mark.asyncio
    async def test_prices_alone(self, adapter):
        assert await adapter.score_input("1 Sol Ring $1.50\n1 Arcane Signet $0.25") == 0.85

    @pytest.mark.asyncio
    async def test_plain_list_not_claimed(self, adapter):
        assert await adapter.can_handle("1 Sol Ring\n1 Arcane Signet") is False

    @pytest.mark.asyncio
    async def test_header_words_inside_names_ignored(self, adapter):
        """Only whole-line headers count, not card names containing them."""
        assert await adapter.can_handle("1 Sideboard Tutor\n1 Sol Ring") is False


class TestParse:
    """Tests for parsing MTGGoldfish text."""

    @pytest.mark.asyncio
    async def test_url_uses_download_endpoint(self, adapter, fetcher):
        fetcher.get_text.return_value = "4 Lightning Bolt\n20 Mountain\n\n2 Pyroblast\n"

        result = await adapter.parse_decks("https://www.mtggoldfish.com/deck/12345")
        deck = result.deck

        fetcher.get_text.assert_awaited_with("https://www.mtggoldfish.com/deck/download/12345", "mtggoldfish")
        assert deck.metadata.source_url == "https://www.mtggoldfish.com/deck/12345"
        assert [c.name for c in deck.cards] == ["Lightning Bolt", "Mountain"]
        assert [c.name for c in deck.sideboard] == ["Pyroblast"]

    @pytest.mark.asyncio
    async def test_pasted_text_keeps_blank_lines_in_main(self, adapter):
        deck = (await adapter.parse_decks("Mainboard\n4 Lightning Bolt\n\n20 Mountain")).deck

        assert [c.name for c in deck.cards] == ["Lightning Bolt", "Mountain"]
        assert deck.sideboard == []

    @pytest.mark.asyncio
    async def test_text(self, adapter):
        result = await adapter.parse_decks(GOLDFISH_TEXT)
        deck = result.deck

        assert result.success is True
        assert deck.name == "Mono Red Burn"
        assert deck.format == "modern"
        assert deck.metadata.author == "goldfisher"
        assert deck.metadata.created_at.date().isoformat() == "2024-02-10"
        assert [(c.name, c.quantity) for c in deck.cards] == [
            ("Lightning Bolt", 4), ("Lava Spike", 4), ("Mountain", 12),
        ]
        assert [c.name for c in deck.sideboard] == ["Pyroblast"]
        assert deck.commander is None

    @pytest.mark.asyncio
    async def test_prices(self, adapter):
        deck = (await adapter.parse_decks(GOLDFISH_TEXT)).deck

        assert deck.cards[0].metadata["price"] == 1.25
        assert "price" not in deck.cards[2].metadata
        # 4 * 1.25 + 4 * 0.50 + 2 * 3.00
        assert deck.metadata.custom_fields["total_price"] == 13.0
        assert deck.metadata.custom_fields["original_format"] == "modern"

    @pytest.mark.asyncio
    async def test_commander_section(self, adapter):
        text = f"Commander\n1 {ATRAXA}\n\nMainboard\n1 Sol Ring"

        deck = (await adapter.parse_decks(text)).deck

        assert deck.commander.name == ATRAXA
        assert deck.commander.category == "Commander"
        assert deck.metadata.commander_source == CommanderSource.CATEGORY
        assert [c.name for c in deck.cards] == ["Sol Ring"]


class TestExport:
    """Tests for MTGGoldfish text export."""

    @pytest.mark.asyncio
    async def test_export_text(self, adapter, sample_deck):
        result = await adapter.export_deck(sample_deck)
        lines = result.data.splitlines()
        today = datetime.now(timezone.utc).date().isoformat()

        assert result.filename == "Atraxa_Superfriends_mtggoldfish.txt"
        assert lines[:5] == [
            "Deck: Atraxa Superfriends",
            "Format: commander",
            "Author: planeswalker",
            f"Date: {today}",
            "",
        ]
        assert lines[5:7] == ["Commander", f"1 {ATRAXA}"]
        assert "Mainboard" in lines
        assert lines[-2:] == ["Sideboard", "1 Swords to Plowshares"]
        assert "Deepglow Skate" not in result.data

    @pytest.mark.asyncio
    async def test_dropped_maybeboard_is_logged(self, adapter, sample_deck):
        """MTGGoldfish has no maybeboard, so exporting one is reported as data loss."""
        with patch.object(mtggoldfish, "logger") as mock_logger:
            await adapter.export_deck(sample_deck)

        mock_logger.warning.assert_called_once_with(
            "Maybeboard dropped from MTGGoldfish export",
            deck="Atraxa Superfriends",
            cards=1,
        )

    @pytest.mark.asyncio
    async def test_no_warning_without_maybeboard(self, adapter, sample_deck):
        sample_deck.maybeboard = []

        with patch.object(mtggoldfish, "logger") as mock_logger:
            await adapter.export_deck(sample_deck)

        mock_logger.warning.assert_not_called()

    @pytest.mark.asyncio
    async def test_prices_when_requested(self, adapter, sample_deck):
        sample_deck.cards[0].metadata["price"] = 1.5

        plain = await adapter.export_deck(sample_deck)
        priced = await adapter.export_deck(sample_deck, options=ExportOptions(include_prices=True))

        assert "1 Sol Ring" in plain.data.splitlines()
        assert "1 Sol Ring $1.50" in priced.data.splitlines()

    @pytest.mark.asyncio
    async def test_round_trip(self, adapter, sample_deck, quantities):
        exported = await adapter.export_deck(sample_deck)

        assert await adapter.score_input(exported.data) == 0.85
        deck = (await adapter.parse_decks(exported.data)).deck

        assert deck.name == sample_deck.name
        assert deck.commander.name == ATRAXA
        assert deck.metadata.author == "planeswalker"
        assert quantities(deck) == quantities(sample_deck)
        assert [c.name for c in deck.sideboard] == ["Swords to Plowshares"]
