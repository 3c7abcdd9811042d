"""Tests for the Archidekt adapter."""
import json

import pytest

from deckbridge.services.platforms.adapters import ArchidektAdapter
from deckbridge.services.platforms.adapters.archidekt import format_id_to_name, format_name_to_id
from deckbridge.services.platforms.types import CommanderSource

ATRAXA = "Atraxa, Praetors' Voice"


def archidekt_payload(**overrides) -> dict:
    payload = {
        "id": 123456,
        "name": "Atraxa Counters",
        "description": "Counters matter",
        "format": 3,
        "owner": {"id": 77, "username": "counterspell"},
        "createdAt": "2024-03-01T12:00:00Z",
        "cards": [
            {
                "id": 1,
                "quantity": 1,
                "categories": ["Commander"],
                "card": {
                    "uid": "d0d33d52",
                    "edition": {"editioncode": "c16"},
                    "oracleCard": {
                        "name": ATRAXA,
                        "superTypes": ["Legendary"],
                        "types": ["Creature"],
                        "colorIdentity": ["W", "U", "B", "G"],
                        "cmc": 4,
                    },
                },
            },
            {"id": 2, "quantity": 1, "categories": ["Ramp"], "card": {"name": "Sol Ring"}},
            {"id": 3, "quantity": 1, "categories": ["Ramp"], "modifier": "Foil", "card": {"name": "Arcane Signet"}},
            {"id": 4, "quantity": 12, "categories": ["Land"], "card": {"name": "Forest"}},
            {"id": 5, "quantity": 1, "categories": ["Sideboard"], "card": {"name": "Swords to Plowshares"}},
            {"id": 6, "quantity": 1, "categories": ["Maybeboard"], "card": {"name": "Deepglow Skate"}},
        ],
        "categories": [
            {"name": "Commander", "includedInDeck": True},
            {"name": "Ramp", "includedInDeck": True},
            {"name": "Land", "includedInDeck": True},
            {"name": "Sideboard", "includedInDeck": False},
            {"name": "Maybeboard", "includedInDeck": False},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def adapter(fetcher):
    return ArchidektAdapter(fetcher=fetcher)


class TestFormatIds:
    """Tests for the Archidekt format id table."""

    @pytest.mark.parametrize("format_id,name", [(1, "standard"), (3, "legacy"), (5, "commander"), (14, "pioneer")])
    def test_id_to_name(self, format_id, name):
        assert format_id_to_name(format_id) == name
        assert format_name_to_id(name) == format_id

    def test_unknown_values_fall_back_to_commander(self):
        assert format_id_to_name(999) == "commander"
        assert format_id_to_name("junk") == "commander"
        assert format_name_to_id("unknown-format") == 5
        assert format_name_to_id(None) == 5

    def test_edh_alias(self):
        assert format_name_to_id("EDH") == 5


class TestDetection:
    """Tests for Archidekt input detection."""

    @pytest.mark.asyncio
    async def test_deck_url(self, adapter):
        assert await adapter.score_input("https://archidekt.com/decks/123456/atraxa") == 1.0

    @pytest.mark.asyncio
    async def test_api_json(self, adapter):
        assert await adapter.score_input(json.dumps(archidekt_payload())) == 0.95

    @pytest.mark.asyncio
    async def test_owner_as_plain_id(self, adapter):
        assert await adapter.can_handle(json.dumps(archidekt_payload(owner=77))) is True

    @pytest.mark.asyncio
    async def test_string_id_rejected(self, adapter):
        """Archidekt ids are integers; string ids belong to other platforms."""
        assert await adapter.can_handle(json.dumps(archidekt_payload(id="abc"))) is False


class TestParse:
    """Tests for parsing Archidekt payloads."""

    @pytest.mark.asyncio
    async def test_url_is_fetched_from_api(self, adapter, fetcher):
        fetcher.get_text.return_value = json.dumps(archidekt_payload())

        result = await adapter.parse_decks("https://www.archidekt.com/decks/123456")

        fetcher.get_text.assert_awaited_with("https://archidekt.com/api/decks/123456/", "archidekt")
        assert result.success is True

    @pytest.mark.asyncio
    async def test_payload(self, adapter):
        result = await adapter.parse_decks(json.dumps(archidekt_payload()))
        deck = result.deck

        assert result.success is True
        assert deck.id == "123456"
        assert deck.format == "legacy"
        assert deck.commander.name == ATRAXA
        assert deck.metadata.commander_source == CommanderSource.CATEGORY
        assert [c.name for c in deck.cards] == ["Sol Ring", "Arcane Signet", "Forest"]
        assert [c.name for c in deck.sideboard] == ["Swords to Plowshares"]
        assert [c.name for c in deck.maybeboard] == ["Deepglow Skate"]
        assert deck.metadata.author == "counterspell"
        assert deck.metadata.custom_fields["owner_id"] == 77
        assert deck.metadata.colors == ["W", "U", "B", "G"]

    @pytest.mark.asyncio
    async def test_oracle_card_fields(self, adapter):
        """Name and type line fall back to the nested oracle card."""
        deck = (await adapter.parse_decks(json.dumps(archidekt_payload()))).deck

        assert deck.commander.metadata["type_line"] == "Legendary Creature"
        assert deck.commander.set_code == "c16"
        assert deck.commander.scryfall_id == "d0d33d52"
        assert deck.cards[1].is_foil is True

    @pytest.mark.asyncio
    async def test_excluded_categories_dropped(self, adapter):
        deck = (await adapter.parse_decks(json.dumps(archidekt_payload()))).deck

        assert [c.name for c in deck.categories] == ["Commander", "Ramp", "Land"]
        assert deck.categories[1].cards == ["Sol Ring", "Arcane Signet"]


class TestExport:
    """Tests for Archidekt JSON export."""

    @pytest.mark.asyncio
    async def test_export_shape(self, adapter, sample_deck):
        result = await adapter.export_deck(sample_deck)
        payload = json.loads(result.data)

        assert result.filename == "Atraxa_Superfriends_archidekt.json"
        assert payload["format"] == 5
        assert payload["cards"][0]["card"]["name"] == ATRAXA
        assert payload["cards"][0]["categories"] == ["Commander"]
        categories = {c["name"]: c for c in payload["categories"]}
        assert categories["Sideboard"]["includedInDeck"] is False
        assert categories["Commander"]["isPremier"] is True
        foil = next(e for e in payload["cards"] if e["card"]["name"] == "Doubling Season")
        assert foil["modifier"] == "Foil"

    @pytest.mark.asyncio
    async def test_round_trip(self, adapter, sample_deck, quantities):
        exported = await adapter.export_deck(sample_deck)

        assert await adapter.can_handle(exported.data) is True
        deck = (await adapter.parse_decks(exported.data)).deck

        assert deck.commander.name == ATRAXA
        assert deck.format == "commander"
        assert quantities(deck) == quantities(sample_deck)
        assert [c.name for c in deck.sideboard] == ["Swords to Plowshares"]
        assert [c.name for c in deck.maybeboard] == ["Deepglow Skate"]
        assert next(c for c in deck.cards if c.name == "Sol Ring").category == "Ramp"
