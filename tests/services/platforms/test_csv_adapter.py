"""Tests for the CSV/TSV adapter and its column heuristics."""
import pytest

from deckbridge.services.platforms.adapters import CSVAdapter
from deckbridge.services.platforms.adapters.delimited import (
    detect_delimiter,
    looks_like_header,
    map_columns,
)
from deckbridge.services.platforms.types import (
    CommanderSource,
    DeckFile,
    ExportOptions,
    WarningType,
)

ATRAXA = "Atraxa, Praetors' Voice"


@pytest.fixture
def adapter(fetcher):
    return CSVAdapter(fetcher=fetcher)


class TestHeuristics:
    """Tests for delimiter, header and column detection."""

    @pytest.mark.parametrize("line,delimiter", [
        ("Name,Quantity,Set", ","),
        ("Name\tQuantity\tSet", "\t"),
        ("Name;Quantity;Set", ";"),
        ("Name|Quantity|Set", "|"),
        ('"Atraxa, Praetors\' Voice";1;C16', ";"),
    ])
    def test_detect_delimiter(self, line, delimiter):
        assert detect_delimiter(line) == delimiter

    def test_header_detection(self):
        assert looks_like_header(["Name", "Quantity"]) is True
        assert looks_like_header(["Card", "Count", "Edition"]) is True
        assert looks_like_header(["Sol Ring", "1"]) is False
        assert looks_like_header(["Forest", "Island"]) is False

    def test_map_columns(self):
        """Set and type headers containing 'name' or 'card' map to their own fields."""
        header = ["Card Name", "Qty", "Set Name", "Card Type", "Price", "Foil", "Condition", "Mana Cost"]

        assert map_columns(header) == {
            "name": 0,
            "quantity": 1,
            "set": 2,
            "category": 3,
            "price": 4,
            "foil": 5,
            "condition": 6,
        }

    def test_first_matching_header_wins(self):
        assert map_columns(["Name", "Card"]) == {"name": 0}


class TestDetection:
    """Tests for CSV input detection."""

    @pytest.mark.asyncio
    async def test_with_header(self, adapter):
        assert await adapter.score_input("Name,Quantity\nLightning Bolt,4\nCounterspell,3") == 0.9

    @pytest.mark.asyncio
    async def test_without_header(self, adapter):
        assert await adapter.score_input("Lightning Bolt,4\nCounterspell,3") == 0.6

    @pytest.mark.asyncio
    async def test_single_line_rejected(self, adapter):
        assert await adapter.can_handle("Name,Quantity") is False

    @pytest.mark.asyncio
    async def test_json_rejected(self, adapter):
        assert await adapter.can_handle('{"a": 1,\n"b": 2}') is False

    @pytest.mark.asyncio
    async def test_plain_list_rejected(self, adapter):
        assert await adapter.can_handle("4 Lightning Bolt\n3 Counterspell") is False

    @pytest.mark.asyncio
    async def test_extension_fallback(self, adapter):
        """A .csv file is claimed on its name even when the content is unusual."""
        assert await adapter.score_input(DeckFile(name="deck.csv", content="Sol Ring")) == 0.7


class TestParse:
    """Tests for parsing delimited decks."""

    @pytest.mark.asyncio
    async def test_header_row(self, adapter):
        result = await adapter.parse_decks("Name,Quantity\nLightning Bolt,4\nCounterspell,3")
        deck = result.deck

        assert result.success is True
        assert deck.name == "Imported Deck"
        assert [(c.name, c.quantity) for c in deck.cards] == [("Lightning Bolt", 4), ("Counterspell", 3)]
        assert deck.metadata.custom_fields == {
            "original_filename": "imported_deck",
            "delimiter": ",",
            "has_headers": True,
            "total_rows": 2,
        }

    @pytest.mark.asyncio
    async def test_file_name_becomes_deck_name(self, adapter):
        data = DeckFile(name="my-cool_deck.csv", content="Name,Quantity\nSol Ring,1\nForest,30")

        deck = (await adapter.parse_decks(data)).deck

        assert deck.name == "My Cool Deck"
        assert deck.metadata.custom_fields["original_filename"] == "my-cool_deck"

    @pytest.mark.asyncio
    async def test_bytes_with_bom(self, adapter):
        data = DeckFile(name="deck.csv", content="\ufeffName,Quantity\nSol Ring,1\n".encode("utf-8"))

        deck = (await adapter.parse_decks(data)).deck

        assert deck.cards[0].name == "Sol Ring"

    @pytest.mark.asyncio
    async def test_no_header_quantity_first(self, adapter):
        result = await adapter.parse_decks("4,Sol Ring\n1,Arcane Signet")

        assert [(c.name, c.quantity) for c in result.deck.cards] == [("Sol Ring", 4), ("Arcane Signet", 1)]
        assert result.warnings[0].type == WarningType.FORMAT_ASSUMPTION
        assert result.deck.metadata.custom_fields["has_headers"] is False

    @pytest.mark.asyncio
    async def test_no_header_name_first(self, adapter):
        deck = (await adapter.parse_decks("Sol Ring,1,C21\nForest,30,M21")).deck

        assert [(c.name, c.quantity, c.set_code) for c in deck.cards] == [
            ("Sol Ring", 1, "C21"),
            ("Forest", 30, "M21"),
        ]

    @pytest.mark.asyncio
    async def test_other_delimiters(self, adapter):
        deck = (await adapter.parse_decks("Name;Quantity;Set\nSol Ring;1;C21\nForest;30;M21")).deck

        assert deck.cards[0].set_code == "C21"
        assert deck.metadata.custom_fields["delimiter"] == ";"

    @pytest.mark.asyncio
    async def test_missing_name_column_fails(self, adapter):
        result = await adapter.parse_decks("Quantity,Set\n1,C21\n2,M21")

        assert result.success is False
        assert "no card name column" in result.errors[0].message

    @pytest.mark.asyncio
    async def test_rows_without_name_are_skipped(self, adapter):
        result = await adapter.parse_decks("Name,Quantity\nSol Ring,1\n,2\nForest,3")

        assert [c.name for c in result.deck.cards] == ["Sol Ring", "Forest"]
        assert result.warnings[0].type == WarningType.DATA_LOSS
        assert result.warnings[0].message == "Skipped row 2: no card name"

    @pytest.mark.asyncio
    async def test_card_fields(self, adapter):
        text = (
            "Name,Quantity,Set,Price,Foil,Condition\n"
            "Sol Ring,1,C21,$1.50,yes,NM\n"
            "Forest,2,M21,,no,Weird\n"
        )

        sol_ring, forest = (await adapter.parse_decks(text)).deck.cards

        assert sol_ring.metadata["price"] == 1.5
        assert sol_ring.is_foil is True
        assert sol_ring.condition == "NEAR_MINT"
        assert forest.is_foil is False
        assert forest.condition == "Weird"
        assert "price" not in forest.metadata

    @pytest.mark.asyncio
    async def test_category_routes_boards(self, adapter):
        text = (
            "Name,Quantity,Category\n"
            f'"{ATRAXA}",1,Commander\n'
            "Sol Ring,1,Ramp\n"
            "Arcane Signet,1,Ramp\n"
            "Swords to Plowshares,1,Sideboard\n"
            "Deepglow Skate,1,Maybeboard\n"
        )

        deck = (await adapter.parse_decks(text)).deck

        assert deck.commander.name == ATRAXA
        assert deck.metadata.commander_source == CommanderSource.CATEGORY
        assert [c.name for c in deck.cards] == ["Sol Ring", "Arcane Signet"]
        assert [c.name for c in deck.sideboard] == ["Swords to Plowshares"]
        assert [c.name for c in deck.maybeboard] == ["Deepglow Skate"]
        assert [(c.name, c.cards) for c in deck.categories] == [("Ramp", ["Sol Ring", "Arcane Signet"])]


class TestExport:
    """Tests for CSV and TSV export."""

    @pytest.mark.asyncio
    async def test_csv_export(self, adapter, sample_deck):
        result = await adapter.export_deck(sample_deck)
        lines = result.data.splitlines()

        assert result.filename == "Atraxa_Superfriends.csv"
        assert result.mime_type == "text/csv"
        assert lines[0] == "Name,Quantity,Category,Set,Foil,Condition"
        assert lines[1] == f'"{ATRAXA}",1,Commander,,false,'
        assert lines[2] == "Sol Ring,1,Ramp,C21,false,"
        assert "Doubling Season,1,,,true," in lines
        assert lines[-2:] == ["Swords to Plowshares,1,Sideboard,,false,", "Deepglow Skate,1,Maybeboard,,false,"]

    @pytest.mark.asyncio
    async def test_price_column(self, adapter, sample_deck):
        sample_deck.cards[0].metadata["price"] = 1.5

        result = await adapter.export_deck(sample_deck, "csv", ExportOptions(include_prices=True))
        lines = result.data.splitlines()

        assert lines[0] == "Name,Quantity,Category,Set,Price,Foil,Condition"
        assert lines[2] == "Sol Ring,1,Ramp,C21,1.5,false,"

    @pytest.mark.asyncio
    async def test_tsv_export(self, adapter, sample_deck):
        result = await adapter.export_deck(sample_deck, "tsv")

        assert result.filename == "Atraxa_Superfriends.tsv"
        assert result.mime_type == "text/tab-separated-values"
        assert result.data.splitlines()[0] == "Name\tQuantity\tCategory\tSet\tFoil\tCondition"

    @pytest.mark.asyncio
    async def test_without_categories_keeps_board_markers(self, adapter, sample_deck):
        """Only board rows are labelled when per-card categories are off."""
        exported = await adapter.export_deck(sample_deck, options=ExportOptions(include_categories=False))
        lines = exported.data.splitlines()

        assert lines[0] == "Name,Quantity,Category,Set,Foil,Condition"
        assert lines[1] == f'"{ATRAXA}",1,Commander,,false,'
        assert lines[2] == "Sol Ring,1,,C21,false,"

        deck = (await adapter.parse_decks(exported.data)).deck
        assert deck.commander.name == ATRAXA
        assert ATRAXA not in [c.name for c in deck.cards]
        assert [c.name for c in deck.sideboard] == ["Swords to Plowshares"]

    @pytest.mark.asyncio
    async def test_without_categories_or_boards(self, adapter, sample_deck):
        sample_deck.commander = None
        sample_deck.sideboard = []
        sample_deck.maybeboard = []

        exported = await adapter.export_deck(sample_deck, options=ExportOptions(include_categories=False))

        assert exported.data.splitlines()[:2] == ["Name,Quantity,Set,Foil,Condition", "Sol Ring,1,C21,false,"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fmt", ["csv", "tsv"])
    async def test_round_trip(self, adapter, sample_deck, quantities, fmt):
        exported = await adapter.export_deck(sample_deck, fmt)

        assert await adapter.score_input(exported.data) == 0.9
        deck = (await adapter.parse_decks(exported.data)).deck

        assert deck.commander.name == ATRAXA
        assert quantities(deck) == quantities(sample_deck)
        assert [c.name for c in deck.sideboard] == ["Swords to Plowshares"]
        assert [c.name for c in deck.maybeboard] == ["Deepglow Skate"]
        assert deck.cards[0].category == "Ramp"
        assert deck.cards[0].set_code == "C21"
        assert next(c for c in deck.cards if c.name == "Doubling Season").is_foil is True
