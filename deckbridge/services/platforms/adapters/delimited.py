"""
CSV / TSV deck adapter.

Spreadsheet exports vary in delimiter, in whether a header row exists and in
what the columns are called. The delimiter is sniffed from the first line,
the header row is recognized by keyword, and columns are mapped to card
fields by substring match on the header text.
"""
import csv
import io
import re
from pathlib import Path
from typing import Any, Optional

import structlog

from deckbridge.core.constants import normalize_condition
from deckbridge.services.platforms.base import FingerprintAdapter, safe_filename
from deckbridge.services.platforms.types import (
    AdapterCapabilities,
    CommanderSource,
    DeckCategory,
    DeckFile,
    DeckInput,
    DeckMetadata,
    ExportOptions,
    ParseOptions,
    ParseWarning,
    StandardCard,
    StandardDeck,
    WarningType,
    input_text,
)

logger = structlog.get_logger()

DELIMITERS = (",", "\t", ";", "|")

HEADER_KEYWORDS = (
    "name", "card", "quantity", "qty", "count", "set", "edition",
    "category", "type", "price", "cost", "foil", "condition",
)

# Checked in order; the first field whose fragments appear in a header claims it.
# "name" is last so "Set Name" and "Card Type" land on set and category.
FIELD_FRAGMENTS: list[tuple[str, tuple[str, ...]]] = [
    ("quantity", ("quantity", "qty", "count", "amount")),
    ("collector_number", ("collector",)),
    ("scryfall_id", ("scryfall",)),
    ("set", ("set", "edition")),
    ("category", ("category", "type", "section", "board")),
    ("price", ("price", "cost", "value")),
    ("foil", ("foil", "premium", "finish")),
    ("condition", ("condition", "quality")),
    ("name", ("name", "card")),
]
IGNORED_FRAGMENTS = ("mana", "cmc")

DEFAULT_COLUMNS = ("name", "quantity", "set", "category", "price", "foil", "condition")

TRUE_VALUES = {"true", "1", "yes", "y", "foil", "premium", "etched"}

BOARD_CATEGORIES = {
    "commander": "commander",
    "commanders": "commander",
    "sideboard": "sideboard",
    "maybeboard": "maybeboard",
    "maybe": "maybeboard",
}

_NUMBER = re.compile(r"^\d+$")


def detect_delimiter(first_line: str) -> str:
    """The candidate delimiter that splits the first line into the most columns."""
    best, best_count = ",", 1
    for delimiter in DELIMITERS:
        count = len(next(csv.reader([first_line], delimiter=delimiter)))
        if count > best_count:
            best, best_count = delimiter, count
    return best


def looks_like_header(row: list[str]) -> bool:
    # Data rows carry a numeric quantity somewhere; headers never do
    if any(_NUMBER.match(cell.strip()) for cell in row):
        return False
    return any(
        keyword in cell.strip().lower()
        for cell in row
        for keyword in HEADER_KEYWORDS
    )


def map_columns(header: list[str]) -> dict[str, int]:
    """Map each field to the index of the first header that matches it."""
    columns: dict[str, int] = {}
    for index, cell in enumerate(header):
        text = cell.strip().lower()
        if not text or any(fragment in text for fragment in IGNORED_FRAGMENTS):
            continue
        for field_name, fragments in FIELD_FRAGMENTS:
            if any(fragment in text for fragment in fragments):
                columns.setdefault(field_name, index)
                break
    return columns


def _parse_bool(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() in TRUE_VALUES


def _parse_price(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value.strip().lstrip("$"))
    except ValueError:
        return None


class CSVAdapter(FingerprintAdapter):
    """Adapter for comma/tab separated deck spreadsheets."""

    name = "CSV"
    id = "csv"
    version = "1.0.0"
    supported_formats = ["csv", "tsv"]
    file_extensions = ("csv", "tsv")
    capabilities = AdapterCapabilities(
        can_import=True,
        can_export=True,
        supports_multiple_decks=False,
        supports_bulk_operations=True,
        supports_metadata=True,
        supports_categories=True,
        supports_custom_fields=True,
        requires_authentication=False,
    )

    def fingerprint(self, data: DeckInput) -> float:
        content = input_text(data).strip()
        if not content or content.startswith("{") or content.startswith("["):
            return 0.0

        lines = [line for line in content.splitlines() if line.strip()]
        if len(lines) < 2:
            return 0.0

        first = lines[0]
        sample = lines[1:5]
        for delimiter in DELIMITERS:
            if delimiter not in first:
                continue
            column_count = len(next(csv.reader([first], delimiter=delimiter)))
            if column_count < 2:
                continue
            counts = [len(row) for row in csv.reader(sample, delimiter=delimiter)]
            consistent = all(abs(count - column_count) <= 1 for count in counts)
            delimited = sum(1 for line in sample if delimiter in line) * 2 >= len(sample)
            if consistent and delimited:
                header = next(csv.reader([first], delimiter=delimiter))
                return 0.9 if looks_like_header(header) else 0.6
        return 0.0

    async def _parse_input(
        self,
        data: DeckInput,
        options: ParseOptions,
        warnings: list[ParseWarning],
    ) -> list[StandardDeck]:
        content = input_text(data).strip()
        if not content:
            raise ValueError("empty input")

        filename = Path(data.name).stem if isinstance(data, DeckFile) else "imported_deck"

        lines = [line for line in content.splitlines() if line.strip()]
        delimiter = detect_delimiter(lines[0])
        rows = [row for row in csv.reader(lines, delimiter=delimiter) if any(cell.strip() for cell in row)]

        has_header = looks_like_header(rows[0])
        if has_header:
            columns = map_columns(rows[0])
            body = rows[1:]
            if "name" not in columns:
                raise ValueError("no card name column in header")
        else:
            columns = {field_name: index for index, field_name in enumerate(DEFAULT_COLUMNS)}
            body = rows
            if rows[0] and _NUMBER.match(rows[0][0].strip()):
                columns["name"], columns["quantity"] = 1, 0
            warnings.append(ParseWarning(
                WarningType.FORMAT_ASSUMPTION,
                "No header row found; assuming columns " + ", ".join(DEFAULT_COLUMNS),
            ))

        logger.debug("Detected CSV layout", delimiter=delimiter, has_header=has_header, columns=columns)
        deck = self._convert_rows(body, columns, filename, warnings)
        deck.metadata.custom_fields.update({
            "original_filename": filename,
            "delimiter": delimiter,
            "has_headers": has_header,
            "total_rows": len(body),
        })
        return [deck]

    def _convert_rows(
        self,
        rows: list[list[str]],
        columns: dict[str, int],
        filename: str,
        warnings: list[ParseWarning],
    ) -> StandardDeck:
        cards: list[StandardCard] = []
        sideboard: list[StandardCard] = []
        maybeboard: list[StandardCard] = []
        commander: Optional[StandardCard] = None
        members: dict[str, list[str]] = {}

        def cell(row: list[str], field_name: str) -> Optional[str]:
            index = columns.get(field_name)
            if index is None or index >= len(row):
                return None
            return row[index].strip() or None

        for row_index, row in enumerate(rows):
            name = cell(row, "name")
            if not name:
                warnings.append(ParseWarning(
                    WarningType.DATA_LOSS,
                    f"Skipped row {row_index + 1}: no card name",
                ))
                continue

            category = cell(row, "category")
            raw_condition = cell(row, "condition")
            condition = normalize_condition(raw_condition)
            price = _parse_price(cell(row, "price"))

            metadata: dict[str, Any] = {"csv_row_index": row_index}
            if price is not None:
                metadata["price"] = price

            card = StandardCard(
                name=self.normalize_card_name(name),
                quantity=self._card_quantity(cell(row, "quantity")),
                set_code=cell(row, "set"),
                collector_number=cell(row, "collector_number"),
                scryfall_id=cell(row, "scryfall_id"),
                category=category,
                is_foil=_parse_bool(cell(row, "foil")),
                condition=condition.value if condition else raw_condition,
                metadata=metadata,
            )

            board = BOARD_CATEGORIES.get((category or "").lower())
            if board == "commander" and commander is None:
                commander = card
            elif board == "sideboard":
                sideboard.append(card)
            elif board == "maybeboard":
                maybeboard.append(card)
            else:
                cards.append(card)
                if category:
                    members.setdefault(category, []).append(card.name)

        return StandardDeck(
            name=filename.replace("_", " ").replace("-", " ").title(),
            format="commander",
            commander=commander,
            cards=cards,
            sideboard=sideboard,
            maybeboard=maybeboard,
            categories=[DeckCategory(name=n, cards=c) for n, c in members.items()],
            metadata=DeckMetadata(
                source=self.name,
                commander_source=CommanderSource.CATEGORY if commander else None,
            ),
        )

    def _serialize(self, deck: StandardDeck, fmt: str, options: ExportOptions) -> tuple[str, str, str]:
        delimiter = "\t" if fmt == "tsv" else ","
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")

        # Board rows need the Category column even when categories are off
        category_column = bool(
            options.include_categories or deck.commander is not None or deck.sideboard or deck.maybeboard
        )
        header = ["Name", "Quantity"]
        if category_column:
            header.append("Category")
        header.append("Set")
        if options.include_prices:
            header.append("Price")
        header.extend(["Foil", "Condition"])
        writer.writerow(header)

        if deck.commander is not None:
            writer.writerow(self._row(deck.commander, options, category_column, "Commander"))
        for card in deck.cards:
            writer.writerow(self._row(card, options, category_column))
        for card in deck.sideboard:
            writer.writerow(self._row(card, options, category_column, "Sideboard"))
        for card in deck.maybeboard:
            writer.writerow(self._row(card, options, category_column, "Maybeboard"))

        if fmt == "tsv":
            return buffer.getvalue(), f"{safe_filename(deck.name)}.tsv", "text/tab-separated-values"
        return buffer.getvalue(), f"{safe_filename(deck.name)}.csv", "text/csv"

    @staticmethod
    def _row(
        card: StandardCard,
        options: ExportOptions,
        category_column: bool,
        board: Optional[str] = None,
    ) -> list[str]:
        row = [card.name, str(card.quantity)]
        if category_column:
            label = card.category if options.include_categories else None
            row.append(board or label or "")
        row.append(card.set_code or "")
        if options.include_prices:
            price = card.metadata.get("price")
            row.append(str(price) if price is not None else "")
        row.append("true" if card.is_foil else "false")
        row.append(card.condition or "")
        return row
