"""
Generic plain-text deck list adapter.

Handles the lowest common denominator: one card per line, quantity either
before or after the name. The layout is inferred from a sample of lines
before the document is parsed.
"""
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

import structlog

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
    input_text,
)

logger = structlog.get_logger()

QUANTITY_FIRST = re.compile(r"^(\d+)x?\s+(.+)$")
QUANTITY_LAST = re.compile(r"^(.+?)\s+x?(\d+)$")
CARD_LIKE = (QUANTITY_FIRST, QUANTITY_LAST)

SET_SUFFIX = re.compile(r"^(.+?)\s+\[([^\]]+)\]$")
FOIL_MARKER = re.compile(r"\s*(?:\*FOIL\*|\(Foil\))", re.IGNORECASE)

# Comment markers are checked before category markers ("///" before "//")
COMMENT_MARKERS = ("///", "##", "/*")
CATEGORY_MARKERS = ("//", "#", "---", "===")

METADATA_KEYS = {
    "name": "name",
    "deck name": "name",
    "title": "name",
    "description": "description",
    "desc": "description",
    "format": "format",
    "commander": "commander",
    "general": "commander",
}

BOARD_SECTIONS = {
    "main": "main",
    "main deck": "main",
    "mainboard": "main",
    "deck": "main",
    "commander": "commander",
    "commanders": "commander",
    "general": "commander",
    "sideboard": "sideboard",
    "side board": "sideboard",
    "maybeboard": "maybeboard",
    "maybe board": "maybeboard",
    "maybe": "maybeboard",
}

SAMPLE_SIZE = 10
SEPARATORS = (" ", "x ", "\t")


@dataclass(frozen=True)
class TextLayout:
    """
    How quantities are written in a particular list.

    ``separator`` is one of " ", "x " or "\\t". Parsing accepts every layout;
    export writes the layout recorded when the deck was imported.
    """
    quantity_first: bool = True
    separator: str = " "

    def join(self, quantity: int, text: str) -> str:
        if self.quantity_first:
            return f"{quantity}{self.separator}{text}"
        if self.separator == "x ":
            return f"{text} x{quantity}"
        return f"{text}{self.separator}{quantity}"


def _metadata_key(line: str) -> Optional[str]:
    key, sep, _ = line.partition(":")
    if not sep:
        return None
    return METADATA_KEYS.get(key.strip().lower())


def _is_marker(line: str) -> bool:
    return line.startswith(COMMENT_MARKERS) or line.startswith(CATEGORY_MARKERS)


def detect_layout(lines: list[str]) -> TextLayout:
    """
    Vote on quantity position over the first few numeric lines.

    Metadata and section lines are left out of the sample. Ties go to
    quantity-first, the more common convention.
    """
    sample = [
        line for line in lines
        if not _is_marker(line) and _metadata_key(line) is None
        and (line[:1].isdigit() or line[-1:].isdigit())
    ][:SAMPLE_SIZE]
    if not sample:
        return TextLayout()

    first_votes = sum(1 for line in sample if QUANTITY_FIRST.match(line))
    last_votes = sum(1 for line in sample if QUANTITY_LAST.match(line) and not QUANTITY_FIRST.match(line))
    quantity_first = first_votes >= last_votes

    first_line = sample[0]
    if "\t" in first_line:
        separator = "\t"
    elif re.match(r"^\d+x\s", first_line) or re.search(r"\sx\d+$", first_line):
        separator = "x "
    else:
        separator = " "
    return TextLayout(quantity_first=quantity_first, separator=separator)


class TextAdapter(FingerprintAdapter):
    """Adapter for plain text deck lists (.txt, .dec)."""

    name = "Text Format"
    id = "text"
    version = "1.0.0"
    supported_formats = ["txt", "text", "dec"]
    file_extensions = ("txt", "text", "dec")
    capabilities = AdapterCapabilities(
        can_import=True,
        can_export=True,
        supports_multiple_decks=False,
        supports_bulk_operations=True,
        supports_metadata=True,
        supports_categories=True,
        supports_custom_fields=False,
        requires_authentication=False,
    )

    def fingerprint(self, data: DeckInput) -> float:
        content = input_text(data).strip()
        if not content or content.startswith("{") or content.startswith("["):
            return 0.0

        lines = [line.strip() for line in content.splitlines() if line.strip()]
        if len(lines) < 2:
            return 0.0

        card_lines = sum(
            1 for line in lines
            if not _is_marker(line) and any(pattern.match(line) for pattern in CARD_LIKE)
        )
        fraction = card_lines / len(lines)
        if fraction < 0.3:
            return 0.0
        return 0.5 + 0.3 * fraction

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
        lines = [line.strip() for line in content.splitlines()]
        layout = detect_layout([line for line in lines if line])
        logger.debug("Detected text layout", quantity_first=layout.quantity_first, separator=repr(layout.separator))

        deck = self._parse_lines(lines, layout, filename)
        deck.metadata.custom_fields = {
            "original_filename": filename,
            "text_layout": asdict(layout),
        }
        return [deck]

    def _parse_lines(self, lines: list[str], layout: TextLayout, filename: str) -> StandardDeck:
        meta: dict[str, str] = {}
        cards: list[StandardCard] = []
        sideboard: list[StandardCard] = []
        maybeboard: list[StandardCard] = []
        commander: Optional[StandardCard] = None
        commander_source: Optional[CommanderSource] = None
        members: dict[str, list[str]] = {}

        section = "main"
        category: Optional[str] = None

        for line in lines:
            if not line or line.startswith(COMMENT_MARKERS):
                continue

            marker = next((m for m in CATEGORY_MARKERS if line.startswith(m)), None)
            if marker is not None:
                label = line[len(marker):].strip().rstrip(":").strip() or "Unnamed Category"
                board = BOARD_SECTIONS.get(label.lower())
                section = board or "main"
                category = None if board else label
                continue

            # Header lines are recognised anywhere, including after a marker
            key = _metadata_key(line)
            if key is not None:
                value = line.partition(":")[2].strip()
                if key == "commander":
                    commander = StandardCard(
                        name=self.normalize_card_name(value),
                        quantity=1,
                        category="Commander",
                    )
                    commander_source = CommanderSource.EXPLICIT
                else:
                    meta[key] = value
                continue

            card = self._parse_card_line(line, layout, category)
            if card is None:
                continue

            if section == "commander":
                card.category = "Commander"
                if commander is None:
                    commander, commander_source = card, CommanderSource.CATEGORY
                else:
                    cards.append(card)
            elif section == "sideboard":
                sideboard.append(card)
            elif section == "maybeboard":
                maybeboard.append(card)
            else:
                cards.append(card)
                if category:
                    members.setdefault(category, []).append(card.name)

        return StandardDeck(
            name=meta.get("name") or filename.replace("_", " ").replace("-", " ").title(),
            description=meta.get("description") or None,
            format=(meta.get("format") or "commander").lower(),
            commander=commander,
            cards=cards,
            sideboard=sideboard,
            maybeboard=maybeboard,
            categories=[DeckCategory(name=n, cards=c) for n, c in members.items()],
            metadata=DeckMetadata(source=self.name, commander_source=commander_source),
        )

    def _parse_card_line(
        self,
        line: str,
        layout: TextLayout,
        category: Optional[str],
    ) -> Optional[StandardCard]:
        quantity = 1
        name = line
        if layout.quantity_first:
            match = QUANTITY_FIRST.match(line)
            if match:
                quantity, name = int(match.group(1)), match.group(2)
        else:
            match = QUANTITY_LAST.match(line)
            if match:
                name, quantity = match.group(1), int(match.group(2))

        is_foil = bool(FOIL_MARKER.search(name))
        if is_foil:
            name = FOIL_MARKER.sub("", name)
        name = self.normalize_card_name(name)

        set_code = None
        set_match = SET_SUFFIX.match(name)
        if set_match:
            name, set_code = set_match.group(1).strip(), set_match.group(2).strip()

        if not name:
            return None
        return StandardCard(
            name=name,
            quantity=quantity,
            set_code=set_code,
            is_foil=is_foil,
            category=category,
            metadata={"original_line": line},
        )

    def _serialize(self, deck: StandardDeck, fmt: str, options: ExportOptions) -> tuple[str, str, str]:
        layout = self._export_layout(deck)
        lines = [f"Name: {deck.name}"]
        if deck.description:
            lines.append(f"Description: {deck.description}")
        lines.append(f"Format: {deck.format}")
        lines.append("")

        if deck.commander is not None:
            lines.append("// Commander")
            lines.append(self._format_card_line(deck.commander, layout))
            lines.append("")

        placed: set[int] = set()
        if options.include_categories:
            for group_name, names in self._category_groups(deck):
                members = [
                    (i, card) for i, card in enumerate(deck.cards)
                    if i not in placed and card.name in names
                ]
                if not members:
                    continue
                lines.append(f"// {group_name}")
                for i, card in members:
                    placed.add(i)
                    lines.append(self._format_card_line(card, layout))
                lines.append("")

        rest = [card for i, card in enumerate(deck.cards) if i not in placed]
        if rest:
            lines.append("// Main Deck")
            lines.extend(self._format_card_line(card, layout) for card in rest)

        for title, board in (("Sideboard", deck.sideboard), ("Maybeboard", deck.maybeboard)):
            if board:
                lines.append("")
                lines.append(f"// {title}")
                lines.extend(self._format_card_line(card, layout) for card in board)

        return "\n".join(lines).rstrip() + "\n", f"{safe_filename(deck.name)}.txt", "text/plain"

    @staticmethod
    def _category_groups(deck: StandardDeck) -> list[tuple[str, set[str]]]:
        """Explicit deck categories, else groups built from per-card labels."""
        if deck.categories:
            groups = [(c.name, set(c.cards)) for c in deck.categories]
        else:
            by_label: dict[str, set[str]] = {}
            for card in deck.cards:
                if card.category:
                    by_label.setdefault(card.category, set()).add(card.name)
            groups = list(by_label.items())
        # A group named like a board would be re-imported as that board
        return [(name, names) for name, names in groups if name.lower() not in BOARD_SECTIONS]

    @staticmethod
    def _export_layout(deck: StandardDeck) -> TextLayout:
        """The layout recorded when the deck was imported from text, if any."""
        recorded = deck.metadata.custom_fields.get("text_layout")
        if not isinstance(recorded, dict):
            return TextLayout()
        separator = recorded.get("separator")
        return TextLayout(
            quantity_first=bool(recorded.get("quantity_first", True)),
            separator=separator if separator in SEPARATORS else " ",
        )

    @staticmethod
    def _format_card_line(card: StandardCard, layout: TextLayout) -> str:
        text = card.name
        if card.set_code:
            text += f" [{card.set_code}]"
        if card.is_foil:
            text += " *FOIL*"
        return layout.join(card.quantity, text)
