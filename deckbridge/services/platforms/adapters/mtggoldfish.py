"""
MTGGoldfish platform adapter.

MTGGoldfish deck downloads are plain "<qty> <name>" lists, optionally with
"Deck:"/"Format:"/"Author:"/"Date:" header lines, bare "Mainboard" and
"Sideboard" section headers and "$x.xx" price suffixes.
"""
import re
from datetime import datetime, timezone
from typing import Optional

import structlog

from deckbridge.core.config import settings
from deckbridge.services.platforms.base import FingerprintAdapter, parse_timestamp, safe_filename
from deckbridge.services.platforms.types import (
    AdapterCapabilities,
    CommanderSource,
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

MTGGOLDFISH_URL_REGEX = re.compile(r"https?://(?:www\.)?mtggoldfish\.com/(?:deck|archetype)/(\d+)")

CARD_LINE = re.compile(r"^(\d+)x?\s+(.+?)(?:\s+\$(\d+(?:\.\d+)?))?\s*$")

SECTION_HEADERS = {
    "commander": "commander",
    "commanders": "commander",
    "mainboard": "main",
    "main deck": "main",
    "deck": "main",
    "sideboard": "sideboard",
    "side board": "sideboard",
}

METADATA_KEYS = {
    "deck": "name",
    "name": "name",
    "format": "format",
    "author": "author",
    "player": "author",
    "date": "date",
}

COMMANDER_FORMATS = {"commander", "edh"}


class MTGGoldfishAdapter(FingerprintAdapter):
    """Adapter for MTGGoldfish deck pages and text downloads."""

    name = "MTGGoldfish"
    id = "mtggoldfish"
    version = "1.0.0"
    supported_formats = ["mtggoldfish", "txt"]
    capabilities = AdapterCapabilities(
        can_import=True,
        can_export=True,
        supports_multiple_decks=False,
        supports_bulk_operations=True,
        supports_metadata=True,
        supports_categories=False,
        supports_custom_fields=True,
        requires_authentication=False,
    )

    def fingerprint(self, data: DeckInput) -> float:
        content = input_text(data).strip()
        if MTGGOLDFISH_URL_REGEX.search(content) and "\n" not in content:
            return 1.0
        if content.startswith("{") or content.startswith("["):
            return 0.0

        lines = [line.strip() for line in content.splitlines() if line.strip()]
        if not any(CARD_LINE.match(line) for line in lines):
            return 0.0

        lowered = {line.lower() for line in lines}
        has_headers = bool(lowered & {"mainboard", "main deck", "sideboard", "side board"})
        has_prices = any(CARD_LINE.match(line) and "$" in line for line in lines)
        return 0.85 if has_headers or has_prices else 0.0

    async def _parse_input(
        self,
        data: DeckInput,
        options: ParseOptions,
        warnings: list[ParseWarning],
    ) -> list[StandardDeck]:
        content = input_text(data).strip()
        source_url = None

        match = MTGGOLDFISH_URL_REGEX.search(content)
        if match and "\n" not in content:
            source_url = content
            content = await self._fetch(f"{settings.mtggoldfish_base_url}/deck/download/{match.group(1)}")

        deck = self._parse_text(content, warnings, blank_line_splits_sideboard=source_url is not None)
        deck.metadata.source_url = source_url
        return [deck]

    def _parse_text(
        self,
        content: str,
        warnings: list[ParseWarning],
        blank_line_splits_sideboard: bool = False,
    ) -> StandardDeck:
        meta: dict[str, str] = {}
        cards: list[StandardCard] = []
        sideboard: list[StandardCard] = []
        commander: Optional[StandardCard] = None
        commander_source: Optional[CommanderSource] = None

        section = "main"
        in_metadata = True
        saw_header = False

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line:
                # Downloads have no headers; the sideboard follows the first blank line
                if blank_line_splits_sideboard and not saw_header and cards and section == "main":
                    section = "sideboard"
                continue
            if line.startswith("//") or line.startswith("#"):
                continue

            header = SECTION_HEADERS.get(line.lower().rstrip(":"))
            if header is not None:
                section = header
                saw_header = True
                in_metadata = False
                continue

            if in_metadata:
                key, sep, value = line.partition(":")
                field_name = METADATA_KEYS.get(key.strip().lower())
                if sep and field_name:
                    meta[field_name] = value.strip()
                    continue

            card_match = CARD_LINE.match(line)
            if card_match is None:
                continue
            in_metadata = False

            quantity, name, price = card_match.groups()
            card = StandardCard(
                name=self.normalize_card_name(name),
                quantity=int(quantity),
                metadata={"price": float(price)} if price else {},
            )
            if section == "commander" and commander is None:
                card.category = "Commander"
                commander, commander_source = card, CommanderSource.CATEGORY
            elif section == "sideboard":
                sideboard.append(card)
            else:
                cards.append(card)

        format_name = (meta.get("format") or "commander").lower()
        if commander is None and format_name in COMMANDER_FORMATS:
            commander = self._legendary_commander(cards, warnings)
            if commander is not None:
                cards.remove(commander)
                commander_source = CommanderSource.LEGENDARY_HEURISTIC

        total_price = sum(
            card.metadata["price"] * card.quantity
            for card in [*cards, *sideboard, *([commander] if commander else [])]
            if card.metadata.get("price")
        )

        return StandardDeck(
            name=meta.get("name") or "MTGGoldfish Deck",
            format=format_name,
            commander=commander,
            cards=cards,
            sideboard=sideboard,
            metadata=DeckMetadata(
                source=self.name,
                author=meta.get("author") or None,
                created_at=parse_timestamp(meta.get("date")),
                custom_fields={
                    "original_format": format_name,
                    "total_price": round(total_price, 2),
                },
                commander_source=commander_source,
            ),
        )

    def _serialize(self, deck: StandardDeck, fmt: str, options: ExportOptions) -> tuple[str, str, str]:
        lines = [f"Deck: {deck.name}", f"Format: {deck.format}"]
        if deck.metadata.author:
            lines.append(f"Author: {deck.metadata.author}")
        lines.append(f"Date: {datetime.now(timezone.utc).date().isoformat()}")
        lines.append("")

        if deck.commander is not None:
            lines.append("Commander")
            lines.append(self._format_card_line(deck.commander, options))
            lines.append("")

        lines.append("Mainboard")
        lines.extend(self._format_card_line(card, options) for card in deck.cards)

        if deck.sideboard:
            lines.append("")
            lines.append("Sideboard")
            lines.extend(self._format_card_line(card, options) for card in deck.sideboard)

        if deck.maybeboard:
            logger.warning(
                "Maybeboard dropped from MTGGoldfish export",
                deck=deck.name,
                cards=len(deck.maybeboard),
            )

        return "\n".join(lines), f"{safe_filename(deck.name)}_mtggoldfish.txt", "text/plain"

    @staticmethod
    def _format_card_line(card: StandardCard, options: ExportOptions) -> str:
        line = f"{card.quantity} {card.name}"
        price = card.metadata.get("price")
        if options.include_prices and isinstance(price, (int, float)):
            line += f" ${price:.2f}"
        return line
