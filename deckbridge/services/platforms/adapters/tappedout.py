"""
TappedOut platform adapter.

TappedOut decks are plain text: "<qty> <name> [SET] *F*" card lines, with
optional "//" section comments and "*CMDR*" commander markers. Deck URLs
are fetched through TappedOut's text export.
"""
import re
from typing import Optional

import structlog

from deckbridge.core.config import settings
from deckbridge.services.platforms.base import FingerprintAdapter, safe_filename
from deckbridge.services.platforms.types import (
    AdapterCapabilities,
    CommanderSource,
    DeckCategory,
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

TAPPEDOUT_URL_REGEX = re.compile(r"https?://(?:www\.)?tappedout\.net/mtg-decks/([^/?#\s]+)")

CARD_LINE = re.compile(
    r"^(\d+)x?\s+(.+?)(?:\s+\[([^\]]+)\])?((?:\s*\*[A-Za-z]+\*)*)\s*$"
)
CARD_PREFIX = re.compile(r"^\d+x?\s+")
MARKER = re.compile(r"\*([A-Za-z]+)\*")

SECTIONS = {
    "commander": "commander",
    "commanders": "commander",
    "mainboard": "main",
    "main deck": "main",
    "main board": "main",
    "sideboard": "sideboard",
    "side board": "sideboard",
    "maybeboard": "maybeboard",
    "maybe board": "maybeboard",
}

METADATA_KEYS = {
    "name": "name",
    "deck name": "name",
    "deck": "name",
    "description": "description",
    "format": "format",
    "author": "author",
    "user": "author",
    "url": "url",
}


def _section_name(line: str) -> Optional[str]:
    key = line.lstrip("/#").strip().rstrip(":").strip().lower()
    return SECTIONS.get(key)


class TappedOutAdapter(FingerprintAdapter):
    """Adapter for TappedOut deck URLs and text exports."""

    name = "TappedOut"
    id = "tappedout"
    version = "1.0.0"
    supported_formats = ["tappedout", "txt"]
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
        if TAPPEDOUT_URL_REGEX.search(content) and "\n" not in content:
            return 1.0
        if content.startswith("{") or content.startswith("["):
            return 0.0

        lines = [line.strip() for line in content.splitlines() if line.strip()]
        if not any(CARD_PREFIX.match(line) for line in lines):
            return 0.0

        lowered = [line.lower() for line in lines]
        own_markers = (
            "*F*" in content
            or "*CMDR*" in content
            or any(line.startswith("// deck:") or line == "// mainboard" for line in lowered)
        )
        if own_markers:
            return 0.85

        has_sections = any(
            "mainboard" in line or "main deck" in line or "sideboard" in line or "side board" in line
            for line in lowered
        )
        if has_sections or len(lines) > 10:
            return 0.45
        return 0.0

    async def _parse_input(
        self,
        data: DeckInput,
        options: ParseOptions,
        warnings: list[ParseWarning],
    ) -> list[StandardDeck]:
        content = input_text(data).strip()
        source_url = None

        match = TAPPEDOUT_URL_REGEX.search(content)
        if match and "\n" not in content:
            source_url = f"{settings.tappedout_base_url}/mtg-decks/{match.group(1)}/"
            logger.debug("Resolved TappedOut export URL", slug=match.group(1))
            content = await self._fetch(f"{source_url}?fmt=txt")

        deck = self._parse_text(content, warnings)
        if source_url and not deck.metadata.source_url:
            deck.metadata.source_url = source_url
        return [deck]

    def _parse_text(self, content: str, warnings: list[ParseWarning]) -> StandardDeck:
        meta: dict[str, str] = {}
        cards: list[StandardCard] = []
        sideboard: list[StandardCard] = []
        maybeboard: list[StandardCard] = []
        commander: Optional[StandardCard] = None
        commander_source: Optional[CommanderSource] = None
        members: dict[str, list[str]] = {}

        section = "main"
        category: Optional[str] = None
        in_metadata = True

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line:
                continue

            card_match = CARD_LINE.match(line)
            if card_match is None:
                section_name = _section_name(line)
                if section_name is not None:
                    section = section_name
                    category = None
                    in_metadata = False
                    continue

                body = line.lstrip("/#").strip()
                key, sep, value = body.partition(":")
                if sep and key.strip().lower() in METADATA_KEYS and (in_metadata or line.startswith("//")):
                    meta[METADATA_KEYS[key.strip().lower()]] = value.strip()
                    continue

                if line.startswith("//") and body and section == "main":
                    # "// Ramp" style category comment inside the mainboard
                    category = body
                continue

            in_metadata = False
            quantity, name, set_code, markers = card_match.groups()
            flags = {flag.upper() for flag in MARKER.findall(markers or "")}
            card = StandardCard(
                name=self.normalize_card_name(name),
                quantity=int(quantity),
                set_code=set_code.strip() if set_code else None,
                is_foil="F" in flags,
                category=category,
                metadata={"original_set": set_code} if set_code else {},
            )

            if "CMDR" in flags and commander is None:
                commander, commander_source = card, CommanderSource.EXPLICIT
            elif section == "commander" and commander is None:
                card.category = "Commander"
                commander, commander_source = card, CommanderSource.CATEGORY
            elif section == "sideboard":
                sideboard.append(card)
            elif section == "maybeboard":
                maybeboard.append(card)
            else:
                cards.append(card)
                if category:
                    members.setdefault(category, []).append(card.name)

        if commander is None:
            commander = self._legendary_commander(cards, warnings)
            if commander is not None:
                cards.remove(commander)
                commander_source = CommanderSource.LEGENDARY_HEURISTIC

        format_name = (meta.get("format") or "commander").lower()
        return StandardDeck(
            name=meta.get("name") or "Imported Deck",
            description=meta.get("description") or None,
            format=format_name,
            commander=commander,
            cards=cards,
            sideboard=sideboard,
            maybeboard=maybeboard,
            categories=[DeckCategory(name=n, cards=c) for n, c in members.items()],
            metadata=DeckMetadata(
                source=self.name,
                source_url=meta.get("url") or None,
                author=meta.get("author") or None,
                custom_fields={"original_format": format_name},
                commander_source=commander_source,
            ),
        )

    def _serialize(self, deck: StandardDeck, fmt: str, options: ExportOptions) -> tuple[str, str, str]:
        lines: list[str] = []

        if options.include_metadata:
            lines.append(f"// Deck: {deck.name}")
            if deck.description:
                lines.append(f"// Description: {deck.description}")
            lines.append(f"// Format: {deck.format}")
            if deck.metadata.author:
                lines.append(f"// Author: {deck.metadata.author}")
            lines.append("")

        if deck.commander is not None:
            lines.append("// Commander")
            lines.append(self._format_card_line(deck.commander))
            lines.append("")

        lines.append("// Mainboard")
        if options.include_categories and deck.categories:
            placed: set[int] = set()
            for category in deck.categories:
                members = [
                    (i, card) for i, card in enumerate(deck.cards)
                    if i not in placed and card.name in category.cards
                ]
                if not members:
                    continue
                lines.append(f"// {category.name}")
                for i, card in members:
                    placed.add(i)
                    lines.append(self._format_card_line(card))
                lines.append("")
            rest = [card for i, card in enumerate(deck.cards) if i not in placed]
            if rest:
                lines.append("// Other")
                lines.extend(self._format_card_line(card) for card in rest)
        else:
            lines.extend(self._format_card_line(card) for card in deck.cards)

        for title, board in (("Sideboard", deck.sideboard), ("Maybeboard", deck.maybeboard)):
            if board:
                lines.append("")
                lines.append(f"// {title}")
                lines.extend(self._format_card_line(card) for card in board)

        return "\n".join(lines), f"{safe_filename(deck.name)}_tappedout.txt", "text/plain"

    @staticmethod
    def _format_card_line(card: StandardCard) -> str:
        line = f"{card.quantity} {card.name}"
        if card.set_code:
            line += f" [{card.set_code}]"
        if card.is_foil:
            line += " *F*"
        return line
