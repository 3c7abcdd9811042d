"""
Archidekt platform adapter.

Archidekt identifies formats by small integers and groups cards into
user-defined categories; the commander lives in the "Commander" category.
"""
import json
import re
from datetime import datetime, timezone
from typing import Any

import structlog

from deckbridge.core.config import settings
from deckbridge.services.platforms.base import FingerprintAdapter, parse_timestamp, safe_filename
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

ARCHIDEKT_URL_REGEX = re.compile(r"https?://(?:www\.)?archidekt\.com/decks/(\d+)")

# Archidekt format ids. Names are derived from this table so both directions agree.
ARCHIDEKT_FORMATS: dict[int, str] = {
    1: "standard",
    2: "modern",
    3: "legacy",
    4: "vintage",
    5: "commander",
    6: "pauper",
    7: "frontier",
    8: "penny",
    9: "duel",
    10: "oldschool",
    11: "premodern",
    12: "brawl",
    13: "historic",
    14: "pioneer",
    15: "explorer",
    16: "alchemy",
    17: "timeless",
}
ARCHIDEKT_FORMAT_IDS: dict[str, int] = {name: format_id for format_id, name in ARCHIDEKT_FORMATS.items()}
ARCHIDEKT_FORMAT_IDS["edh"] = 5

DEFAULT_FORMAT_ID = 5

COMMANDER_CATEGORIES = {"commander", "commanders"}
SIDEBOARD_CATEGORIES = {"sideboard"}
MAYBEBOARD_CATEGORIES = {"maybeboard", "maybe"}


def format_id_to_name(format_id: Any) -> str:
    """Archidekt format id to format name; unknown ids fall back to commander."""
    try:
        return ARCHIDEKT_FORMATS.get(int(format_id), ARCHIDEKT_FORMATS[DEFAULT_FORMAT_ID])
    except (TypeError, ValueError):
        return ARCHIDEKT_FORMATS[DEFAULT_FORMAT_ID]


def format_name_to_id(format_name: str | None) -> int:
    """Format name to Archidekt id; unknown names fall back to 5 (commander)."""
    return ARCHIDEKT_FORMAT_IDS.get((format_name or "").strip().lower(), DEFAULT_FORMAT_ID)


class ArchidektAdapter(FingerprintAdapter):
    """Adapter for Archidekt deck URLs and API JSON."""

    name = "Archidekt"
    id = "archidekt"
    version = "1.0.0"
    supported_formats = ["archidekt", "json"]
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
        if ARCHIDEKT_URL_REGEX.search(content) and "\n" not in content:
            return 1.0
        if not content.startswith("{"):
            return 0.0
        try:
            parsed = json.loads(content)
        except ValueError:
            return 0.0
        return 0.95 if self._is_archidekt_format(parsed) else 0.0

    @staticmethod
    def _is_archidekt_format(obj: Any) -> bool:
        if not isinstance(obj, dict):
            return False
        format_id = obj.get("format", obj.get("deckFormat"))
        owner = obj.get("owner")
        return (
            isinstance(obj.get("id"), int)
            and isinstance(obj.get("name"), str)
            and isinstance(format_id, int)
            and isinstance(obj.get("cards"), list)
            and isinstance(obj.get("categories"), list)
            and (isinstance(owner, int) or isinstance(owner, dict))
        )

    async def _parse_input(
        self,
        data: DeckInput,
        options: ParseOptions,
        warnings: list[ParseWarning],
    ) -> list[StandardDeck]:
        content = input_text(data).strip()

        match = ARCHIDEKT_URL_REGEX.search(content)
        if match and "\n" not in content:
            content = await self._fetch(f"{settings.archidekt_api_base}/{match.group(1)}/")

        payload = json.loads(content)
        if not isinstance(payload, dict):
            raise ValueError("expected a JSON object")
        return [self._convert_to_standard_deck(payload)]

    def _convert_to_standard_deck(self, payload: dict[str, Any]) -> StandardDeck:
        cards: list[StandardCard] = []
        sideboard: list[StandardCard] = []
        maybeboard: list[StandardCard] = []
        commander: StandardCard | None = None
        members: dict[str, list[str]] = {}

        for entry in payload.get("cards") or []:
            if not isinstance(entry, dict):
                continue
            card = self._convert_card(entry)
            entry_categories = card.metadata["categories"]
            lowered = {c.lower() for c in entry_categories}

            for category in entry_categories:
                members.setdefault(category, []).append(card.name)

            if lowered & COMMANDER_CATEGORIES and commander is None:
                commander = card
            elif lowered & SIDEBOARD_CATEGORIES:
                sideboard.append(card)
            elif lowered & MAYBEBOARD_CATEGORIES:
                maybeboard.append(card)
            else:
                cards.append(card)

        categories = []
        for raw in payload.get("categories") or []:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            if raw.get("includedInDeck", True) is False:
                continue
            categories.append(DeckCategory(name=raw["name"], cards=members.get(raw["name"], [])))

        owner = payload.get("owner")
        if isinstance(owner, dict):
            owner_id = owner.get("id")
            author = owner.get("username") or payload.get("ownerName")
        else:
            owner_id = owner
            author = payload.get("ownerName")

        format_id = payload.get("format", payload.get("deckFormat"))
        if format_id not in ARCHIDEKT_FORMATS:
            logger.debug("Unknown Archidekt format id", format_id=format_id)
        deck_id = str(payload["id"]) if payload.get("id") is not None else None

        metadata = DeckMetadata(
            source=self.name,
            source_url=f"https://www.archidekt.com/decks/{deck_id}" if deck_id else None,
            author=author,
            created_at=parse_timestamp(payload.get("createdAt")),
            updated_at=parse_timestamp(payload.get("updatedAt")),
            colors=list(commander.metadata.get("color_identity") or []) if commander else [],
            custom_fields={
                "archidekt_id": payload.get("id"),
                "format_id": format_id,
                "owner_id": owner_id,
            },
            commander_source=CommanderSource.CATEGORY if commander else None,
        )

        return StandardDeck(
            id=deck_id,
            name=payload.get("name") or "Archidekt Deck",
            description=payload.get("description") or None,
            format=format_id_to_name(format_id),
            commander=commander,
            cards=cards,
            sideboard=sideboard,
            maybeboard=maybeboard,
            categories=categories,
            metadata=metadata,
        )

    def _convert_card(self, entry: dict[str, Any]) -> StandardCard:
        card = entry.get("card") or {}
        oracle = card.get("oracleCard") or {}
        edition = card.get("edition") or {}
        entry_categories = [str(c) for c in entry.get("categories") or []]

        type_line = card.get("typeLine")
        if not type_line and oracle:
            type_line = " ".join((oracle.get("superTypes") or []) + (oracle.get("types") or []))

        return StandardCard(
            name=str(card.get("name") or oracle.get("name") or ""),
            quantity=self._card_quantity(entry.get("quantity")),
            category=entry_categories[0] if entry_categories else None,
            is_foil=str(entry.get("modifier", "")).lower() == "foil",
            set_code=card.get("set") or edition.get("editioncode") or None,
            collector_number=card.get("collectorNumber") or None,
            scryfall_id=card.get("uid") or None,
            metadata={
                "cmc": card.get("cmc", oracle.get("cmc")),
                "type_line": type_line,
                "mana_cost": card.get("manaCost") or oracle.get("manaCost"),
                "oracle_text": card.get("oracleText") or oracle.get("text"),
                "colors": card.get("colors") or oracle.get("colors") or [],
                "color_identity": card.get("colorIdentity") or oracle.get("colorIdentity") or [],
                "rarity": card.get("rarity") or None,
                "categories": entry_categories,
                "archidekt_id": entry.get("id"),
            },
        )

    def _serialize(self, deck: StandardDeck, fmt: str, options: ExportOptions) -> tuple[str, str, str]:
        now = datetime.now(timezone.utc)
        entries: list[dict[str, Any]] = []

        def add(card: StandardCard, categories: list[str]):
            entries.append(self._to_archidekt_card(card, len(entries) + 1, categories, options))

        if deck.commander is not None:
            add(deck.commander, ["Commander"])
        for card in deck.cards:
            add(card, [card.category] if options.include_categories and card.category else ["Main"])
        for card in deck.sideboard:
            add(card, ["Sideboard"])
        for card in deck.maybeboard:
            add(card, ["Maybeboard"])

        category_names: list[str] = []
        for entry in entries:
            for category in entry["categories"]:
                if category not in category_names:
                    category_names.append(category)

        try:
            deck_id = int(deck.id) if deck.id else 0
        except ValueError:
            deck_id = 0

        payload = {
            "id": deck_id,
            "name": deck.name,
            "description": deck.description or "",
            "format": format_name_to_id(deck.format),
            "owner": 0,
            "ownerName": deck.metadata.author or "Unknown",
            "createdAt": (deck.metadata.created_at or now).isoformat(),
            "updatedAt": (deck.metadata.updated_at or now).isoformat(),
            "cards": entries,
            "categories": [
                {
                    "name": name,
                    "includedInDeck": name not in ("Sideboard", "Maybeboard"),
                    "isPremier": name == "Commander",
                }
                for name in category_names
            ],
        }
        content = json.dumps(payload, indent=2, default=str)
        return content, f"{safe_filename(deck.name)}_archidekt.json", "application/json"

    @staticmethod
    def _to_archidekt_card(
        card: StandardCard,
        card_id: int,
        categories: list[str],
        options: ExportOptions,
    ) -> dict[str, Any]:
        meta = card.metadata if options.include_metadata else {}
        entry: dict[str, Any] = {
            "id": card_id,
            "quantity": card.quantity,
            "card": {
                "uid": card.scryfall_id or "",
                "name": card.name,
                "cmc": meta.get("cmc") or 0,
                "typeLine": meta.get("type_line") or "",
                "oracleText": meta.get("oracle_text") or "",
                "manaCost": meta.get("mana_cost") or "",
                "colors": meta.get("colors") or [],
                "colorIdentity": meta.get("color_identity") or [],
                "set": card.set_code or "",
                "collectorNumber": card.collector_number or "",
                "rarity": meta.get("rarity") or "common",
            },
            "categories": categories,
        }
        if card.is_foil:
            entry["modifier"] = "Foil"
        return entry
