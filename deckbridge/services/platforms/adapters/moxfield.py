"""
Moxfield platform adapter.

Imports decks from Moxfield deck URLs (through the public v3 API) or from
Moxfield JSON, and exports to the same JSON shape.
"""
import json
import re
import uuid
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
    WarningType,
    input_text,
)

logger = structlog.get_logger()

MOXFIELD_URL_REGEX = re.compile(r"https?://(?:www\.)?moxfield\.com/decks/([a-zA-Z0-9_-]+)")


class MoxfieldAdapter(FingerprintAdapter):
    """
    Adapter for Moxfield decks.

    Accepts boards in three shapes: lists of card entries (our own export),
    dicts keyed by card name (v2 API) and ``boards.<board>.cards`` (v3 API).
    The commander comes from the explicit ``commanders`` board.
    """

    name = "Moxfield"
    id = "moxfield"
    version = "1.0.0"
    supported_formats = ["moxfield", "json"]
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
        if MOXFIELD_URL_REGEX.search(content) and "\n" not in content:
            return 1.0
        if not content.startswith("{"):
            return 0.0
        try:
            parsed = json.loads(content)
        except ValueError:
            return 0.0
        return 0.95 if self._is_moxfield_format(parsed) else 0.0

    @staticmethod
    def _is_moxfield_format(obj: Any) -> bool:
        if not isinstance(obj, dict):
            return False
        if not all(isinstance(obj.get(key), str) for key in ("id", "name")):
            return False
        user = obj.get("createdByUser")
        if not isinstance(user, dict) or not isinstance(user.get("userName"), str):
            return False

        boards = obj.get("boards")
        if isinstance(boards, dict) and "mainboard" in boards:
            return True
        return (
            isinstance(obj.get("format"), str)
            and isinstance(obj.get("mainboard"), (list, dict))
            and isinstance(obj.get("commanders"), (list, dict))
        )

    async def _parse_input(
        self,
        data: DeckInput,
        options: ParseOptions,
        warnings: list[ParseWarning],
    ) -> list[StandardDeck]:
        content = input_text(data).strip()

        match = MOXFIELD_URL_REGEX.search(content)
        if match and "\n" not in content:
            content = await self._fetch(f"{settings.moxfield_api_base}/{match.group(1)}")

        payload = json.loads(content)
        if not isinstance(payload, dict):
            raise ValueError("expected a JSON object")

        return [self._convert_to_standard_deck(payload, warnings)]

    def _board_entries(self, payload: dict[str, Any], board: str) -> list[dict[str, Any]]:
        """Card entries of one board, whichever API shape carried them."""
        boards = payload.get("boards")
        if isinstance(boards, dict) and isinstance(boards.get(board), dict):
            raw = boards[board].get("cards", {})
        else:
            raw = payload.get(board, [])

        if isinstance(raw, dict):
            entries = []
            for key, entry in raw.items():
                if not isinstance(entry, dict):
                    continue
                entry = dict(entry)
                card = entry.get("card")
                if not isinstance(card, dict):
                    entry["card"] = {"name": key}
                elif not card.get("name"):
                    entry["card"] = {**card, "name": key}
                entries.append(entry)
            return entries
        if isinstance(raw, list):
            return [entry for entry in raw if isinstance(entry, dict)]
        return []

    def _convert_to_standard_deck(
        self,
        payload: dict[str, Any],
        warnings: list[ParseWarning],
    ) -> StandardDeck:
        cards = [self._convert_card(entry) for entry in self._board_entries(payload, "mainboard")]
        sideboard = [self._convert_card(entry) for entry in self._board_entries(payload, "sideboard")]
        maybeboard = [self._convert_card(entry) for entry in self._board_entries(payload, "maybeboard")]
        commanders = [self._convert_card(entry) for entry in self._board_entries(payload, "commanders")]

        commander = commanders[0] if commanders else None
        if len(commanders) > 1:
            # Partners: keep the rest in the main deck so nothing is lost
            cards = commanders[1:] + cards
            warnings.append(ParseWarning(
                WarningType.DATA_LOSS,
                f"Deck has {len(commanders)} commanders; only \"{commander.name}\" is kept as commander",
                suggestion="Additional commanders were moved to the main deck",
            ))

        deck_id = str(payload.get("publicId") or payload.get("id") or "") or None
        user = payload.get("createdByUser") or {}
        hubs = [
            hub.get("name", "") if isinstance(hub, dict) else str(hub)
            for hub in payload.get("hubs") or []
        ]
        hubs = [hub for hub in hubs if hub]
        logger.debug("Converting Moxfield deck", deck_id=deck_id, cards=len(cards))

        categories: dict[str, list[str]] = {}
        for card in cards:
            for tag in card.metadata.get("tags") or []:
                categories.setdefault(tag, []).append(card.name)

        metadata = DeckMetadata(
            source=self.name,
            source_url=f"https://www.moxfield.com/decks/{deck_id}" if deck_id else None,
            author=user.get("displayName") or user.get("userName"),
            created_at=parse_timestamp(payload.get("createdAtUtc")),
            updated_at=parse_timestamp(payload.get("lastUpdatedAtUtc")),
            colors=list(commander.metadata.get("color_identity") or []) if commander else [],
            custom_fields={
                "moxfield_id": deck_id,
                "visibility": payload.get("visibility"),
                "hubs": hubs,
            },
            commander_source=CommanderSource.EXPLICIT if commander else None,
        )

        return StandardDeck(
            id=deck_id,
            name=payload.get("name") or "Moxfield Deck",
            description=payload.get("description") or None,
            format=payload.get("format") or "commander",
            commander=commander,
            cards=cards,
            sideboard=sideboard,
            maybeboard=maybeboard,
            categories=[DeckCategory(name=tag, cards=names) for tag, names in categories.items()],
            tags=hubs,
            metadata=metadata,
        )

    def _convert_card(self, entry: dict[str, Any]) -> StandardCard:
        card = entry.get("card") or {}
        tags = [str(tag) for tag in entry.get("tags") or []]
        return StandardCard(
            name=str(card.get("name", "")),
            quantity=self._card_quantity(entry.get("quantity")),
            is_foil=bool(entry.get("isFoil") or entry.get("finish") == "foil"),
            set_code=card.get("set") or None,
            collector_number=card.get("collector_number") or card.get("cn") or None,
            scryfall_id=card.get("scryfall_id") or card.get("id") or None,
            category=tags[0] if tags else None,
            metadata={
                "cmc": card.get("cmc"),
                "type_line": card.get("type_line"),
                "mana_cost": card.get("mana_cost"),
                "oracle_text": card.get("oracle_text"),
                "colors": card.get("colors") or [],
                "color_identity": card.get("color_identity") or [],
                "rarity": card.get("rarity"),
                "legalities": card.get("legalities") or {},
                "is_alter": bool(entry.get("isAlter")),
                "is_proxy": bool(entry.get("isProxy")),
                "tags": tags,
                "prices": card.get("prices"),
            },
        )

    def _serialize(self, deck: StandardDeck, fmt: str, options: ExportOptions) -> tuple[str, str, str]:
        now = datetime.now(timezone.utc)
        created = deck.metadata.created_at or now
        updated = deck.metadata.updated_at or now
        author = deck.metadata.author or "Unknown"

        payload = {
            "id": deck.id or uuid.uuid4().hex[:22],
            "name": deck.name,
            "description": deck.description or "",
            "format": deck.format,
            "visibility": "private",
            "mainboard": [self._to_moxfield_card(card, options) for card in deck.cards],
            "sideboard": [self._to_moxfield_card(card, options) for card in deck.sideboard],
            "maybeboard": [self._to_moxfield_card(card, options) for card in deck.maybeboard],
            "commanders": [self._to_moxfield_card(deck.commander, options)] if deck.commander else [],
            "hubs": list(deck.tags),
            "tokens": [],
            "createdByUser": {
                "id": "export-user",
                "userName": author,
                "displayName": author,
            },
            "createdAtUtc": created.isoformat(),
            "lastUpdatedAtUtc": updated.isoformat(),
        }
        content = json.dumps(payload, indent=2, default=str)
        return content, f"{safe_filename(deck.name)}_moxfield.json", "application/json"

    def _to_moxfield_card(self, card: StandardCard, options: ExportOptions) -> dict[str, Any]:
        meta = card.metadata if options.include_metadata else {}
        tags = list(meta.get("tags") or [])
        if options.include_categories and card.category and card.category not in tags:
            tags.insert(0, card.category)
        entry: dict[str, Any] = {
            "quantity": card.quantity,
            "card": {
                "id": card.scryfall_id or "",
                "name": card.name,
                "cmc": meta.get("cmc") or 0,
                "type_line": meta.get("type_line") or "",
                "oracle_text": meta.get("oracle_text") or "",
                "mana_cost": meta.get("mana_cost") or "",
                "colors": meta.get("colors") or [],
                "color_identity": meta.get("color_identity") or [],
                "legalities": meta.get("legalities") or {},
                "set": card.set_code or "",
                "collector_number": card.collector_number or "",
                "rarity": meta.get("rarity") or "common",
            },
            "isFoil": card.is_foil,
            "isAlter": bool(meta.get("is_alter")),
            "isProxy": bool(meta.get("is_proxy")),
            "useCmcOverride": False,
            "useManaCostOverride": False,
            "useColorIdentityOverride": False,
            "tags": tags if options.include_categories else [],
        }
        if options.include_prices and meta.get("prices"):
            entry["card"]["prices"] = meta["prices"]
        return entry
