"""
EDHREC platform adapter.

EDHREC publishes "average decks" per commander rather than user decks. Three
shapes are accepted and converge on the same StandardDeck:

- the public JSON API response (``container.json_dict.cardlists``)
- a flat ``{"commander": ..., "cards": [...]}`` document (our JSON export)
- text with ``Commander:``/``Themes:`` lines and
  ``<qty> <name> (<pct>%) [Salt: <n>]`` card lines
"""
import json
import re
from typing import Any, Optional

import structlog

from deckbridge.core.config import settings
from deckbridge.services.platforms.base import FingerprintAdapter, safe_filename
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
    WarningType,
    input_text,
)

logger = structlog.get_logger(__name__)

EDHREC_URL_REGEX = re.compile(r"https?://(?:www\.)?edhrec\.com/commanders/([^/?#\s]+)")

CARD_LINE = re.compile(
    r"^(\d+)x?\s+(.+?)"
    r"(?:\s+\((\d+(?:\.\d+)?)%\))?"
    r"(?:\s+\[Salt:\s*(\d+(?:\.\d+)?)\])?\s*$",
    re.IGNORECASE,
)
INCLUSION_TOKEN = re.compile(r"\(\d+(?:\.\d+)?%\)")
SALT_TOKEN = re.compile(r"\[Salt:\s*\d", re.IGNORECASE)

# Header keys of generic text lists; their presence makes a commander line ambiguous
LIST_HEADER_KEYS = ("name:", "deck:", "deck name:", "title:", "description:", "format:")

UNKNOWN_COMMANDER = "Unknown Commander"


def name_to_slug(name: str) -> str:
    """Convert a card name to EDHREC's URL slug format."""
    slug = name.lower()
    for char in "',:!?":
        slug = slug.replace(char, "")
    slug = slug.replace(" ", "-")
    slug = slug.replace("--", "-")
    return slug


def _number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else number


class EDHRECAdapter(FingerprintAdapter):
    """Adapter for EDHREC commander pages and average-deck lists."""

    name = "EDHREC"
    id = "edhrec"
    version = "1.0.0"
    supported_formats = ["edhrec", "json", "txt"]
    capabilities = AdapterCapabilities(
        can_import=True,
        can_export=True,
        supports_multiple_decks=False,
        supports_bulk_operations=False,
        supports_metadata=True,
        supports_categories=False,
        supports_custom_fields=True,
        requires_authentication=False,
    )

    def fingerprint(self, data: DeckInput) -> float:
        content = input_text(data).strip()
        if EDHREC_URL_REGEX.search(content) and "\n" not in content:
            return 1.0

        if content.startswith("{"):
            try:
                parsed = json.loads(content)
            except ValueError:
                return 0.0
            return 0.9 if self._is_edhrec_json(parsed) else 0.0
        if content.startswith("["):
            return 0.0

        lines = [line.strip() for line in content.splitlines() if line.strip()]
        lowered = [line.lower() for line in lines]
        if any(line.startswith(("themes:", "synergy:")) for line in lowered):
            return 0.9
        if any(CARD_LINE.match(line) and (INCLUSION_TOKEN.search(line) or SALT_TOKEN.search(line)) for line in lines):
            return 0.9
        if any(line.startswith(("commander:", "general:")) for line in lowered):
            # Our own text export: a commander line over card lines, no list headers
            has_cards = any(CARD_LINE.match(line) for line in lines)
            if has_cards and not any(line.startswith(LIST_HEADER_KEYS) for line in lowered):
                return 0.85
            return 0.65
        return 0.0

    @staticmethod
    def _is_edhrec_json(obj: Any) -> bool:
        if not isinstance(obj, dict):
            return False
        container = obj.get("container")
        if isinstance(container, dict) and isinstance(container.get("json_dict"), dict):
            return isinstance(container["json_dict"].get("cardlists"), list)
        cards = obj.get("cards")
        return (
            isinstance(obj.get("commander"), str)
            and isinstance(cards, list)
            and all(
                isinstance(card, dict)
                and isinstance(card.get("name"), str)
                and isinstance(card.get("quantity"), (int, float))
                for card in cards
            )
        )

    async def _parse_input(
        self,
        data: DeckInput,
        options: ParseOptions,
        warnings: list[ParseWarning],
    ) -> list[StandardDeck]:
        content = input_text(data).strip()
        source_url = None

        match = EDHREC_URL_REGEX.search(content)
        if match and "\n" not in content:
            slug = match.group(1)
            source_url = f"https://edhrec.com/commanders/{slug}"
            content = await self._fetch(f"{settings.edhrec_api_base}/pages/commanders/{slug}.json")

        if content.startswith("{"):
            payload = json.loads(content)
            deck = self._parse_json(payload, warnings)
        else:
            deck = self._parse_text(content, warnings)

        deck.metadata.source_url = source_url
        return [deck]

    def _parse_json(self, payload: Any, warnings: list[ParseWarning]) -> StandardDeck:
        if not isinstance(payload, dict):
            raise ValueError("expected a JSON object")

        data = payload
        container = payload.get("container")
        if isinstance(container, dict) and isinstance(container.get("json_dict"), dict):
            data = container["json_dict"]

        cardlists = [c for c in data.get("cardlists") or [] if isinstance(c, dict)]
        card_info = data.get("card") if isinstance(data.get("card"), dict) else {}

        commander_name = data.get("commander") or card_info.get("name")
        if not commander_name:
            first = next((view for c in cardlists for view in c.get("cardviews") or []), None)
            if first and first.get("name"):
                commander_name = first["name"]
                warnings.append(ParseWarning(
                    WarningType.FORMAT_ASSUMPTION,
                    f'No commander field; using first listed card "{commander_name}"',
                ))

        cards: list[StandardCard] = []
        if isinstance(data.get("cards"), list):
            for raw in data["cards"]:
                if not isinstance(raw, dict) or not raw.get("name"):
                    continue
                cards.append(self._make_card(
                    raw["name"],
                    self._card_quantity(raw.get("quantity")),
                    synergy=raw.get("synergy"),
                    salt_score=raw.get("salt_score", raw.get("saltScore")),
                    inclusion=raw.get("inclusion"),
                ))
        else:
            for cardlist in cardlists:
                header = cardlist.get("header") or None
                for view in cardlist.get("cardviews") or []:
                    if not isinstance(view, dict) or not view.get("name"):
                        continue
                    if view["name"] == commander_name:
                        continue
                    cards.append(self._make_card(
                        view["name"],
                        1,
                        synergy=view.get("synergy_score", view.get("synergy")),
                        salt_score=view.get("salt_score"),
                        inclusion=self._inclusion_rate(view),
                        cardlist=header,
                    ))

        themes = [str(theme) for theme in data.get("themes") or []]
        return self._build_deck(
            commander_name,
            cards,
            themes,
            salt_score=_number(data.get("salt_score", data.get("saltScore"))),
            name=data.get("name"),
        )

    def _parse_text(self, content: str, warnings: list[ParseWarning]) -> StandardDeck:
        commander_name: Optional[str] = None
        deck_name: Optional[str] = None
        themes: list[str] = []
        cards: list[StandardCard] = []

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line:
                continue
            if line.startswith("//") or line.startswith("#"):
                # Our own export puts the deck name in a leading comment
                if deck_name is None and not cards and commander_name is None:
                    deck_name = line.lstrip("/#").strip() or None
                continue

            key, sep, value = line.partition(":")
            lowered_key = key.strip().lower()
            if sep and lowered_key in ("commander", "general"):
                commander_name = value.strip()
                continue
            if sep and lowered_key in ("themes", "synergy"):
                themes.extend(t.strip() for t in value.split(",") if t.strip())
                continue

            match = CARD_LINE.match(line)
            if match is None:
                continue
            quantity, name, inclusion, salt = match.groups()
            cards.append(self._make_card(
                self.normalize_card_name(name),
                int(quantity),
                inclusion=_number(inclusion),
                salt_score=_number(salt),
            ))

        if not cards and commander_name is None:
            raise ValueError("no commander or card lines found")

        return self._build_deck(commander_name, cards, themes, name=deck_name)

    @staticmethod
    def _inclusion_rate(view: dict[str, Any]) -> Optional[float]:
        """Percentage of eligible decks running the card."""
        if view.get("inclusion") is not None and not view.get("potential_decks"):
            return _number(view.get("inclusion"))
        num_decks = _number(view.get("num_decks")) or 0
        potential = _number(view.get("potential_decks")) or 0
        if potential > 0:
            return round(num_decks / potential * 100, 1)
        return None

    @staticmethod
    def _make_card(name: str, quantity: int, **stats: Any) -> StandardCard:
        metadata = {key: value for key, value in stats.items() if value is not None}
        metadata["is_edhrec_recommendation"] = True
        return StandardCard(name=str(name), quantity=quantity, metadata=metadata)

    def _build_deck(
        self,
        commander_name: Optional[str],
        cards: list[StandardCard],
        themes: list[str],
        salt_score: Optional[float] = None,
        name: Optional[str] = None,
    ) -> StandardDeck:
        commander_name = commander_name or UNKNOWN_COMMANDER
        commander = StandardCard(
            name=commander_name,
            quantity=1,
            category="Commander",
            metadata={"is_commander": True},
        )
        return StandardDeck(
            name=name or f"{commander_name} Average Deck",
            description=f"Average {commander_name} deck based on EDHREC data",
            format="commander",
            commander=commander,
            cards=cards,
            tags=themes,
            metadata=DeckMetadata(
                source=self.name,
                archetype=", ".join(themes) or None,
                custom_fields={
                    "themes": themes,
                    "salt_score": salt_score,
                    "is_average_deck": True,
                },
                commander_source=CommanderSource.EXPLICIT,
            ),
        )

    def _serialize(self, deck: StandardDeck, fmt: str, options: ExportOptions) -> tuple[str, str, str]:
        base_name = f"{safe_filename(deck.name)}_edhrec"

        if fmt == "json":
            commander = deck.commander.name if deck.commander else UNKNOWN_COMMANDER
            payload: dict[str, Any] = {
                "name": deck.name,
                "commander": commander,
                "url": f"/commanders/{name_to_slug(commander)}",
                "cards": [self._card_json(card, options) for card in deck.cards],
                "themes": list(deck.tags),
            }
            if options.include_metadata:
                payload["salt_score"] = deck.metadata.custom_fields.get("salt_score")
            return json.dumps(payload, indent=2, default=str), f"{base_name}.json", "application/json"

        lines = [f"// {deck.name}"]
        if deck.commander is not None:
            lines.append(f"Commander: {deck.commander.name}")
        if deck.tags:
            lines.append(f"Themes: {', '.join(deck.tags)}")
        lines.append("")

        for card in deck.cards:
            line = f"{card.quantity} {card.name}"
            if options.include_metadata:
                inclusion = card.metadata.get("inclusion")
                salt = card.metadata.get("salt_score")
                if inclusion:
                    line += f" ({inclusion}%)"
                if salt:
                    line += f" [Salt: {salt}]"
            lines.append(line)

        logger.debug("Rendered EDHREC text", deck=deck.name, lines=len(lines))
        return "\n".join(lines), f"{base_name}.txt", "text/plain"

    @staticmethod
    def _card_json(card: StandardCard, options: ExportOptions) -> dict[str, Any]:
        entry: dict[str, Any] = {"name": card.name, "quantity": card.quantity}
        if options.include_metadata:
            for key in ("synergy", "salt_score", "inclusion"):
                if card.metadata.get(key) is not None:
                    entry[key] = card.metadata[key]
        return entry
