"""
Standard deck model and result envelopes for platform adapters.

Every adapter parses into and exports out of these types, so N platform
formats need N adapters rather than N² converters.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol, Union, runtime_checkable


class ErrorType(str, Enum):
    """Kinds of structured errors carried by result envelopes."""
    PARSING_ERROR = "parsing_error"
    FORMAT_ERROR = "format_error"
    VALIDATION_ERROR = "validation_error"
    DATA_ERROR = "data_error"
    CARD_NOT_FOUND = "card_not_found"
    STRUCTURE_ERROR = "structure_error"
    TEMPLATE_ERROR = "template_error"
    FILE_ERROR = "file_error"


class WarningType(str, Enum):
    CARD_VARIANT = "card_variant"
    MISSING_METADATA = "missing_metadata"
    FORMAT_ASSUMPTION = "format_assumption"
    DATA_LOSS = "data_loss"
    CARD_NOT_FOUND = "card_not_found"


class CommanderSource(str, Enum):
    """
    Which policy assigned ``deck.commander``.

    ``LEGENDARY_HEURISTIC`` is best-effort: it picks the single-copy card whose
    type line contains "Legendary" and can misfire on legendary singletons
    that are not the commander.
    """
    EXPLICIT = "explicit"
    CATEGORY = "category"
    LEGENDARY_HEURISTIC = "legendary_heuristic"


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


@dataclass
class DeckFile:
    """A named blob handed in for import (an uploaded file, a local path)."""
    name: str
    content: Union[str, bytes]
    mime_type: str | None = None

    @property
    def extension(self) -> str:
        """Lowercase extension without the dot, or '' when there is none."""
        suffix = Path(self.name).suffix
        return suffix[1:].lower() if suffix else ""

    def text(self) -> str:
        """Content as text (UTF-8, BOM stripped)."""
        if isinstance(self.content, bytes):
            return self.content.decode("utf-8-sig", errors="replace")
        return self.content.lstrip("\ufeff")

    @classmethod
    def from_path(cls, path: Union[str, Path], mime_type: str | None = None) -> "DeckFile":
        path = Path(path)
        return cls(name=path.name, content=path.read_bytes(), mime_type=mime_type)


DeckInput = Union[str, DeckFile]


def input_text(data: DeckInput) -> str:
    """Raw text of an input, whichever form it arrived in."""
    if isinstance(data, DeckFile):
        return data.text()
    return data


# ---------------------------------------------------------------------------
# Standard model
# ---------------------------------------------------------------------------


@dataclass
class StandardCard:
    """A card entry in a deck. ``quantity`` is always >= 1 once in a deck."""
    name: str
    quantity: int = 1

    # Printing
    set_code: str | None = None
    collector_number: str | None = None
    scryfall_id: str | None = None
    language: str | None = None

    # Deck-building
    category: str | None = None
    is_foil: bool = False
    condition: str | None = None

    # Platform extras (mana cost, type line, price, ...)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class DeckCategory:
    """A named grouping of card names."""
    name: str
    cards: list[str] = field(default_factory=list)
    description: str | None = None
    color: str | None = None


@dataclass
class DeckMetadata:
    source: str = ""
    source_url: str | None = None
    author: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    power_level: int | None = None
    budget: float | None = None
    archetype: str | None = None
    colors: list[str] = field(default_factory=list)
    custom_fields: dict[str, Any] = field(default_factory=dict)
    commander_source: CommanderSource | None = None


@dataclass
class StandardDeck:
    """Platform-agnostic deck. If ``commander`` is set it is not repeated in ``cards``."""
    name: str
    format: str = "commander"
    cards: list[StandardCard] = field(default_factory=list)
    id: str | None = None
    description: str | None = None
    commander: StandardCard | None = None
    sideboard: list[StandardCard] = field(default_factory=list)
    maybeboard: list[StandardCard] = field(default_factory=list)
    categories: list[DeckCategory] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    metadata: DeckMetadata = field(default_factory=DeckMetadata)

    def total_cards(self) -> int:
        """Card count of the main deck plus the commander."""
        total = sum(card.quantity for card in self.cards)
        if self.commander is not None:
            total += self.commander.quantity
        return total

    def all_card_names(self) -> list[str]:
        """Distinct card names across every board, commander first."""
        names: list[str] = []
        seen: set[str] = set()
        boards = [[self.commander] if self.commander else [], self.cards, self.sideboard, self.maybeboard]
        for board in boards:
            for card in board:
                if card.name not in seen:
                    seen.add(card.name)
                    names.append(card.name)
        return names


@dataclass(frozen=True)
class AdapterCapabilities:
    can_import: bool = True
    can_export: bool = True
    supports_multiple_decks: bool = False
    supports_bulk_operations: bool = False
    supports_metadata: bool = True
    supports_categories: bool = False
    supports_custom_fields: bool = False
    requires_authentication: bool = False


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@dataclass
class ParseOptions:
    """
    Parse options. ``None`` means "use the default" and is filled in by
    ``BasePlatformAdapter.merge_parse_options``.
    """
    include_metadata: bool | None = None
    validate_cards: bool | None = None
    resolve_card_names: bool | None = None
    preserve_categories: bool | None = None
    custom_fields: list[str] | None = None
    timeout: int | None = None  # milliseconds


@dataclass
class ExportOptions:
    format: str | None = None
    include_metadata: bool | None = None
    include_categories: bool | None = None
    include_prices: bool | None = None
    custom_template: str | None = None
    compression: bool | None = None


# ---------------------------------------------------------------------------
# Errors and warnings
# ---------------------------------------------------------------------------


@dataclass
class ParseError:
    type: ErrorType
    message: str
    line: int | None = None
    column: int | None = None
    context: str | None = None
    severity: str = "error"


@dataclass
class ParseWarning:
    type: WarningType
    message: str
    suggestion: str | None = None
    context: str | None = None


@dataclass
class ExportError:
    type: ErrorType
    message: str
    context: str | None = None


@dataclass
class ValidationError:
    type: ErrorType
    message: str
    line: int | None = None
    context: str | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class ParseMetadata:
    source: str
    processing_time: float = 0.0  # milliseconds
    card_resolution_rate: float = 0.0
    total_cards: int = 0
    resolved_cards: int = 0
    unresolved_cards: list[str] = field(default_factory=list)


@dataclass
class ParseResult:
    success: bool
    metadata: ParseMetadata
    decks: list[StandardDeck] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)

    @property
    def deck(self) -> StandardDeck | None:
        """First deck, for the common single-deck case."""
        return self.decks[0] if self.decks else None


@dataclass
class ExportMetadata:
    format: str
    processing_time: float = 0.0  # milliseconds
    file_size: int = 0  # bytes
    compression: str | None = None


@dataclass
class ExportResult:
    success: bool
    data: Union[str, bytes]
    filename: str
    mime_type: str
    metadata: ExportMetadata
    errors: list[ExportError] = field(default_factory=list)


@dataclass
class ValidationResult:
    is_valid: bool
    format: str | None = None
    confidence: float = 0.0
    errors: list[ValidationError] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class QuantityParse:
    quantity: int
    card_name: str


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@runtime_checkable
class CardDatabase(Protocol):
    """Card-name lookup used to report resolution statistics."""

    def contains(self, name: str) -> bool:
        ...


CustomRuleValidator = Callable[[str], bool]
