"""
Base classes for deck platform adapters.

Defines the interface every platform adapter implements, plus the helpers
they share: option defaults, card-name normalization, quantity parsing,
structural validation, timeouts and the result-envelope bookkeeping.
"""
import asyncio
import gzip
import re
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any, Awaitable, Optional, TypeVar

import structlog

from deckbridge.core.config import settings
from deckbridge.services.platforms.exceptions import AdapterTimeoutError, FetchError
from deckbridge.services.platforms.fetch import PlatformFetcher, get_default_fetcher
from deckbridge.services.platforms.types import (
    AdapterCapabilities,
    CardDatabase,
    CommanderSource,
    DeckFile,
    DeckInput,
    ErrorType,
    ExportError,
    ExportMetadata,
    ExportOptions,
    ExportResult,
    ParseError,
    ParseMetadata,
    ParseOptions,
    ParseResult,
    ParseWarning,
    QuantityParse,
    StandardCard,
    StandardDeck,
    ValidationError,
    ValidationResult,
    WarningType,
    input_text,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

QUANTITY_PATTERN = re.compile(r"^(\d+)x?\s+(.+)$")
_WHITESPACE = re.compile(r"\s+")
_UNSAFE_FILENAME = re.compile(r"[^a-zA-Z0-9]")

_QUOTE_TABLE = str.maketrans({
    "\u201c": '"',
    "\u201d": '"',
    "\u2018": "'",
    "\u2019": "'",
})

DEFAULT_PARSE_OPTIONS = ParseOptions(
    include_metadata=True,
    validate_cards=True,
    resolve_card_names=True,
    preserve_categories=True,
    custom_fields=[],
    timeout=None,  # settings.parse_timeout_ms
)


def normalize_card_name(name: str) -> str:
    """
    Normalize a card name for comparison and storage.

    Trims, collapses runs of whitespace and straightens curly quotes.
    Idempotent.

    Examples:
        >>> normalize_card_name("  Urza’s   Saga ")
        "Urza's Saga"
    """
    return _WHITESPACE.sub(" ", name.strip()).translate(_QUOTE_TABLE)


def parse_quantity(text: str) -> QuantityParse:
    """
    Split a "<qty> <name>" token into quantity and normalized name.

    Recognizes "4x Lightning Bolt", "4 Lightning Bolt" and bare
    "Lightning Bolt" (quantity 1).
    """
    match = QUANTITY_PATTERN.match(text.strip())
    if match:
        return QuantityParse(int(match.group(1)), normalize_card_name(match.group(2)))
    return QuantityParse(1, normalize_card_name(text))


def safe_filename(name: str) -> str:
    """Replace anything outside [a-zA-Z0-9] with underscores."""
    return _UNSAFE_FILENAME.sub("_", name or "deck")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as platforms send them ('Z' suffix included)."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def detect_file_type(data: DeckInput) -> str:
    """
    Guess the file type of an input.

    A file's extension wins; otherwise the content is sniffed: JSON
    brackets, XML markers, comma-plus-newline for CSV, else plain text.
    """
    if isinstance(data, DeckFile) and data.extension:
        return data.extension

    content = input_text(data)
    stripped = content.lstrip()
    if stripped.startswith("{") or stripped.startswith("["):
        return "json"
    if "<?xml" in content or "<deck" in content:
        return "xml"
    if "," in content and "\n" in content:
        return "csv"
    return "txt"


def validate_deck_format(deck: StandardDeck) -> list[ValidationError]:
    """
    Structural checks on a deck. Never raises.

    Returns:
        A ``data_error`` entry per problem found (empty when the deck is sound).
    """
    errors: list[ValidationError] = []

    if not deck.name or not deck.name.strip():
        errors.append(ValidationError(ErrorType.DATA_ERROR, "Deck name is required"))

    if not deck.format or not deck.format.strip():
        errors.append(ValidationError(ErrorType.DATA_ERROR, "Deck format is required"))

    if not deck.cards:
        errors.append(ValidationError(ErrorType.DATA_ERROR, "Deck must contain at least one card"))

    for index, card in enumerate(deck.cards):
        if not card.name or not card.name.strip():
            errors.append(ValidationError(
                ErrorType.DATA_ERROR, f"Card at index {index} is missing name"
            ))
        if not isinstance(card.quantity, int) or card.quantity < 1:
            errors.append(ValidationError(
                ErrorType.DATA_ERROR,
                f'Card "{card.name}" has invalid quantity: {card.quantity}',
            ))

    return errors


async def with_timeout(awaitable: Awaitable[T], timeout_ms: Optional[int]) -> T:
    """
    Await with a time budget in milliseconds.

    Raises:
        AdapterTimeoutError: When the budget runs out. The awaitable is cancelled.
    """
    if not timeout_ms or timeout_ms <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise AdapterTimeoutError(timeout_ms) from e


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class BasePlatformAdapter(ABC):
    """
    Abstract base class for deck platform adapters.

    Subclasses declare their identity (``name``, ``id``, ``version``,
    ``supported_formats``, ``capabilities``) and implement ``can_handle``,
    ``_parse_input`` and ``_serialize``. ``parse_decks`` and ``export_deck``
    wrap those hooks with option defaults, timeouts, normalization and error
    envelopes, so no exception caused by bad input escapes an adapter.
    """

    name: str = ""
    id: str = ""
    version: str = "1.0.0"
    supported_formats: list[str] = []
    capabilities: AdapterCapabilities = AdapterCapabilities()

    def __init__(
        self,
        fetcher: Optional[PlatformFetcher] = None,
        card_database: Optional[CardDatabase] = None,
    ):
        """
        Args:
            fetcher: HTTP collaborator for URL imports. Defaults to the shared
                process-wide fetcher.
            card_database: Optional card lookup used for resolution statistics.
        """
        self._fetcher = fetcher
        self.card_database = card_database

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} version={self.version!r}>"

    @property
    def fetcher(self) -> PlatformFetcher:
        if self._fetcher is None:
            self._fetcher = get_default_fetcher()
        return self._fetcher

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    @abstractmethod
    async def can_handle(self, data: DeckInput) -> bool:
        """Cheap sniff test: could this adapter parse ``data``?"""
        pass

    async def score_input(self, data: DeckInput) -> float:
        """Confidence in [0, 1] that ``data`` is this adapter's format."""
        return 0.8 if await self.can_handle(data) else 0.0

    async def validate_input(self, data: DeckInput) -> ValidationResult:
        try:
            confidence = await self.score_input(data)
        except Exception as e:
            logger.warning("Input validation failed", adapter=self.id, error=str(e))
            return ValidationResult(
                is_valid=False,
                errors=[ValidationError(ErrorType.VALIDATION_ERROR, f"Validation failed: {e}")],
                suggestions=["Check input format and try again"],
            )

        if confidence <= 0:
            return ValidationResult(
                is_valid=False,
                errors=[ValidationError(
                    ErrorType.FORMAT_ERROR,
                    f"Input format not supported by {self.name} adapter",
                )],
                suggestions=["Try using a different adapter or check the input format"],
            )

        return ValidationResult(is_valid=True, format=self.id, confidence=min(confidence, 1.0))

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    @abstractmethod
    async def _parse_input(
        self,
        data: DeckInput,
        options: ParseOptions,
        warnings: list[ParseWarning],
    ) -> list[StandardDeck]:
        """
        Turn raw input into decks. Raise on malformed input.

        Args:
            data: Raw input (URL, text or file).
            options: Fully merged parse options.
            warnings: Append non-fatal findings here.
        """
        pass

    async def parse_decks(
        self,
        data: DeckInput,
        options: Optional[ParseOptions] = None,
    ) -> ParseResult:
        """
        Parse ``data`` into standard decks.

        Returns:
            ParseResult. On any failure ``success`` is False with one
            descriptive error and no decks.
        """
        opts = self.merge_parse_options(options)
        start = time.perf_counter()
        warnings: list[ParseWarning] = []

        try:
            decks = await with_timeout(self._parse_input(data, opts, warnings), opts.timeout)
        except AdapterTimeoutError as e:
            logger.warning("Deck parse timed out", adapter=self.id, timeout_ms=e.timeout_ms)
            return self._failed_parse(ErrorType.PARSING_ERROR, f"Failed to parse {self.name} deck: {e}", start)
        except FetchError as e:
            return self._failed_parse(
                ErrorType.PARSING_ERROR,
                f"Failed to parse {self.name} deck: {e}",
                start,
                context=e.url,
            )
        except Exception as e:
            logger.info("Deck parse failed", adapter=self.id, error=str(e))
            return self._failed_parse(ErrorType.PARSING_ERROR, f"Failed to parse {self.name} deck: {e}", start)

        decks = [self._finalize_deck(deck, opts, warnings) for deck in decks]

        errors: list[ParseError] = []
        if opts.validate_cards:
            for deck in decks:
                for problem in validate_deck_format(deck):
                    errors.append(ParseError(
                        ErrorType.VALIDATION_ERROR,
                        problem.message,
                        line=problem.line,
                        context=deck.name,
                    ))
        else:
            for deck in decks:
                if not deck.cards and deck.commander is None:
                    warnings.append(ParseWarning(
                        WarningType.DATA_LOSS,
                        f'Deck "{deck.name}" contains no cards',
                    ))

        metadata = self._parse_metadata(decks, warnings, start)

        if errors:
            return ParseResult(success=False, metadata=metadata, errors=errors, warnings=warnings)

        logger.debug(
            "Parsed decks",
            adapter=self.id,
            decks=len(decks),
            cards=metadata.total_cards,
            ms=round(metadata.processing_time, 2),
        )
        return ParseResult(success=True, metadata=metadata, decks=decks, warnings=warnings)

    def _failed_parse(
        self,
        error_type: ErrorType,
        message: str,
        start: float,
        context: Optional[str] = None,
    ) -> ParseResult:
        return ParseResult(
            success=False,
            metadata=ParseMetadata(source=self.name, processing_time=_elapsed_ms(start)),
            errors=[ParseError(error_type, message, context=context)],
        )

    def _finalize_deck(
        self,
        deck: StandardDeck,
        options: ParseOptions,
        warnings: list[ParseWarning],
    ) -> StandardDeck:
        """Apply the normalization policies every adapter shares."""
        if not deck.metadata.source:
            deck.metadata.source = self.name

        if options.resolve_card_names:
            if deck.commander is not None:
                deck.commander.name = normalize_card_name(deck.commander.name)
            for board in (deck.cards, deck.sideboard, deck.maybeboard):
                for card in board:
                    card.name = normalize_card_name(card.name)
            for category in deck.categories:
                category.cards = [normalize_card_name(n) for n in category.cards]

        deck.cards = self._drop_invalid_quantities(deck.cards, "main deck", warnings)
        deck.sideboard = self._drop_invalid_quantities(deck.sideboard, "sideboard", warnings)
        deck.maybeboard = self._drop_invalid_quantities(deck.maybeboard, "maybeboard", warnings)

        if deck.commander is not None:
            commander_name = deck.commander.name.lower()
            kept = [card for card in deck.cards if card.name.lower() != commander_name]
            if len(kept) != len(deck.cards):
                warnings.append(ParseWarning(
                    WarningType.DATA_LOSS,
                    f'Removed commander "{deck.commander.name}" from the main deck',
                ))
                deck.cards = kept

        if not options.preserve_categories:
            deck.categories = []
            for board in (deck.cards, deck.sideboard, deck.maybeboard):
                for card in board:
                    card.category = None

        if not options.include_metadata:
            deck.metadata.custom_fields = {}
        elif options.custom_fields:
            allowed = set(options.custom_fields)
            deck.metadata.custom_fields = {
                key: value for key, value in deck.metadata.custom_fields.items() if key in allowed
            }

        return deck

    @staticmethod
    def _drop_invalid_quantities(
        cards: list[StandardCard],
        board: str,
        warnings: list[ParseWarning],
    ) -> list[StandardCard]:
        kept = []
        for card in cards:
            if isinstance(card.quantity, int) and card.quantity >= 1:
                kept.append(card)
            else:
                warnings.append(ParseWarning(
                    WarningType.DATA_LOSS,
                    f'Dropped "{card.name}" from {board}: invalid quantity {card.quantity}',
                    context=card.name,
                ))
        return kept

    def _parse_metadata(
        self,
        decks: list[StandardDeck],
        warnings: list[ParseWarning],
        start: float,
    ) -> ParseMetadata:
        names: list[str] = []
        for deck in decks:
            if deck.commander is not None:
                names.append(deck.commander.name)
            names.extend(card.name for card in deck.cards)

        unresolved: list[str] = []
        if self.card_database is not None:
            for name in dict.fromkeys(names):
                if not self.card_database.contains(name):
                    unresolved.append(name)
                    warnings.append(ParseWarning(
                        WarningType.CARD_NOT_FOUND,
                        f'Card not found: "{name}"',
                        suggestion="Check the spelling or printing of this card",
                        context=name,
                    ))

        total = len(names)
        missing = set(unresolved)
        resolved = sum(1 for name in names if name not in missing)
        return ParseMetadata(
            source=self.name,
            processing_time=_elapsed_ms(start),
            card_resolution_rate=(resolved / total) if total else 0.0,
            total_cards=total,
            resolved_cards=resolved,
            unresolved_cards=unresolved,
        )

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    @abstractmethod
    def _serialize(
        self,
        deck: StandardDeck,
        fmt: str,
        options: ExportOptions,
    ) -> tuple[str, str, str]:
        """
        Render a deck.

        Returns:
            (payload, filename, mime_type)
        """
        pass

    async def export_deck(
        self,
        deck: StandardDeck,
        format: Optional[str] = None,
        options: Optional[ExportOptions] = None,
    ) -> ExportResult:
        """
        Serialize a deck into this platform's native shape.

        Args:
            deck: Deck to export.
            format: Target sub-format; defaults to the first supported format.
            options: Export options.

        Raises:
            ValueError: If ``deck`` is None.
        """
        if deck is None:
            raise ValueError("Cannot export: deck is None")

        opts = self.merge_export_options(options)
        fmt = (format or opts.format or "").lower()
        start = time.perf_counter()

        if not self.capabilities.can_export:
            return self._failed_export(f"{self.name} adapter does not support export", fmt, start)
        if fmt not in self.supported_formats:
            return self._failed_export(
                f"Failed to export to {self.name} format: unsupported format '{fmt}'", fmt, start
            )

        try:
            payload, filename, mime_type = self._serialize(deck, fmt, opts)
        except Exception as e:
            logger.info("Deck export failed", adapter=self.id, error=str(e))
            return self._failed_export(f"Failed to export to {self.name} format: {e}", fmt, start)

        data: str | bytes = payload
        compression = None
        if opts.compression:
            data = gzip.compress(payload.encode("utf-8"))
            filename = f"{filename}.gz"
            compression = "gzip"
            size = len(data)
        else:
            size = len(payload.encode("utf-8"))

        return ExportResult(
            success=True,
            data=data,
            filename=filename,
            mime_type=mime_type,
            metadata=ExportMetadata(
                format=fmt,
                processing_time=_elapsed_ms(start),
                file_size=size,
                compression=compression,
            ),
        )

    def _failed_export(self, message: str, fmt: str, start: float) -> ExportResult:
        return ExportResult(
            success=False,
            data="",
            filename="",
            mime_type="",
            errors=[ExportError(ErrorType.FORMAT_ERROR, message)],
            metadata=ExportMetadata(format=fmt, processing_time=_elapsed_ms(start)),
        )

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def normalize_card_name(self, name: str) -> str:
        return normalize_card_name(name)

    def parse_quantity(self, text: str) -> QuantityParse:
        return parse_quantity(text)

    def detect_file_type(self, data: DeckInput) -> str:
        return detect_file_type(data)

    def validate_deck_format(self, deck: StandardDeck) -> list[ValidationError]:
        return validate_deck_format(deck)

    async def with_timeout(self, awaitable: Awaitable[T], timeout_ms: Optional[int]) -> T:
        return await with_timeout(awaitable, timeout_ms)

    def merge_parse_options(self, options: Optional[ParseOptions] = None) -> ParseOptions:
        """Fill unset parse options with defaults."""
        merged = replace(DEFAULT_PARSE_OPTIONS, custom_fields=[], timeout=settings.parse_timeout_ms)
        if options is None:
            return merged
        overrides = {k: v for k, v in vars(options).items() if v is not None}
        return replace(merged, **overrides)

    def merge_export_options(self, options: Optional[ExportOptions] = None) -> ExportOptions:
        """Fill unset export options with defaults."""
        merged = ExportOptions(
            format=self.supported_formats[0] if self.supported_formats else "txt",
            include_metadata=True,
            include_categories=True,
            include_prices=False,
            custom_template="",
            compression=False,
        )
        if options is None:
            return merged
        overrides = {k: v for k, v in vars(options).items() if v is not None}
        return replace(merged, **overrides)

    async def _fetch(self, url: str) -> str:
        """GET a platform URL through the fetch collaborator."""
        logger.info("Fetching deck", adapter=self.id, url=url)
        return await self.fetcher.get_text(url, self.id)

    @staticmethod
    def _card_quantity(value: Any, default: int = 1) -> int:
        """Coerce a quantity field; unparseable values become ``default``."""
        if value is None or value == "":
            return default
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _legendary_commander(
        cards: list[StandardCard],
        warnings: list[ParseWarning],
        type_line_key: str = "type_line",
    ) -> Optional[StandardCard]:
        """
        Best-effort commander guess: the first single-copy card whose type
        line contains "Legendary". Known to misfire on legendary singletons
        that are not the commander.
        """
        for card in cards:
            type_line = str(card.metadata.get(type_line_key) or "")
            if card.quantity == 1 and "Legendary" in type_line:
                warnings.append(ParseWarning(
                    WarningType.FORMAT_ASSUMPTION,
                    f'Assumed "{card.name}" is the commander (legendary single-copy card)',
                    suggestion="Tag the commander explicitly to avoid a wrong guess",
                    context=CommanderSource.LEGENDARY_HEURISTIC.value,
                ))
                return card
        return None


class FingerprintAdapter(BasePlatformAdapter):
    """
    Adapter whose detection is a single confidence function.

    ``can_handle`` and ``score_input`` both derive from ``fingerprint`` so
    the yes/no answer and the confidence can never disagree.
    """

    # Extensions claimed on file name alone (scored 0.7) when content does not match
    file_extensions: tuple[str, ...] = ()

    @abstractmethod
    def fingerprint(self, data: DeckInput) -> float:
        """Confidence in [0, 1]; 0 means "not mine"."""
        pass

    def _score(self, data: DeckInput) -> float:
        score = self.fingerprint(data)
        if score <= 0 and isinstance(data, DeckFile) and data.extension in self.file_extensions:
            return 0.7
        return score

    async def can_handle(self, data: DeckInput) -> bool:
        return self._score(data) > 0

    async def score_input(self, data: DeckInput) -> float:
        return self._score(data)
