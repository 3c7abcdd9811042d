"""
Deck platform adapters.

Converts deck lists between third-party platforms (Moxfield, Archidekt,
TappedOut, EDHREC, MTGGoldfish, CSV and plain text) and the StandardDeck
model. Call ``initialize_adapters()`` once at startup, then use
``import_deck()`` or ``find_adapter_for_input()`` on unlabeled input.
"""
import time
from typing import Any, Optional

import structlog

from deckbridge.services.platforms.adapters import (
    ArchidektAdapter,
    CSVAdapter,
    EDHRECAdapter,
    MoxfieldAdapter,
    MTGGoldfishAdapter,
    TappedOutAdapter,
    TextAdapter,
)
from deckbridge.services.platforms.base import BasePlatformAdapter, FingerprintAdapter
from deckbridge.services.platforms.custom_format import (
    CustomFormatAdapter,
    CustomFormatDefinition,
    CustomFormatDefinitionBuilder,
    CustomFormatFactory,
    custom_format_factory,
)
from deckbridge.services.platforms.fetch import PlatformFetcher
from deckbridge.services.platforms.registry import AdapterCandidate, AdapterRegistry, adapter_registry
from deckbridge.services.platforms.types import (
    DeckFile,
    DeckInput,
    ErrorType,
    ParseError,
    ParseMetadata,
    ParseOptions,
    ParseResult,
    StandardCard,
    StandardDeck,
)

logger = structlog.get_logger()

# Registration order is the detection tie-break order
DEFAULT_ADAPTERS: tuple[type[BasePlatformAdapter], ...] = (
    MoxfieldAdapter,
    ArchidektAdapter,
    TappedOutAdapter,
    EDHRECAdapter,
    MTGGoldfishAdapter,
    CSVAdapter,
    TextAdapter,
)


def initialize_adapters(
    registry: Optional[AdapterRegistry] = None,
    fetcher: Optional[PlatformFetcher] = None,
) -> AdapterRegistry:
    """
    Clear ``registry`` (the global one by default) and register the
    built-in adapters.
    """
    target = registry if registry is not None else adapter_registry
    target.clear()
    for adapter_cls in DEFAULT_ADAPTERS:
        target.register(adapter_cls(fetcher=fetcher))
    logger.info("Initialized platform adapters", count=len(target))
    return target


async def find_adapter_for_input(data: DeckInput) -> Optional[BasePlatformAdapter]:
    return await adapter_registry.find_adapter_for_input(data)


async def import_deck(data: DeckInput, options: Optional[ParseOptions] = None) -> ParseResult:
    """
    Detect the format of ``data`` and parse it.

    Returns:
        The chosen adapter's ParseResult, or a ``format_error`` result when
        no adapter claims the input.
    """
    start = time.perf_counter()
    adapter = await adapter_registry.find_adapter_for_input(data)
    if adapter is None:
        return ParseResult(
            success=False,
            metadata=ParseMetadata(
                source="unknown",
                processing_time=(time.perf_counter() - start) * 1000,
            ),
            errors=[ParseError(
                ErrorType.FORMAT_ERROR,
                "No adapter found for input format",
            )],
        )
    return await adapter.parse_decks(data, options)


def get_all_adapters() -> list[BasePlatformAdapter]:
    return adapter_registry.get_all_adapters()


def get_import_adapters() -> list[BasePlatformAdapter]:
    return adapter_registry.get_import_adapters()


def get_export_adapters() -> list[BasePlatformAdapter]:
    return adapter_registry.get_export_adapters()


def get_bulk_adapters() -> list[BasePlatformAdapter]:
    return adapter_registry.get_bulk_adapters()


def get_supported_formats() -> list[str]:
    return adapter_registry.get_supported_formats()


def get_adapters_for_format(format: str) -> list[BasePlatformAdapter]:
    return adapter_registry.get_adapters_for_format(format)


def get_adapter_stats() -> dict[str, Any]:
    return adapter_registry.get_statistics()


__all__ = [
    "AdapterCandidate",
    "AdapterRegistry",
    "ArchidektAdapter",
    "BasePlatformAdapter",
    "CSVAdapter",
    "CustomFormatAdapter",
    "CustomFormatDefinition",
    "CustomFormatDefinitionBuilder",
    "CustomFormatFactory",
    "DEFAULT_ADAPTERS",
    "DeckFile",
    "EDHRECAdapter",
    "FingerprintAdapter",
    "MoxfieldAdapter",
    "MTGGoldfishAdapter",
    "StandardCard",
    "StandardDeck",
    "TappedOutAdapter",
    "TextAdapter",
    "adapter_registry",
    "custom_format_factory",
    "find_adapter_for_input",
    "get_adapter_stats",
    "get_adapters_for_format",
    "get_all_adapters",
    "get_bulk_adapters",
    "get_export_adapters",
    "get_import_adapters",
    "get_supported_formats",
    "import_deck",
    "initialize_adapters",
]
