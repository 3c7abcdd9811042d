"""
Adapter registry.

Holds the active platform adapters and picks the best one for unlabeled
input by asking every adapter for a confidence score.

The default registry is populated once at startup by
``initialize_adapters()`` and is read-mostly afterwards. Mutations (custom
format registration at runtime) take the registry lock; detection snapshots
the adapter list under the lock and scores without holding it.
"""
import threading
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from deckbridge.services.platforms.base import BasePlatformAdapter
from deckbridge.services.platforms.exceptions import AdapterRegistrationError
from deckbridge.services.platforms.types import DeckInput

logger = structlog.get_logger()


@dataclass
class AdapterCandidate:
    """An adapter that claimed an input, with its confidence."""
    adapter: BasePlatformAdapter
    confidence: float


class AdapterRegistry:
    """Registry of platform adapters keyed by id, in registration order."""

    def __init__(self):
        self._adapters: dict[str, BasePlatformAdapter] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, adapter_id: str) -> bool:
        return adapter_id in self._adapters

    def validate_adapter(self, adapter: BasePlatformAdapter) -> tuple[bool, list[str]]:
        """
        Check an adapter's declared identity and capabilities.

        Returns:
            (is_valid, errors)
        """
        errors: list[str] = []

        if not adapter.id or not adapter.id.strip():
            errors.append("Adapter ID is required")
        if not adapter.name or not adapter.name.strip():
            errors.append("Adapter name is required")
        if not adapter.version or not adapter.version.strip():
            errors.append("Adapter version is required")
        if not adapter.supported_formats:
            errors.append("Adapter must support at least one format")

        capabilities = adapter.capabilities
        if not capabilities.can_import and not capabilities.can_export:
            errors.append("Adapter must support either import or export")

        with self._lock:
            if adapter.id and adapter.id in self._adapters:
                errors.append(f'Adapter ID "{adapter.id}" is already registered')

        return not errors, errors

    def register(self, adapter: BasePlatformAdapter) -> None:
        """
        Raises:
            AdapterRegistrationError: Listing every validation problem.
        """
        with self._lock:
            is_valid, errors = self.validate_adapter(adapter)
            if not is_valid:
                raise AdapterRegistrationError(errors)
            self._adapters[adapter.id] = adapter
        logger.info("Registered adapter", adapter=adapter.id, version=adapter.version)

    def unregister(self, adapter_id: str) -> None:
        with self._lock:
            removed = self._adapters.pop(adapter_id, None)
        if removed is not None:
            logger.info("Unregistered adapter", adapter=adapter_id)

    def get_adapter(self, adapter_id: str) -> Optional[BasePlatformAdapter]:
        with self._lock:
            return self._adapters.get(adapter_id)

    def get_all_adapters(self) -> list[BasePlatformAdapter]:
        with self._lock:
            return list(self._adapters.values())

    def clear(self) -> None:
        with self._lock:
            self._adapters.clear()

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def find_candidates(self, data: DeckInput) -> list[AdapterCandidate]:
        """
        Every adapter that claims ``data``, best first.

        Sorting is stable, so among equal confidences the adapter registered
        first stays ahead.
        """
        candidates: list[AdapterCandidate] = []
        for adapter in self.get_all_adapters():
            try:
                if not await adapter.can_handle(data):
                    continue
                validation = await adapter.validate_input(data)
            except Exception as e:
                logger.warning("Adapter detection failed", adapter=adapter.id, error=str(e))
                continue
            if validation.is_valid:
                candidates.append(AdapterCandidate(adapter, validation.confidence))

        return sorted(candidates, key=lambda c: c.confidence, reverse=True)

    async def find_adapter_for_input(self, data: DeckInput) -> Optional[BasePlatformAdapter]:
        """The highest-confidence adapter for ``data``, or None if nothing claims it."""
        candidates = await self.find_candidates(data)
        if not candidates:
            logger.debug("No adapter claimed input")
            return None

        best = candidates[0]
        logger.debug(
            "Selected adapter",
            adapter=best.adapter.id,
            confidence=round(best.confidence, 3),
            candidates=[(c.adapter.id, round(c.confidence, 3)) for c in candidates],
        )
        return best.adapter

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_supported_formats(self) -> list[str]:
        formats = {fmt for adapter in self.get_all_adapters() for fmt in adapter.supported_formats}
        return sorted(formats)

    def get_adapters_for_format(self, format: str) -> list[BasePlatformAdapter]:
        return [a for a in self.get_all_adapters() if format in a.supported_formats]

    def is_format_supported(self, format: str) -> bool:
        return format in self.get_supported_formats()

    def get_import_adapters(self) -> list[BasePlatformAdapter]:
        return [a for a in self.get_all_adapters() if a.capabilities.can_import]

    def get_export_adapters(self) -> list[BasePlatformAdapter]:
        return [a for a in self.get_all_adapters() if a.capabilities.can_export]

    def get_bulk_adapters(self) -> list[BasePlatformAdapter]:
        return [a for a in self.get_all_adapters() if a.capabilities.supports_bulk_operations]

    def get_statistics(self) -> dict[str, Any]:
        formats = self.get_supported_formats()
        return {
            "total_adapters": len(self.get_all_adapters()),
            "import_adapters": len(self.get_import_adapters()),
            "export_adapters": len(self.get_export_adapters()),
            "bulk_adapters": len(self.get_bulk_adapters()),
            "supported_formats": len(formats),
            "formats": formats,
        }


# Global registry instance
adapter_registry = AdapterRegistry()
