# src/digest/registry.py — v1
"""Digester registry — explicit registration and ordered lookup.

Registration order is priority order: the coordinator runs digesters in the
order they were registered.
"""

from __future__ import annotations

import logging

from digestkit.digest.base_digester import BaseDigester

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when a digester lookup fails."""


class DigesterRegistry:
    """Registry of all available digesters."""

    def __init__(self) -> None:
        self._digesters: dict[str, BaseDigester] = {}

    def register(self, digester: BaseDigester) -> None:
        """Register a digester. Registering a known name again is a no-op."""
        if digester.name in self._digesters:
            logger.debug("Digester already registered: %s", digester.name)
            return
        self._digesters[digester.name] = digester
        logger.debug("Registered digester: %s", digester.name)

    def get(self, name: str) -> BaseDigester | None:
        """Get digester by name, or None if not registered."""
        return self._digesters.get(name)

    def get_or_raise(self, name: str) -> BaseDigester:
        """Get digester by name, raise if not found."""
        digester = self._digesters.get(name)
        if digester is None:
            raise RegistryError(f"Digester '{name}' not found in registry")
        return digester

    def get_all(self) -> list[BaseDigester]:
        """Digesters in priority order."""
        return list(self._digesters.values())

    def get_all_digest_types(self) -> list[str]:
        """Ordered output names of every registered digester."""
        types: list[str] = []
        for digester in self._digesters.values():
            for output in digester.outputs:
                if output not in types:
                    types.append(output)
        return types

    def find_by_output(self, output: str) -> BaseDigester | None:
        """The digester that writes the given digest type."""
        for digester in self._digesters.values():
            if output in digester.outputs:
                return digester
        return None

    def clear(self) -> None:
        self._digesters.clear()

    def __len__(self) -> int:
        return len(self._digesters)

    def __contains__(self, name: object) -> bool:
        return name in self._digesters
