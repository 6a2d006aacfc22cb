"""Ordered, named, mutable registry of credential providers."""

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger("tokenchain.registry")

# (scopes, params) -> Outcome, a bare CredentialSource, or None
Provider = Callable[[frozenset[str], Mapping[str, Any]], Any]


class ProviderRegistry:
    """Providers in chain order, keyed by name.

    Replacing a provider keeps its position, adding one appends it, and
    setting one to None removes it; the relative order of the others never
    changes. Reads and writes are serialized, and ``override`` restores the
    previous state however the ``with`` block exits.
    """

    def __init__(self, providers: Iterable[tuple[str, Provider]] | Mapping = ()):
        """Initialize ProviderRegistry.

        Args:
            providers: Initial (name, provider) pairs; also what reset() restores.
        """
        if isinstance(providers, Mapping):
            providers = providers.items()
        self._defaults = [(name, provider) for name, provider in providers]
        self._providers: dict[str, Provider] = {}
        self._lock = threading.RLock()
        for name, provider in self._defaults:
            self.set(name, provider)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._providers)

    def get(self, name: str) -> Provider | None:
        with self._lock:
            return self._providers.get(name)

    def set(self, name: str, provider: Provider | None) -> None:
        """Insert, replace or (with None) remove a provider by name."""
        if provider is not None and not callable(provider):
            raise TypeError(f"Provider {name!r} must be callable, got {type(provider).__name__}")
        with self._lock:
            if provider is None:
                if self._providers.pop(name, None) is not None:
                    logger.debug(f"Removed provider {name}")
            else:
                action = "Replaced" if name in self._providers else "Added"
                self._providers[name] = provider
                logger.debug(f"{action} provider {name}")

    def update(self, providers: Mapping[str, Provider | None]) -> None:
        with self._lock:
            for name, provider in providers.items():
                self.set(name, provider)

    def clear(self) -> None:
        with self._lock:
            self._providers.clear()

    def reset(self) -> None:
        """Restore the providers the registry was created with."""
        with self._lock:
            self._providers = dict(self._defaults)

    @contextmanager
    def override(
        self, overrides: Mapping[str, Provider | None], replace: bool = False
    ) -> Iterator["ProviderRegistry"]:
        """Temporarily change the registry.

        Args:
            overrides: name -> provider (None removes the name).
            replace: Use exactly ``overrides`` instead of modifying the
                current providers.
        """
        with self._lock:
            saved = dict(self._providers)
            if replace:
                self._providers = {}
            self.update(overrides)
        try:
            yield self
        finally:
            with self._lock:
                self._providers = saved
            logger.debug("Provider overrides reverted")

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._providers

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def list(self) -> list[tuple[str, Provider]]:
        """Snapshot of (name, provider) pairs in chain order."""
        with self._lock:
            return list(self._providers.items())
