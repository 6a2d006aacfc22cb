"""Provider chain execution and the package-level entry points."""

import logging
from collections.abc import Iterable, Mapping
from contextlib import AbstractContextManager
from functools import cache
from typing import Any

from .config import Config, get_config, setup_logging
from .exceptions import ChainExhausted, TerminalCredentialError, TokenChainError
from .models import (
    CredentialSource,
    Failed,
    Outcome,
    Skipped,
    Success,
    TraceEntry,
    normalize_scopes,
)
from .providers import builtin_providers
from .registry import Provider, ProviderRegistry

logger = logging.getLogger("tokenchain.chain")


def invoke_provider(
    name: str, provider: Provider, scopes: frozenset[str], params: Mapping[str, Any]
) -> Outcome:
    """Call one provider and normalize whatever happens into an Outcome.

    Terminal credential errors propagate; every other exception becomes
    Failed. A success that does not cover the requested scopes is Failed too.
    """
    try:
        result = provider(scopes, params)
    except TerminalCredentialError:
        raise
    except Exception as e:
        logger.debug(f"Provider {name} raised {type(e).__name__}", exc_info=True)
        if isinstance(e, TokenChainError):
            return Failed(reason=e.message)
        return Failed(reason=f"{type(e).__name__}: {e}")

    if result is None:
        return Skipped(reason="provider returned nothing")
    if isinstance(result, CredentialSource):
        result = Success(source=result)
    if isinstance(result, Success):
        if not result.source.covers(scopes):
            missing = ", ".join(sorted(scopes - result.source.scopes))
            return Failed(reason=f"credential does not cover requested scopes: {missing}")
        return result
    if isinstance(result, (Skipped, Failed)):
        return result
    return Failed(reason=f"provider returned unexpected {type(result).__name__}")


class ChainExecutor:
    """Try providers in registry order until one produces a credential.

    Responsibilities:
    - Short-circuit on the first success
    - Contain provider faults so the chain never breaks on one provider
    - Report the full ordered trace when nothing succeeds
    """

    def __init__(self, registry: ProviderRegistry, config: Config | None = None):
        """Initialize ChainExecutor.

        Args:
            registry: Providers to walk.
            config: Config instance. If None, uses get_config().
        """
        self.registry = registry
        self.config = config or get_config()
        self._trace_level = logging.INFO if self.config.verbose else logging.DEBUG

    def fetch(
        self,
        scopes: str | Iterable[str] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> CredentialSource:
        """Get a credential for ``scopes``.

        Args:
            scopes: Requested scopes; None means cloud-platform.
            params: Provider inputs (token, path, service_account, app, ...).

        Returns:
            The first successful CredentialSource.

        Raises:
            ChainExhausted: If every provider skipped or failed.
            AmbiguousCredential, RefreshFailed, UserAborted: From user OAuth.
        """
        requested = normalize_scopes(scopes)
        params = dict(params or {})
        trace = []

        for name, provider in self.registry.list():
            outcome = invoke_provider(name, provider, requested, params)
            entry = TraceEntry.from_outcome(name, outcome)
            trace.append(entry)
            logger.log(self._trace_level, f"{name}: {entry.status} ({entry.reason})")
            if isinstance(outcome, Success):
                logger.debug(f"Credential obtained from {name}")
                return outcome.source

        raise ChainExhausted(
            trace,
            suggestions=[
                "Pass token=, path= or app= to fetch()",
                "Set GOOGLE_APPLICATION_CREDENTIALS to a key file",
                "Enable verbose mode to see why each provider was passed over",
            ],
            context={"scopes": sorted(requested)},
        )


@cache
def get_registry() -> ProviderRegistry:
    """Get the process-wide registry of built-in providers."""
    return ProviderRegistry(builtin_providers(get_config()))


@cache
def get_executor() -> ChainExecutor:
    """Get a cached ChainExecutor over get_registry()."""
    config = get_config()
    if config.verbose:
        setup_logging(config.log_level, verbose=True)
    return ChainExecutor(get_registry(), config)


def fetch(scopes: str | Iterable[str] | None = None, **params: Any) -> CredentialSource:
    """Resolve a credential through the default provider chain."""
    return get_executor().fetch(scopes, params)


def set_provider(name: str, provider: Provider | None) -> None:
    """Insert, replace or remove (None) a provider in the default registry."""
    get_registry().set(name, provider)


def list_providers() -> list[str]:
    """Names of the default registry's providers, in chain order."""
    return get_registry().names()


def local_providers(
    overrides: Mapping[str, Provider | None], replace: bool = False
) -> AbstractContextManager[ProviderRegistry]:
    """Context manager overriding the default registry for a ``with`` block."""
    return get_registry().override(overrides, replace=replace)
