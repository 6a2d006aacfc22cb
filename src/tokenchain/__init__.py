"""tokenchain

Resolve Google API credentials by walking an ordered, mutable chain of
providers, with a cache and account disambiguation for user OAuth tokens.
"""

from .cache import TokenCache
from .chain import (
    ChainExecutor,
    fetch,
    get_executor,
    get_registry,
    list_providers,
    local_providers,
    set_provider,
)
from .config import Config, get_config, setup_logging
from .consts import PACKAGE_VERSION
from .disambiguate import Action, Decision, Disambiguator, decide
from .exceptions import (
    AmbiguousCredential,
    ChainExhausted,
    ConfigError,
    CredentialFileError,
    MetadataError,
    RefreshFailed,
    TerminalCredentialError,
    TokenChainError,
    UserAborted,
)
from .models import (
    CacheEntry,
    CacheKey,
    ClientIdentity,
    CredentialKind,
    CredentialSource,
    Failed,
    Skipped,
    Success,
    TraceEntry,
)
from .registry import ProviderRegistry
from .store import TokenStore

__version__ = PACKAGE_VERSION

__all__ = [
    "__version__",
    "fetch",
    "set_provider",
    "list_providers",
    "local_providers",
    "get_config",
    "get_registry",
    "get_executor",
    "setup_logging",
    "Config",
    "ChainExecutor",
    "ProviderRegistry",
    "TokenCache",
    "TokenStore",
    "Disambiguator",
    "decide",
    "Action",
    "Decision",
    "CacheEntry",
    "CacheKey",
    "ClientIdentity",
    "CredentialKind",
    "CredentialSource",
    "Success",
    "Skipped",
    "Failed",
    "TraceEntry",
    "TokenChainError",
    "ConfigError",
    "CredentialFileError",
    "MetadataError",
    "ChainExhausted",
    "TerminalCredentialError",
    "AmbiguousCredential",
    "RefreshFailed",
    "UserAborted",
]
