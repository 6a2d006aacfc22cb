"""tokenchain custom exceptions.

Exception Design Principles:
1. Providers never raise into the chain: their faults become ``Failed``
   outcomes at the provider boundary, so most of these errors are only
   seen by providers and their collaborators
2. Errors that the caller must act on pass through the boundary untouched
   (``TerminalCredentialError`` and its subclasses)
3. Split on domain of actionable information:
   - Recoverable by user reconfiguration (ConfigError, CredentialFileError)
   - Recoverable by supplying more input (ChainExhausted, AmbiguousCredential)
   - Recoverable by acquiring from scratch (RefreshFailed, UserAborted)
"""

from typing import Any


class TokenChainError(Exception):
    """Base exception for all tokenchain errors.

    Provides rich context and actionable suggestions beyond standard exceptions.
    All tokenchain custom exceptions inherit from this base class.
    """

    def __init__(
        self,
        message: str,  # the error message
        *,
        errors: list[str] = None,  # detailed list of errors (if available)
        suggestions: list[str] = None,  # remedial actions
        context: dict = None,  # additional detailed context
    ):
        """Initialize TokenChainError.

        Args:
            message: Primary error message for users
            errors: List of specific error details
            suggestions: List of actionable suggestions for resolution
            context: Additional context information as key-value pairs
        """
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        self.suggestions = suggestions or []
        self.context = context or {}


class ConfigError(TokenChainError):
    """Configuration errors - recoverable by user reconfiguration.

    Covers setup issues that can be resolved outside the current call:
    - Missing or malformed OAuth client files
    - Unusable token cache directory
    """

    pass


class CredentialFileError(TokenChainError):
    """A credential file or JSON payload could not be read or parsed."""

    pass


class MetadataError(TokenChainError):
    """The compute metadata server answered but rejected the query.

    Raised for e.g. an unknown service account. Never raised when the
    metadata server is simply unreachable - that means "not on GCE".
    """

    pass


class ChainExhausted(TokenChainError):
    """Every provider in the chain skipped or failed.

    ``trace`` holds the ordered ``TraceEntry`` list, one per provider tried;
    ``errors`` holds the same information as ``"name: reason"`` strings.
    """

    def __init__(self, trace: list[Any], **kwargs):
        self.trace = list(trace)
        super().__init__(
            f"No provider produced a credential ({len(self.trace)} tried)",
            errors=[f"{t.name}: {t.reason}" for t in self.trace],
            **kwargs,
        )


class TerminalCredentialError(TokenChainError):
    """Base for errors that propagate through the provider boundary.

    These are never downgraded to ``Failed``: the caller has to decide
    what happens next.
    """

    pass


class AmbiguousCredential(TerminalCredentialError):
    """More than one cached credential matches and none may be chosen silently."""

    pass


class RefreshFailed(TerminalCredentialError):
    """A cached credential could not be refreshed.

    The caller may retry acquisition from scratch; nothing here retries.
    """

    pass


class UserAborted(TerminalCredentialError):
    """The interactive selection or browser flow was cancelled."""

    pass
