"""Choosing among cached user credentials.

``decide`` is a pure function of the matches, the email preference and
whether a human can be asked. ``Disambiguator`` carries the decision out:
it prompts, refreshes, or runs a fresh browser flow and caches the result.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

import google.auth.exceptions
import google.auth.transport.requests

from .cache import TokenCache
from .consts import START_NEW_LABEL
from .exceptions import AmbiguousCredential, RefreshFailed, UserAborted
from .flow import OAuthFlow
from .models import CacheEntry, CacheKey
from .prompt import Selector

logger = logging.getLogger("tokenchain.disambiguate")

# unset (None), True (use the only match), or a literal email
EmailPreference = bool | str | None


class Action(StrEnum):
    REUSE = "reuse"
    PROMPT = "prompt"
    ACQUIRE = "acquire"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class Decision:
    action: Action
    reason: str
    entry: CacheEntry | None = None
    candidates: tuple[CacheEntry, ...] = ()
    email_hint: str | None = None


def decide(
    matches: Sequence[CacheEntry], preference: EmailPreference, interactive: bool
) -> Decision:
    """Decide what to do with the cache matches for one request.

    Args:
        matches: Entries returned by TokenCache.query, in cache order.
        preference: None, True, or an email address.
        interactive: Whether the user can be prompted.

    Returns:
        Decision whose action is REUSE (with ``entry``), PROMPT (with
        ``candidates``), ACQUIRE (maybe with ``email_hint``) or AMBIGUOUS.
    """
    if isinstance(preference, str):
        wanted = preference.casefold()
        chosen = [m for m in matches if m.email.casefold() == wanted]
        if chosen:
            return Decision(Action.REUSE, f"cached token for {preference}", entry=chosen[-1])
        return Decision(
            Action.ACQUIRE, f"no cached token for {preference}", email_hint=preference
        )

    if not matches:
        return Decision(Action.ACQUIRE, "no cached token")

    if len(matches) == 1:
        if preference is True:
            return Decision(Action.REUSE, "single match, email=True", entry=matches[0])
        if not interactive:
            return Decision(Action.REUSE, "single match, non-interactive", entry=matches[0])
        return Decision(Action.PROMPT, "single match", candidates=tuple(matches))

    emails = ", ".join(m.email for m in matches)
    if preference is True:
        return Decision(Action.AMBIGUOUS, f"email=True but several matches: {emails}")
    if not interactive:
        return Decision(Action.AMBIGUOUS, f"cannot prompt, several matches: {emails}")
    return Decision(Action.PROMPT, f"{len(matches)} matches", candidates=tuple(matches))


class Disambiguator:
    """Carry out a Decision against a cache, a selector and a browser flow.

    Responsibilities:
    - Prompt with "start new" followed by the candidate emails
    - Refresh a reused credential in place when it is no longer valid
    - Store freshly acquired credentials, overwriting the same key+email
    """

    def __init__(
        self,
        cache: TokenCache,
        flow: OAuthFlow,
        selector: Selector,
        interactive: bool,
        request_factory: Callable[[], google.auth.transport.Request] | None = None,
        log_level: int = logging.DEBUG,
    ):
        """Initialize Disambiguator.

        Args:
            cache: Token cache to query and update.
            flow: Interactive acquisition flow.
            selector: Prompt used when a choice is needed.
            interactive: Whether prompting is allowed.
            request_factory: Builds the transport used for refresh.
            log_level: Level for decision logging (INFO in verbose mode).
        """
        self.cache = cache
        self.flow = flow
        self.selector = selector
        self.interactive = interactive
        self.request_factory = request_factory or google.auth.transport.requests.Request
        self.log_level = log_level

    def resolve(
        self, key: CacheKey, preference: EmailPreference = None
    ) -> tuple[CacheEntry, bool]:
        """Produce a usable entry for ``key``.

        Returns:
            (entry, from_cache) - from_cache is False for a fresh acquisition.

        Raises:
            AmbiguousCredential: Several matches and no way to choose.
            RefreshFailed: The chosen cached credential could not be refreshed.
            UserAborted: The prompt or the browser flow was cancelled.
        """
        matches = self.cache.query(key)
        decision = decide(matches, preference, self.interactive)
        logger.log(self.log_level, f"Cache {key.hash}: {decision.action} ({decision.reason})")

        if decision.action is Action.PROMPT:
            decision = self._prompt(decision.candidates)
            logger.log(self.log_level, f"Cache {key.hash}: {decision.action} ({decision.reason})")

        if decision.action is Action.AMBIGUOUS:
            raise AmbiguousCredential(
                "Multiple cached tokens match and none can be chosen automatically",
                errors=[decision.reason],
                suggestions=[
                    "Pass email='<address>' to pick one account",
                    "Run interactively to choose from a menu",
                ],
                context={"cache_key": key.hash, "emails": [m.email for m in matches]},
            )
        if decision.action is Action.REUSE:
            return self._reuse(decision.entry), True
        return self._acquire(key, decision.email_hint), False

    def _prompt(self, candidates: tuple[CacheEntry, ...]) -> Decision:
        options = [START_NEW_LABEL, *(c.email for c in candidates)]
        choice = self.selector.select(options)
        if choice is None:
            raise UserAborted("Account selection cancelled")
        if not 0 <= choice < len(options):
            raise UserAborted(f"Invalid selection: {choice}")
        if choice == 0:
            return Decision(Action.ACQUIRE, "user asked for a new token")
        entry = candidates[choice - 1]
        return Decision(Action.REUSE, f"user selected {entry.email}", entry=entry)

    def _reuse(self, entry: CacheEntry) -> CacheEntry:
        credential = entry.credential
        if credential.valid:
            return entry

        logger.log(self.log_level, f"Refreshing cached token for {entry.email}")
        try:
            credential.refresh(self.request_factory())
        except google.auth.exceptions.GoogleAuthError as e:
            raise RefreshFailed(
                f"Could not refresh the cached token for {entry.email}",
                errors=[str(e)],
                suggestions=["Retry to start a new browser authorization"],
                context={"cache_key": entry.content_hash, "email": entry.email},
            ) from e

        self.cache.insert(entry)
        return entry

    def _acquire(self, key: CacheKey, email_hint: str | None) -> CacheEntry:
        credential, email = self.flow.acquire(key.scopes, key.client, email_hint)
        entry = CacheEntry(key=key, email=email, credential=credential)
        self.cache.insert(entry)
        logger.info(f"Obtained and cached a new token for {email}")
        return entry
