import hashlib
import json
from collections.abc import Iterable
from enum import StrEnum
from typing import Any, Literal

from google.auth.credentials import Credentials
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .consts import (
    CACHE_HASH_LENGTH,
    DEFAULT_SCOPES,
    GOOGLE_AUTH_URI,
    GOOGLE_TOKEN_URI,
)
from .exceptions import ConfigError, CredentialFileError
from .files import load_credential_file

ParamBag = dict[str, Any]


def normalize_scopes(scopes: str | Iterable[str] | None) -> frozenset[str]:
    """Turn a scope, a collection of scopes or None into a ScopeSet.

    None means "no preference" and yields the default cloud-platform scope.
    """
    if scopes is None:
        return DEFAULT_SCOPES
    if isinstance(scopes, str):
        scopes = [scopes]
    return frozenset(s.strip() for s in scopes if s and s.strip())


# =============================================================================
# CLIENT IDENTITY AND CACHE KEYS
# =============================================================================


class ClientIdentity(BaseModel):
    """OAuth client registration identifying the calling application.

    Two identities are equal iff their client ids match; the secret and
    display name do not take part in comparisons or cache keys.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., min_length=1)
    client_secret: str | None = None
    name: str | None = Field(None, description="Display name, e.g. the GCP project")
    auth_uri: str = GOOGLE_AUTH_URI
    token_uri: str = GOOGLE_TOKEN_URI

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ClientIdentity):
            return self.client_id == other.client_id
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.client_id)

    @classmethod
    def from_file(cls, path_or_json: str) -> "ClientIdentity":
        """Load a client from a downloaded "installed" or "web" client JSON.

        Raises:
            ConfigError: If the JSON cannot be read or is not a client file.
        """
        try:
            info = load_credential_file(path_or_json)
        except CredentialFileError as e:
            raise ConfigError(
                f"Cannot read OAuth client file: {e.message}",
                errors=e.errors,
                suggestions=["Download the client JSON from the Cloud console"],
            ) from e

        section = info.get("installed") or info.get("web")
        if not isinstance(section, dict) or not section.get("client_id"):
            raise ConfigError(
                "OAuth client JSON has no 'installed' or 'web' client",
                errors=[f"Top-level keys: {sorted(info)}"],
                suggestions=["Use a client of type 'Desktop app'"],
            )
        return cls(
            client_id=section["client_id"],
            client_secret=section.get("client_secret"),
            name=section.get("project_id"),
            auth_uri=section.get("auth_uri", GOOGLE_AUTH_URI),
            token_uri=section.get("token_uri", GOOGLE_TOKEN_URI),
        )

    def to_client_config(self) -> dict[str, Any]:
        """Client config in the shape google-auth-oauthlib expects."""
        return {
            "installed": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": self.auth_uri,
                "token_uri": self.token_uri,
                "redirect_uris": ["http://localhost"],
            }
        }


class CacheKey(BaseModel):
    """What kind of token would satisfy a request, whoever it belongs to."""

    model_config = ConfigDict(frozen=True)

    scopes: frozenset[str]
    client: ClientIdentity
    package: str

    @field_validator("scopes", mode="before")
    @classmethod
    def _normalize(cls, value):
        return normalize_scopes(value)

    @computed_field
    @property
    def hash(self) -> str:
        """Stable content hash; identifies entries on disk."""
        payload = json.dumps(
            [sorted(self.scopes), self.client.client_id, self.package]
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:CACHE_HASH_LENGTH]


class CacheEntry(BaseModel):
    """A cached user credential. Many entries may share a key."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: CacheKey
    email: str
    credential: Credentials

    @computed_field
    @property
    def content_hash(self) -> str:
        return self.key.hash


# =============================================================================
# CREDENTIAL SOURCES
# =============================================================================


class CredentialKind(StrEnum):
    BYO_TOKEN = "byo_token"
    SERVICE_ACCOUNT = "service_account"
    EXTERNAL_ACCOUNT = "external_account"
    APP_DEFAULT = "app_default"
    COMPUTE_METADATA = "compute_metadata"
    USER_OAUTH = "user_oauth"


class CredentialSource(BaseModel):
    """A resolved credential and how it was obtained.

    Immutable: refreshing replaces the token held by ``credential``, never
    the source itself.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: CredentialKind
    credential: Credentials = Field(..., description="Refreshable google-auth handle")
    scopes: frozenset[str] = Field(..., description="Scopes the credential is valid for")

    def covers(self, requested: frozenset[str]) -> bool:
        """True if this source is valid for every requested scope."""
        return self.scopes >= requested

    @property
    def token(self) -> str | None:
        return self.credential.token


class ByoTokenSource(CredentialSource):
    kind: Literal[CredentialKind.BYO_TOKEN] = CredentialKind.BYO_TOKEN


class ServiceAccountSource(CredentialSource):
    kind: Literal[CredentialKind.SERVICE_ACCOUNT] = CredentialKind.SERVICE_ACCOUNT
    service_account_email: str
    project_id: str | None = None
    subject: str | None = None


class ExternalAccountSource(CredentialSource):
    kind: Literal[CredentialKind.EXTERNAL_ACCOUNT] = CredentialKind.EXTERNAL_ACCOUNT
    audience: str
    subject_token_type: str | None = None
    project_id: str | None = None


class AppDefaultSource(CredentialSource):
    kind: Literal[CredentialKind.APP_DEFAULT] = CredentialKind.APP_DEFAULT
    path: str
    credential_type: Literal["service_account", "external_account", "authorized_user"]
    project_id: str | None = None


class ComputeMetadataSource(CredentialSource):
    kind: Literal[CredentialKind.COMPUTE_METADATA] = CredentialKind.COMPUTE_METADATA
    service_account: str


class UserOAuthSource(CredentialSource):
    kind: Literal[CredentialKind.USER_OAUTH] = CredentialKind.USER_OAUTH
    email: str
    client: ClientIdentity
    from_cache: bool = False


# =============================================================================
# PROVIDER OUTCOMES
# =============================================================================


class Success(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    source: CredentialSource


class Skipped(BaseModel):
    """Required inputs were absent; the provider does not apply."""

    model_config = ConfigDict(frozen=True)

    status: Literal["skipped"] = "skipped"
    reason: str


class Failed(BaseModel):
    """Inputs were present but unusable."""

    model_config = ConfigDict(frozen=True)

    status: Literal["failed"] = "failed"
    reason: str


Outcome = Success | Skipped | Failed


class TraceEntry(BaseModel):
    """One provider's result in a chain run, kept for diagnostics."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: Literal["success", "skipped", "failed"]
    reason: str | None = None

    @classmethod
    def from_outcome(cls, name: str, outcome: Outcome) -> "TraceEntry":
        if isinstance(outcome, Success):
            return cls(name=name, status="success", reason=outcome.source.kind.value)
        return cls(name=name, status=outcome.status, reason=outcome.reason)
