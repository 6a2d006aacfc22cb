"""Built-in credential providers.

Every provider is called as ``provider(scopes, params)`` and returns an
Outcome: Skipped when its inputs are absent, Failed when they are present
but unusable, Success otherwise. Anything a provider raises is turned into
Failed by the chain, so the explicit Failed returns here exist to give
better reasons.
"""

import logging
import os
import re
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlparse

import google.auth.aws
import google.auth.identity_pool
import google.auth.pluggable
from google.auth import compute_engine
from google.auth.credentials import AnonymousCredentials, Credentials
from google.oauth2 import service_account as google_service_account
from google.oauth2.credentials import Credentials as UserCredentials

from .cache import TokenCache
from .config import Config, get_config
from .consts import (
    ADC_USER_SCOPES,
    ALLOW_EXECUTABLES_ENV,
    APP_DEFAULT,
    BYO_TOKEN,
    COMPUTE_METADATA,
    DEFAULT_SERVICE_ACCOUNT,
    EXTERNAL_ACCOUNT,
    GOOGLE_TOKEN_HOSTS,
    SERVICE_ACCOUNT,
    SUPPORTED_ENVIRONMENT_IDS,
    USER_OAUTH,
    WORKLOAD_POOL_AUDIENCE_PATTERN,
)
from .disambiguate import Disambiguator
from .exceptions import CredentialFileError, MetadataError
from .files import adc_paths, load_credential_file
from .flow import LocalServerFlow, OAuthFlow
from .metadata import MetadataClient
from .models import (
    AppDefaultSource,
    ByoTokenSource,
    CacheKey,
    ClientIdentity,
    ComputeMetadataSource,
    ExternalAccountSource,
    Failed,
    Outcome,
    ServiceAccountSource,
    Skipped,
    Success,
    UserOAuthSource,
    normalize_scopes,
)
from .prompt import ConsoleSelector, Selector
from .utils import is_interactive

logger = logging.getLogger("tokenchain.providers")


# =============================================================================
# BRING YOUR OWN TOKEN
# =============================================================================


def byo_token(scopes: frozenset[str], params: Mapping[str, Any]) -> Outcome:
    """Use a google-auth credential supplied by the caller as ``token``."""
    token = params.get("token")
    if token is None:
        return Skipped(reason="no 'token' supplied")
    if not isinstance(token, Credentials):
        return Failed(
            reason=f"'token' is a {type(token).__name__}, not a google-auth Credentials"
        )
    if isinstance(token, AnonymousCredentials):
        return Failed(reason="anonymous credentials carry no access token")
    if isinstance(token, UserCredentials) and not (token.token or token.refresh_token):
        return Failed(reason="token has neither an access token nor a refresh token")

    token_uri = getattr(token, "token_uri", None)
    if token_uri and not _is_google_host(token_uri):
        return Failed(reason=f"token was not issued by Google ({token_uri})")

    # a token that records no scopes is taken to cover the request
    declared = getattr(token, "scopes", None)
    token_scopes = normalize_scopes(declared) if declared else scopes
    return Success(source=ByoTokenSource(credential=token, scopes=token_scopes))


def _is_google_host(uri: str) -> bool:
    host = urlparse(uri).hostname or ""
    return any(host == h or host.endswith("." + h) for h in GOOGLE_TOKEN_HOSTS)


# =============================================================================
# SERVICE ACCOUNT AND EXTERNAL ACCOUNT KEY FILES
# =============================================================================


def service_account(scopes: frozenset[str], params: Mapping[str, Any]) -> Outcome:
    """Load a service account key from ``path`` (a file or raw JSON).

    ``subject`` optionally names a user to impersonate through domain-wide
    delegation.
    """
    path = params.get("path")
    if path is None:
        return Skipped(reason="no 'path' supplied")
    try:
        info = load_credential_file(path)
    except CredentialFileError as e:
        return Failed(reason=e.message)

    if info.get("type") != "service_account":
        return Failed(reason=f"not a service account key (type={info.get('type')!r})")

    subject = params.get("subject")
    credential = _service_account_credential(info, scopes, subject)
    return Success(
        source=ServiceAccountSource(
            credential=credential,
            scopes=scopes,
            service_account_email=credential.service_account_email,
            project_id=info.get("project_id"),
            subject=subject,
        )
    )


def external_account(scopes: frozenset[str], params: Mapping[str, Any]) -> Outcome:
    """Load a workload identity federation config from ``path``."""
    path = params.get("path")
    if path is None:
        return Skipped(reason="no 'path' supplied")
    try:
        info = load_credential_file(path)
        if info.get("type") != "external_account":
            return Failed(
                reason=f"not an external account config (type={info.get('type')!r})"
            )
        credential = _external_account_credential(info, scopes)
    except CredentialFileError as e:
        return Failed(reason=e.message)

    return Success(
        source=ExternalAccountSource(
            credential=credential,
            scopes=scopes,
            audience=info["audience"],
            subject_token_type=info.get("subject_token_type"),
            project_id=info.get("workforce_pool_user_project"),
        )
    )


def _service_account_credential(
    info: dict[str, Any], scopes: frozenset[str], subject: str | None = None
) -> google_service_account.Credentials:
    return google_service_account.Credentials.from_service_account_info(
        info, scopes=sorted(scopes), subject=subject
    )


def _external_account_credential(info: dict[str, Any], scopes: frozenset[str]):
    """Build the google-auth credential for an external account config.

    Raises:
        CredentialFileError: If this host or config cannot be used.
    """
    audience = info.get("audience") or ""
    if not re.match(WORKLOAD_POOL_AUDIENCE_PATTERN, audience):
        raise CredentialFileError(
            f"audience is not an identity pool provider: {audience!r}"
        )

    source = info.get("credential_source")
    if not isinstance(source, dict):
        raise CredentialFileError("external account config has no credential_source")

    environment_id = source.get("environment_id")
    if environment_id is not None:
        if environment_id not in SUPPORTED_ENVIRONMENT_IDS:
            raise CredentialFileError(f"unsupported host platform: {environment_id!r}")
        factory = google.auth.aws.Credentials
    elif "executable" in source:
        if os.environ.get(ALLOW_EXECUTABLES_ENV) != "1":
            raise CredentialFileError(
                f"executable-sourced credentials need {ALLOW_EXECUTABLES_ENV}=1"
            )
        factory = google.auth.pluggable.Credentials
    elif "file" in source or "url" in source:
        factory = google.auth.identity_pool.Credentials
    else:
        raise CredentialFileError("credential_source names no supported source")

    try:
        return factory.from_info(info, scopes=sorted(scopes))
    except (ValueError, TypeError) as e:
        raise CredentialFileError(f"invalid external account config: {e}") from e


# =============================================================================
# APPLICATION DEFAULT CREDENTIALS
# =============================================================================


def app_default(scopes: frozenset[str], params: Mapping[str, Any]) -> Outcome:
    """Search the ADC path list; the first usable file wins."""
    problems = []
    for path in adc_paths():
        if not os.path.isfile(path):
            continue
        try:
            source = _app_default_source(path, scopes)
        except (CredentialFileError, ValueError) as e:
            reason = e.message if isinstance(e, CredentialFileError) else str(e)
            logger.debug(f"Skipping ADC file {path}: {reason}")
            problems.append(f"{path}: {reason}")
            continue
        logger.debug(f"Using ADC file {path} ({source.credential_type})")
        return Success(source=source)

    if not problems:
        return Failed(reason="no application default credentials file found")
    return Failed(reason="no usable ADC file: " + "; ".join(problems))


def _app_default_source(path: str, scopes: frozenset[str]) -> AppDefaultSource:
    info = load_credential_file(path)
    credential_type = info.get("type")

    if credential_type == "service_account":
        credential = _service_account_credential(info, scopes)
        source_scopes = scopes
    elif credential_type == "external_account":
        credential = _external_account_credential(info, scopes)
        source_scopes = scopes
    elif credential_type == "authorized_user":
        # gcloud user credentials only carry cloud-platform
        if not scopes <= ADC_USER_SCOPES:
            raise CredentialFileError(
                "user credentials only cover cloud-platform; requested "
                + ", ".join(sorted(scopes - ADC_USER_SCOPES))
            )
        credential = UserCredentials.from_authorized_user_info(
            info, scopes=sorted(ADC_USER_SCOPES)
        )
        source_scopes = ADC_USER_SCOPES
    else:
        raise CredentialFileError(f"unsupported credential type {credential_type!r}")

    return AppDefaultSource(
        credential=credential,
        scopes=source_scopes,
        path=path,
        credential_type=credential_type,
        project_id=info.get("project_id") or info.get("quota_project_id"),
    )


# =============================================================================
# COMPUTE METADATA
# =============================================================================


class ComputeMetadataProvider:
    """Token for an attached service account from the GCE metadata server."""

    def __init__(self, client: MetadataClient | None = None):
        self.client = client or MetadataClient()

    def __call__(self, scopes: frozenset[str], params: Mapping[str, Any]) -> Outcome:
        account = params.get("service_account") or DEFAULT_SERVICE_ACCOUNT
        try:
            token = self.client.probe(account)
        except MetadataError as e:
            return Failed(reason=e.message)
        if token is None:
            return Skipped(reason="not running on Google Compute Engine")

        credential = compute_engine.Credentials(
            service_account_email=account, scopes=sorted(token.scopes)
        )
        credential.token = token.access_token
        credential.expiry = datetime.now(UTC).replace(tzinfo=None) + timedelta(
            seconds=token.expires_in
        )
        return Success(
            source=ComputeMetadataSource(
                credential=credential, scopes=token.scopes, service_account=account
            )
        )


# =============================================================================
# USER OAUTH
# =============================================================================


class UserOAuthProvider:
    """Cached or freshly authorized user credentials. The terminal fallback.

    Recognized params: ``app`` (ClientIdentity or a client JSON path),
    ``package`` and ``email`` (None, True or an address).
    """

    def __init__(
        self,
        config: Config | None = None,
        cache: TokenCache | None = None,
        flow: OAuthFlow | None = None,
        selector: Selector | None = None,
    ):
        self.config = config or get_config()
        self.cache = cache if cache is not None else TokenCache.from_config(self.config)
        self.flow = flow or LocalServerFlow()
        self.selector = selector or ConsoleSelector(package=self.config.package)

    def __call__(self, scopes: frozenset[str], params: Mapping[str, Any]) -> Outcome:
        client = params.get("app")
        if client is None and self.config.oauth_client_file:
            client = self.config.oauth_client_file
        if client is None:
            return Failed(
                reason="no OAuth client: pass 'app' or set TOKENCHAIN_OAUTH_CLIENT_FILE"
            )
        if isinstance(client, (str, os.PathLike)):
            client = ClientIdentity.from_file(os.fspath(client))
        if not isinstance(client, ClientIdentity):
            return Failed(reason=f"'app' is a {type(client).__name__}, not a ClientIdentity")

        package = params.get("package") or self.config.package
        preference = params.get("email")
        if preference is None:
            preference = self.config.oauth_email

        key = CacheKey(scopes=scopes, client=client, package=package)
        disambiguator = Disambiguator(
            self.cache,
            self.flow,
            self.selector,
            interactive=is_interactive(self.config),
            log_level=logging.INFO if self.config.verbose else logging.DEBUG,
        )
        entry, from_cache = disambiguator.resolve(key, preference)
        return Success(
            source=UserOAuthSource(
                credential=entry.credential,
                scopes=key.scopes,
                email=entry.email,
                client=client,
                from_cache=from_cache,
            )
        )


def builtin_providers(config: Config | None = None) -> list[tuple[str, Any]]:
    """The six built-in providers in default chain order."""
    config = config or get_config()
    return [
        (BYO_TOKEN, byo_token),
        (SERVICE_ACCOUNT, service_account),
        (EXTERNAL_ACCOUNT, external_account),
        (APP_DEFAULT, app_default),
        (COMPUTE_METADATA, ComputeMetadataProvider(MetadataClient(config))),
        (USER_OAUTH, UserOAuthProvider(config)),
    ]
