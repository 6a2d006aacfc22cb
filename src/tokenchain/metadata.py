"""Compute metadata server probe."""

import logging
import os

import httpx
from pydantic import BaseModel, Field

from .config import Config, get_config
from .consts import (
    METADATA_FLAVOR,
    METADATA_HOST,
    METADATA_HOST_ENV,
    METADATA_IP,
    METADATA_SERVICE_ACCOUNT_PATH,
    USER_AGENT,
)
from .exceptions import MetadataError

logger = logging.getLogger("tokenchain.metadata")

METADATA_QUERY_TIMEOUT_SECONDS = 10.0


class MetadataToken(BaseModel):
    """Access token issued by the metadata server for one service account."""

    access_token: str
    expires_in: int = Field(..., ge=0)
    token_type: str = "Bearer"
    scopes: frozenset[str] = frozenset()


class MetadataClient:
    """Blocking client for the GCE metadata server.

    Responsibilities:
    - Detect, within a short timeout, whether we run on GCE
    - Fetch an access token and the granted scopes for a service account
    """

    def __init__(
        self, config: Config | None = None, http_client: httpx.Client | None = None
    ):
        """Initialize MetadataClient.

        Args:
            config: Config instance. If None, uses get_config().
            http_client: HTTP client. If None, creates a new one.
        """
        self.config = config or get_config()
        self.http_client = http_client or httpx.Client(
            headers={"User-Agent": USER_AGENT}
        )

    @property
    def base_url(self) -> str:
        host = os.environ.get(METADATA_HOST_ENV, "").strip()
        if not host:
            host = METADATA_IP if self.config.gce_use_ip else METADATA_HOST
        return f"http://{host}"

    def is_available(self) -> bool:
        """Check for a metadata server. Never raises."""
        try:
            response = self.http_client.get(
                f"{self.base_url}/",
                headers={"Metadata-Flavor": METADATA_FLAVOR},
                timeout=self.config.gce_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.debug(f"Metadata server not reachable: {e!r}")
            return False
        return response.headers.get("Metadata-Flavor") == METADATA_FLAVOR

    def probe(self, service_account: str) -> MetadataToken | None:
        """Get a token for ``service_account``.

        Returns:
            The token, or None when not running on GCE.

        Raises:
            MetadataError: If the metadata server rejects the query.
        """
        if not self.is_available():
            return None

        account_url = f"{self.base_url}{METADATA_SERVICE_ACCOUNT_PATH}/{service_account}"
        scopes_text = self._get(f"{account_url}/scopes", service_account)
        token_data = self._get(f"{account_url}/token", service_account, as_json=True)

        try:
            token = MetadataToken(
                access_token=token_data["access_token"],
                expires_in=token_data.get("expires_in", 0),
                token_type=token_data.get("token_type", "Bearer"),
                scopes=frozenset(scopes_text.split()),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MetadataError(
                "Metadata server returned a malformed token response",
                errors=[str(e)],
                context={"service_account": service_account},
            ) from e

        logger.debug(
            f"Metadata token for {service_account} with {len(token.scopes)} scopes"
        )
        return token

    def _get(self, url: str, service_account: str, as_json: bool = False):
        try:
            response = self.http_client.get(
                url,
                headers={"Metadata-Flavor": METADATA_FLAVOR},
                timeout=METADATA_QUERY_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 404:
                message = f"Unknown service account on this instance: {service_account}"
            else:
                message = f"Metadata server error ({status_code})"
            raise MetadataError(
                message,
                errors=[str(e)],
                suggestions=["Check the instance's attached service accounts"],
                context={"service_account": service_account, "url": url},
            ) from e
        except httpx.RequestError as e:
            raise MetadataError(
                f"Metadata server request failed: {e!r}",
                context={"service_account": service_account, "url": url},
            ) from e
        return response.json() if as_json else response.text
