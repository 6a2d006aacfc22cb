"""Browser-based OAuth2 acquisition of user credentials."""

import logging
from typing import Protocol

import httpx
from google.oauth2.credentials import Credentials as UserCredentials
from google_auth_oauthlib.flow import InstalledAppFlow
from oauthlib.oauth2.rfc6749.errors import AccessDeniedError

from .consts import USER_AGENT, USERINFO_EMAIL_SCOPE, USERINFO_URL
from .exceptions import TokenChainError, UserAborted
from .models import ClientIdentity
from .utils import is_headless_environment

logger = logging.getLogger("tokenchain.flow")


class OAuthFlow(Protocol):
    """Protocol for interactive user credential acquisition."""

    def acquire(
        self,
        scopes: frozenset[str],
        client: ClientIdentity,
        email_hint: str | None = None,
    ) -> tuple[UserCredentials, str]:
        """Run the flow and return the credential with its account email.

        Raises:
            UserAborted: If the user cancels the flow.
        """
        ...


class LocalServerFlow:
    """Authorization code flow with a loopback redirect.

    Always adds the userinfo.email scope so the account can be identified.
    """

    def __init__(
        self,
        http_client: httpx.Client | None = None,
        open_browser: bool | None = None,
    ):
        """Initialize LocalServerFlow.

        Args:
            http_client: HTTP client for the userinfo lookup.
            open_browser: Force browser launch on/off; None detects headless hosts.
        """
        self.http_client = http_client or httpx.Client(
            headers={"User-Agent": USER_AGENT}, timeout=30
        )
        self.open_browser = open_browser

    def acquire(
        self,
        scopes: frozenset[str],
        client: ClientIdentity,
        email_hint: str | None = None,
    ) -> tuple[UserCredentials, str]:
        requested = sorted(scopes | {USERINFO_EMAIL_SCOPE})
        flow = InstalledAppFlow.from_client_config(
            client.to_client_config(), scopes=requested
        )
        open_browser = (
            not is_headless_environment()
            if self.open_browser is None
            else self.open_browser
        )
        extra = {"login_hint": email_hint} if email_hint else {}

        logger.info(f"Starting browser flow for client {client.client_id}")
        try:
            credential = flow.run_local_server(
                port=0, open_browser=open_browser, **extra
            )
        except KeyboardInterrupt as e:
            raise UserAborted("Browser authorization cancelled") from e
        except AccessDeniedError as e:
            raise UserAborted(
                "Authorization was denied in the browser",
                errors=[str(e)],
            ) from e

        return credential, self.lookup_email(credential)

    def lookup_email(self, credential: UserCredentials) -> str:
        """Ask the userinfo endpoint which account the token belongs to."""
        response = self.http_client.get(
            USERINFO_URL, headers={"Authorization": f"Bearer {credential.token}"}
        )
        response.raise_for_status()
        email = response.json().get("email")
        if not email:
            raise TokenChainError(
                "Userinfo response has no email",
                suggestions=["Make sure the userinfo.email scope was granted"],
            )
        return email
