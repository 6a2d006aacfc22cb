"""Pytest configuration and shared fixtures"""

import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from google.oauth2.credentials import Credentials as UserCredentials

from tokenchain import chain, config
from tokenchain.cache import TokenCache
from tokenchain.config import Config
from tokenchain.models import CacheEntry, CacheKey, ClientIdentity

DATA_DIR = Path(__file__).parent / "data"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive"

_ENV_VARS = (
    "GOOGLE_APPLICATION_CREDENTIALS",
    "CLOUDSDK_CONFIG",
    "GCE_METADATA_HOST",
    "GOOGLE_EXTERNAL_ACCOUNT_ALLOW_EXECUTABLES",
    "APPDATA",
)


def utcnow():
    """Naive UTC now, as google-auth compares expiry"""
    return datetime.now(UTC).replace(tzinfo=None)


def make_user_credential(token="access-token", expired=False, scopes=(DRIVE_SCOPE,)):
    """Build a google-auth user credential with a known expiry"""
    offset = timedelta(hours=-1) if expired else timedelta(hours=1)
    return UserCredentials(
        token=token,
        refresh_token="refresh-token",
        token_uri="https://oauth2.googleapis.com/token",
        client_id="app-1.apps.googleusercontent.com",
        client_secret="app-secret",
        scopes=list(scopes),
        expiry=utcnow() + offset,
    )


class FakeFlow:
    """Stands in for the browser flow; records every call"""

    def __init__(self, email="new@x.com", error=None):
        self.email = email
        self.error = error
        self.calls = []

    def acquire(self, scopes, client, email_hint=None):
        self.calls.append({"scopes": scopes, "client": client, "email_hint": email_hint})
        if self.error is not None:
            raise self.error
        return make_user_credential(token=f"fresh-{self.email}"), email_hint or self.email


class FakeSelector:
    """Returns a preset choice and remembers the options it was shown"""

    def __init__(self, choice=None):
        self.choice = choice
        self.options = None

    def select(self, options):
        self.options = list(options)
        return self.choice


@pytest.fixture
def data_dir():
    return DATA_DIR


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Fixture that clears TOKENCHAIN_* and Google credential variables.

    HOME points at an empty directory so no real gcloud configuration or
    token cache is picked up.
    """
    for key in list(os.environ):
        if key.startswith("TOKENCHAIN_"):
            monkeypatch.delenv(key, raising=False)
    for key in _ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("USERPROFILE", str(tmp_path / "home"))
    (tmp_path / "home").mkdir()
    yield


@pytest.fixture
def clean_config(clean_env):
    """Config with a clean environment, no disk cache and no prompting"""
    return Config(use_oauth_cache=False, interactive=False)


@pytest.fixture
def default_chain(clean_env):
    """Reset the process-wide config, registry and executor around a test"""
    config.get_config.cache_clear()
    chain.get_registry.cache_clear()
    chain.get_executor.cache_clear()
    yield
    config.get_config.cache_clear()
    chain.get_registry.cache_clear()
    chain.get_executor.cache_clear()


@pytest.fixture
def client():
    return ClientIdentity(
        client_id="app-1.apps.googleusercontent.com",
        client_secret="app-secret",
        name="tokenchain-test",
    )


@pytest.fixture
def drive_key(client):
    return CacheKey(scopes={DRIVE_SCOPE}, client=client, package="mypkg")


@pytest.fixture
def make_entry(drive_key):
    """Factory for cache entries under drive_key"""

    def _make(email, expired=False, key=None):
        return CacheEntry(
            key=key or drive_key,
            email=email,
            credential=make_user_credential(token=f"token-{email}", expired=expired),
        )

    return _make


@pytest.fixture
def memory_cache():
    return TokenCache()
