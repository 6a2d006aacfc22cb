"""Tests for the built-in credential providers"""

import json
import shutil
from unittest.mock import Mock

import pytest
from google.auth.credentials import AnonymousCredentials
from google.oauth2 import service_account as google_service_account
from google.oauth2.credentials import Credentials as UserCredentials

from tokenchain.chain import ChainExecutor
from tokenchain.config import Config
from tokenchain.consts import (
    ADC_FILENAME,
    CLOUD_PLATFORM_SCOPE,
    DEFAULT_PROVIDER_ORDER,
    START_NEW_LABEL,
)
from tokenchain.exceptions import AmbiguousCredential, MetadataError, UserAborted
from tokenchain.metadata import MetadataToken
from tokenchain.models import CredentialKind, Failed, Skipped, Success
from tokenchain.providers import (
    ComputeMetadataProvider,
    UserOAuthProvider,
    app_default,
    builtin_providers,
    byo_token,
    external_account,
    service_account,
)
from tokenchain.registry import ProviderRegistry

from .conftest import DRIVE_SCOPE, FakeFlow, FakeSelector, make_user_credential

DRIVE = frozenset({DRIVE_SCOPE})
CLOUD = frozenset({CLOUD_PLATFORM_SCOPE})


def not_on_gce():
    client = Mock()
    client.probe.return_value = None
    return ComputeMetadataProvider(client)


class TestByoToken:
    def test_absent_is_skipped(self):
        assert isinstance(byo_token(DRIVE, {}), Skipped)

    def test_google_token_succeeds(self):
        credential = make_user_credential(scopes=[DRIVE_SCOPE, CLOUD_PLATFORM_SCOPE])
        outcome = byo_token(DRIVE, {"token": credential})

        assert isinstance(outcome, Success)
        assert outcome.source.kind is CredentialKind.BYO_TOKEN
        assert outcome.source.credential is credential
        assert outcome.source.scopes == {DRIVE_SCOPE, CLOUD_PLATFORM_SCOPE}

    def test_token_without_scopes_assumed_to_cover(self):
        credential = UserCredentials(token="raw")
        outcome = byo_token(DRIVE, {"token": credential})
        assert outcome.source.scopes == DRIVE

    def test_wrong_type_fails(self):
        outcome = byo_token(DRIVE, {"token": "ya29.plain-string"})
        assert isinstance(outcome, Failed)
        assert "str" in outcome.reason

    def test_anonymous_credentials_fail(self):
        outcome = byo_token(DRIVE, {"token": AnonymousCredentials()})
        assert isinstance(outcome, Failed)
        assert "anonymous" in outcome.reason

    def test_user_credentials_without_token_or_refresh_fail(self):
        outcome = byo_token(DRIVE, {"token": UserCredentials(token=None)})
        assert isinstance(outcome, Failed)
        assert "neither an access token nor a refresh token" in outcome.reason

    def test_foreign_issuer_fails(self):
        credential = UserCredentials(
            token="t", token_uri="https://login.example.com/oauth/token"
        )
        outcome = byo_token(DRIVE, {"token": credential})
        assert isinstance(outcome, Failed)
        assert "not issued by Google" in outcome.reason


class TestServiceAccount:
    def test_absent_is_skipped(self):
        assert isinstance(service_account(DRIVE, {}), Skipped)

    def test_key_file(self, data_dir):
        outcome = service_account(DRIVE, {"path": str(data_dir / "service_account.json")})

        assert isinstance(outcome, Success)
        source = outcome.source
        assert isinstance(source.credential, google_service_account.Credentials)
        assert source.service_account_email == "robot@tokenchain-test.iam.gserviceaccount.com"
        assert source.project_id == "tokenchain-test"
        assert source.scopes == DRIVE
        assert source.credential.scopes == [DRIVE_SCOPE]

    def test_raw_json_with_subject(self, data_dir):
        payload = (data_dir / "service_account.json").read_text()
        outcome = service_account(DRIVE, {"path": payload, "subject": "admin@x.com"})
        assert outcome.source.subject == "admin@x.com"

    def test_other_credential_type_fails(self, data_dir):
        outcome = service_account(DRIVE, {"path": str(data_dir / "authorized_user.json")})
        assert isinstance(outcome, Failed)
        assert "not a service account key" in outcome.reason

    def test_bad_json_fails(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        outcome = service_account(DRIVE, {"path": str(path)})
        assert isinstance(outcome, Failed)
        assert "Invalid JSON" in outcome.reason

    def test_missing_file_fails(self, tmp_path):
        outcome = service_account(DRIVE, {"path": str(tmp_path / "missing.json")})
        assert isinstance(outcome, Failed)


class TestExternalAccount:
    @pytest.fixture
    def info(self, data_dir):
        return json.loads((data_dir / "external_account.json").read_text())

    def test_identity_pool_file_source(self, data_dir, clean_env):
        outcome = external_account(DRIVE, {"path": str(data_dir / "external_account.json")})

        assert isinstance(outcome, Success)
        assert outcome.source.kind is CredentialKind.EXTERNAL_ACCOUNT
        assert outcome.source.audience.endswith("/providers/ci-provider")

    def test_service_account_key_fails(self, data_dir):
        outcome = external_account(DRIVE, {"path": str(data_dir / "service_account.json")})
        assert isinstance(outcome, Failed)

    def test_bad_audience(self, info, clean_env):
        info["audience"] = "//example.com/not-a-pool"
        outcome = external_account(DRIVE, {"path": json.dumps(info)})
        assert isinstance(outcome, Failed)
        assert "audience" in outcome.reason

    def test_unsupported_platform(self, info, clean_env):
        info["credential_source"] = {"environment_id": "azure1"}
        outcome = external_account(DRIVE, {"path": json.dumps(info)})
        assert isinstance(outcome, Failed)
        assert "unsupported host platform" in outcome.reason

    def test_executable_needs_opt_in(self, info, clean_env):
        info["credential_source"] = {"executable": {"command": "/usr/bin/get-token"}}
        outcome = external_account(DRIVE, {"path": json.dumps(info)})
        assert isinstance(outcome, Failed)
        assert "GOOGLE_EXTERNAL_ACCOUNT_ALLOW_EXECUTABLES" in outcome.reason


class TestAppDefault:
    def test_no_file_found(self, clean_env):
        outcome = app_default(CLOUD, {})
        assert outcome == Failed(reason="no application default credentials file found")

    def test_explicit_env_path(self, clean_env, monkeypatch, data_dir):
        monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(data_dir / "service_account.json"))

        outcome = app_default(DRIVE, {})

        assert isinstance(outcome, Success)
        assert outcome.source.credential_type == "service_account"
        assert outcome.source.scopes == DRIVE

    def test_gcloud_user_credentials(self, clean_env, monkeypatch, tmp_path, data_dir):
        config_root = tmp_path / "gcloud"
        config_root.mkdir()
        shutil.copy(data_dir / "authorized_user.json", config_root / ADC_FILENAME)
        monkeypatch.setenv("CLOUDSDK_CONFIG", str(config_root))

        outcome = app_default(CLOUD, {})

        assert isinstance(outcome, Success)
        assert outcome.source.credential_type == "authorized_user"
        assert outcome.source.project_id == "tokenchain-test"
        assert CLOUD_PLATFORM_SCOPE in outcome.source.scopes

    def test_user_credentials_reject_other_scopes(
        self, clean_env, monkeypatch, tmp_path, data_dir
    ):
        config_root = tmp_path / "gcloud"
        config_root.mkdir()
        shutil.copy(data_dir / "authorized_user.json", config_root / ADC_FILENAME)
        monkeypatch.setenv("CLOUDSDK_CONFIG", str(config_root))

        outcome = app_default(DRIVE, {})

        assert isinstance(outcome, Failed)
        assert "user credentials only cover cloud-platform" in outcome.reason

    def test_first_usable_file_wins(self, clean_env, monkeypatch, tmp_path, data_dir):
        """Test that a broken explicit file falls through to the gcloud file"""
        broken = tmp_path / "broken.json"
        broken.write_text("[]")
        config_root = tmp_path / "gcloud"
        config_root.mkdir()
        shutil.copy(data_dir / "service_account.json", config_root / ADC_FILENAME)
        monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(broken))
        monkeypatch.setenv("CLOUDSDK_CONFIG", str(config_root))

        outcome = app_default(DRIVE, {})

        assert isinstance(outcome, Success)
        assert outcome.source.path.endswith(ADC_FILENAME)


class TestComputeMetadata:
    def test_not_on_gce_is_skipped(self):
        assert isinstance(not_on_gce()(CLOUD, {}), Skipped)

    def test_token_for_default_account(self):
        client = Mock()
        client.probe.return_value = MetadataToken(
            access_token="ya29.metadata", expires_in=3599, scopes=CLOUD
        )

        outcome = ComputeMetadataProvider(client)(CLOUD, {})

        client.probe.assert_called_once_with("default")
        assert isinstance(outcome, Success)
        assert outcome.source.token == "ya29.metadata"
        assert outcome.source.service_account == "default"
        assert outcome.source.credential.valid

    def test_named_account(self):
        client = Mock()
        client.probe.return_value = MetadataToken(
            access_token="t", expires_in=60, scopes=CLOUD
        )
        ComputeMetadataProvider(client)(CLOUD, {"service_account": "robot@x.com"})
        client.probe.assert_called_once_with("robot@x.com")

    def test_unknown_account_fails(self):
        client = Mock()
        client.probe.side_effect = MetadataError("Unknown service account on this instance: x")
        outcome = ComputeMetadataProvider(client)(CLOUD, {"service_account": "x"})
        assert outcome == Failed(reason="Unknown service account on this instance: x")


class TestUserOAuth:
    @pytest.fixture
    def make_provider(self, clean_env, memory_cache):
        def _make(flow=None, selector=None, **config):
            config = Config(**{"use_oauth_cache": False, "interactive": False, **config})
            return UserOAuthProvider(
                config, memory_cache, flow or FakeFlow(), selector or FakeSelector()
            )

        return _make

    def test_no_client_fails(self, make_provider):
        outcome = make_provider()(DRIVE, {})
        assert isinstance(outcome, Failed)
        assert "no OAuth client" in outcome.reason

    def test_client_of_wrong_type_fails(self, make_provider):
        outcome = make_provider()(DRIVE, {"app": 42})
        assert isinstance(outcome, Failed)

    def test_fresh_acquisition(self, make_provider, client, memory_cache):
        flow = FakeFlow(email="new@x.com")

        outcome = make_provider(flow=flow)(DRIVE, {"app": client, "package": "mypkg"})

        source = outcome.source
        assert source.kind is CredentialKind.USER_OAUTH
        assert (source.email, source.from_cache) == ("new@x.com", False)
        assert source.scopes == DRIVE
        assert len(flow.calls) == 1
        assert len(memory_cache) == 1

    def test_client_file_from_config(self, make_provider, data_dir):
        flow = FakeFlow()
        provider = make_provider(
            flow=flow, oauth_client_file=str(data_dir / "client_secret.json")
        )

        outcome = provider(DRIVE, {})

        assert outcome.source.client.client_id == "1234-test.apps.googleusercontent.com"

    def test_reuses_single_match_non_interactive(
        self, make_provider, client, memory_cache, make_entry
    ):
        memory_cache.insert(make_entry("a@x.com"))
        flow = FakeFlow()

        outcome = make_provider(flow=flow)(DRIVE, {"app": client, "package": "mypkg"})

        assert (outcome.source.email, outcome.source.from_cache) == ("a@x.com", True)
        assert outcome.source.token == "token-a@x.com"
        assert flow.calls == []

    def test_email_preference_from_config(
        self, make_provider, client, memory_cache, make_entry
    ):
        memory_cache.insert(make_entry("a@x.com"))
        memory_cache.insert(make_entry("b@x.com"))

        provider = make_provider(oauth_email="b@x.com")
        outcome = provider(DRIVE, {"app": client, "package": "mypkg"})

        assert outcome.source.email == "b@x.com"

    def test_package_defaults_to_config(self, make_provider, client, memory_cache, make_entry):
        """Test that entries cached for another package are not reused"""
        memory_cache.insert(make_entry("a@x.com"))
        flow = FakeFlow()

        outcome = make_provider(flow=flow)(DRIVE, {"app": client})

        assert outcome.source.from_cache is False
        assert len(flow.calls) == 1


class TestBuiltinProviders:
    def test_default_order(self, clean_config):
        names = [name for name, _ in builtin_providers(clean_config)]
        assert names == list(DEFAULT_PROVIDER_ORDER)


class TestScenarios:
    """End-to-end runs through a chain shaped like the default one"""

    @pytest.fixture
    def flow(self):
        return FakeFlow(email="new@x.com")

    @pytest.fixture
    def selector(self):
        return FakeSelector()

    @pytest.fixture
    def run(self, clean_env, memory_cache, flow, selector):
        def _run(scopes, interactive=False, **params):
            config = Config(use_oauth_cache=False, interactive=interactive)
            registry = ProviderRegistry(
                [
                    ("byo_token", byo_token),
                    ("service_account", service_account),
                    ("external_account", external_account),
                    ("app_default", app_default),
                    ("compute_metadata", not_on_gce()),
                    ("user_oauth", UserOAuthProvider(config, memory_cache, flow, selector)),
                ]
            )
            return ChainExecutor(registry, config).fetch(scopes, params)

        return _run

    def test_caller_token_short_circuits(self, run, flow):
        credential = make_user_credential(scopes=[DRIVE_SCOPE, CLOUD_PLATFORM_SCOPE])

        source = run(DRIVE_SCOPE, token=credential)

        assert source.kind is CredentialKind.BYO_TOKEN
        assert source.scopes >= {DRIVE_SCOPE, CLOUD_PLATFORM_SCOPE}
        assert flow.calls == []

    def test_service_account_path(self, run, data_dir):
        source = run(DRIVE_SCOPE, path=str(data_dir / "service_account.json"))
        assert source.kind is CredentialKind.SERVICE_ACCOUNT

    def test_empty_cache_acquires(self, run, flow, client, memory_cache):
        source = run(DRIVE_SCOPE, app=client, package="mypkg")

        assert source.kind is CredentialKind.USER_OAUTH
        assert source.from_cache is False
        assert len(flow.calls) == 1
        assert len(memory_cache) == 1

    def test_single_match_prompted_and_reused(
        self, run, flow, selector, client, memory_cache, make_entry
    ):
        memory_cache.insert(make_entry("a@x.com"))
        selector.choice = 1

        source = run(DRIVE_SCOPE, interactive=True, app=client, package="mypkg")

        assert selector.options == [START_NEW_LABEL, "a@x.com"]
        assert (source.email, source.from_cache) == ("a@x.com", True)
        assert flow.calls == []
        assert len(memory_cache) == 1

    def test_email_true_with_two_matches_is_ambiguous(
        self, run, flow, client, memory_cache, make_entry
    ):
        memory_cache.insert(make_entry("a@x.com"))
        memory_cache.insert(make_entry("b@x.com"))

        with pytest.raises(AmbiguousCredential) as exc_info:
            run(DRIVE_SCOPE, interactive=True, app=client, package="mypkg", email=True)

        assert exc_info.value.context["emails"] == ["a@x.com", "b@x.com"]
        assert flow.calls == []

    def test_cancelled_prompt_aborts_chain(
        self, run, selector, client, memory_cache, make_entry
    ):
        memory_cache.insert(make_entry("a@x.com"))
        selector.choice = None

        with pytest.raises(UserAborted):
            run(DRIVE_SCOPE, interactive=True, app=client, package="mypkg")
        assert len(memory_cache) == 1
