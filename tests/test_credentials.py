"""Tests for per-request credential resolution."""

from __future__ import annotations

import logging

import pytest

from ocireg_mcp.display.logging_config import SecretRedactionFilter
from ocireg_mcp.oci.auth import BasicAuth, BearerAuth, DefaultKeychainAuth
from ocireg_mcp.oci.client import RegistryClient
from ocireg_mcp.server import credentials
from ocireg_mcp.server.credentials import (
    client_from_headers,
    register_environment_secrets,
    resolve_auth_strategy,
)


@pytest.fixture(autouse=True)
def _capture(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="ocireg_mcp")


@pytest.fixture
def redaction(monkeypatch: pytest.MonkeyPatch) -> SecretRedactionFilter:
    fresh = SecretRedactionFilter()
    monkeypatch.setattr(credentials, "secret_redaction_filter", fresh)
    return fresh


class TestResolveAuthStrategy:
    def test_header_token_wins_over_environment(self, caplog: pytest.LogCaptureFixture) -> None:
        env = {"OCI_TOKEN": "env-token", "OCI_USERNAME": "u", "OCI_PASSWORD": "p"}
        strategy = resolve_auth_strategy({"Authorization": "Bearer header-token"}, env)
        assert strategy == BearerAuth("header-token")
        assert "Using bearer token from Authorization header for OCI registry" in caplog.text

    def test_header_lookup_is_case_insensitive(self) -> None:
        strategy = resolve_auth_strategy({"authorization": "Bearer lower"}, {})
        assert strategy == BearerAuth("lower")

    def test_non_bearer_header_falls_through(self) -> None:
        strategy = resolve_auth_strategy({"Authorization": "Basic dXNlcjpwYXNz"}, {"OCI_TOKEN": "env-token"})
        assert strategy == BearerAuth("env-token")

    def test_bearer_prefix_is_case_sensitive(self) -> None:
        strategy = resolve_auth_strategy({"Authorization": "bearer nope"}, {})
        assert isinstance(strategy, DefaultKeychainAuth)

    def test_environment_token(self, caplog: pytest.LogCaptureFixture) -> None:
        strategy = resolve_auth_strategy({}, {"OCI_TOKEN": "env-token", "OCI_USERNAME": "u", "OCI_PASSWORD": "p"})
        assert strategy == BearerAuth("env-token")
        assert "Using bearer token from OCI_TOKEN environment variable for OCI registry" in caplog.text

    def test_empty_environment_token_is_ignored(self) -> None:
        strategy = resolve_auth_strategy(None, {"OCI_TOKEN": "", "OCI_USERNAME": "u", "OCI_PASSWORD": "p"})
        assert strategy == BasicAuth("u", "p")

    def test_username_and_password(self, caplog: pytest.LogCaptureFixture) -> None:
        strategy = resolve_auth_strategy(None, {"OCI_USERNAME": "user", "OCI_PASSWORD": "hunter22"})
        assert strategy == BasicAuth("user", "hunter22")
        assert "Using username/password authentication for OCI registry" in caplog.text

    @pytest.mark.parametrize("env", [{"OCI_USERNAME": "user"}, {"OCI_PASSWORD": "pass"}, {}])
    def test_falls_back_to_default_keychain(self, env, caplog: pytest.LogCaptureFixture) -> None:
        strategy = resolve_auth_strategy(None, env)
        assert isinstance(strategy, DefaultKeychainAuth)
        assert "Using default keychain for OCI registry authentication" in caplog.text

    def test_one_log_line_per_resolution(self, caplog: pytest.LogCaptureFixture) -> None:
        resolve_auth_strategy({"Authorization": "Bearer t0ken"}, {"OCI_TOKEN": "x"})
        lines = [r for r in caplog.records if r.name == "ocireg_mcp.server.credentials"]
        assert len(lines) == 1

    def test_secrets_never_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        resolve_auth_strategy({"Authorization": "Bearer very-secret-token"}, {})
        resolve_auth_strategy({}, {"OCI_USERNAME": "user", "OCI_PASSWORD": "very-secret-pass"})
        assert "very-secret" not in caplog.text

    def test_request_secrets_are_not_retained(self, redaction: SecretRedactionFilter) -> None:
        for i in range(2000):
            resolve_auth_strategy({"Authorization": f"Bearer token-{i}"}, {})
        resolve_auth_strategy({}, {"OCI_USERNAME": "user", "OCI_PASSWORD": "password-secret"})
        assert len(redaction) == 0

    def test_reads_process_environment_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OCI_TOKEN", "from-process")
        assert resolve_auth_strategy() == BearerAuth("from-process")


class TestRegisterEnvironmentSecrets:
    def test_token_and_password_are_registered(self, redaction: SecretRedactionFilter) -> None:
        register_environment_secrets(
            {"OCI_TOKEN": "token-secret", "OCI_USERNAME": "octocat", "OCI_PASSWORD": "password-secret"}
        )
        assert len(redaction) == 2
        record = logging.LogRecord(
            "x", logging.INFO, __file__, 1, "%s / %s / %s", ("token-secret", "password-secret", "octocat"), None
        )
        redaction.filter(record)
        assert record.getMessage() == "***REDACTED*** / ***REDACTED*** / octocat"

    def test_unset_variables_register_nothing(self, redaction: SecretRedactionFilter) -> None:
        register_environment_secrets({})
        assert len(redaction) == 0

    def test_repeated_registration_is_idempotent(self, redaction: SecretRedactionFilter) -> None:
        for _ in range(3):
            register_environment_secrets({"OCI_TOKEN": "token-secret"})
        assert len(redaction) == 1


class TestClientFromHeaders:
    def test_builds_client_with_resolved_strategy(self) -> None:
        client = client_from_headers({"Authorization": "Bearer abc123"})
        assert isinstance(client, RegistryClient)
        assert client.auth == BearerAuth("abc123")
        assert client.timeout == 30

    def test_fresh_client_per_request(self) -> None:
        assert client_from_headers({}) is not client_from_headers({})
