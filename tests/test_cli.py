"""End-to-end tests for the gitpod-auth command line.

Every command runs through the real Typer app with an isolated config and
data directory. Network-facing pieces (the loopback login, the RPC lookups)
are replaced with async fakes on :mod:`gitpod_auth.commands.auth`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import pytest
from typer.testing import CliRunner

from gitpod_auth import __version__
from gitpod_auth.app import app, register_commands
from gitpod_auth.auth.secret_storage import SecretStorage
from gitpod_auth.auth.session_store import SessionStore
from gitpod_auth.config import load_config
from gitpod_auth.exceptions import IdentityLookupFailed
from gitpod_auth.models import Account, ProviderConfig, Session


register_commands()


def _store() -> SessionStore:
    return SessionStore(SecretStorage(), "gitpod.authSession")


def _invoke(runner: CliRunner, *args: str, **kwargs: Any):
    return runner.invoke(app, list(args), **kwargs)


@pytest.fixture
def signed_in(isolated_config: Path, sample_session: Session) -> Session:
    _store().write(sample_session)
    return sample_session


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------


class TestGlobalOptions:
    def test_version(self, cli_runner: CliRunner) -> None:
        result = _invoke(cli_runner, "--version")
        assert result.exit_code == 0
        assert f"gitpod-auth {__version__}" in result.output

    def test_no_args_shows_help(self, cli_runner: CliRunner) -> None:
        result = _invoke(cli_runner)
        assert "login" in result.output
        assert "status" in result.output


# ---------------------------------------------------------------------------
# status / logout / sessions
# ---------------------------------------------------------------------------


class TestStatus:
    def test_not_signed_in_exits_4(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "--plain", "status")
        assert result.exit_code == 4
        assert "Not signed in" in result.output

    def test_shows_account_without_token(
        self, cli_runner: CliRunner, signed_in: Session
    ) -> None:
        result = _invoke(cli_runner, "--json", "--quiet", "status")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["account"] == {"id": "u-123", "label": "Jane Doe"}
        assert data["scopes"] == signed_in.scopes
        assert "tok-abc" not in result.output

    def test_malformed_session_is_auth_failure(
        self, cli_runner: CliRunner, isolated_config: Path
    ) -> None:
        SecretStorage().store("gitpod.authSession", "{not json")
        result = _invoke(cli_runner, "--plain", "status")
        assert result.exit_code == 3


class TestLogout:
    def test_removes_session(self, cli_runner: CliRunner, signed_in: Session) -> None:
        result = _invoke(cli_runner, "--plain", "logout")
        assert result.exit_code == 0
        assert "Signed out of Gitpod" in result.output
        assert _store().read() is None

    def test_when_not_signed_in(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "--plain", "logout")
        assert result.exit_code == 0
        assert "Not signed in." in result.output


class TestSessions:
    def test_lists_matching_session_as_json(
        self, cli_runner: CliRunner, signed_in: Session
    ) -> None:
        result = _invoke(
            cli_runner, "--json", "--quiet", "sessions", "--scope", "resource:default"
        )
        assert result.exit_code == 0, result.output
        rows = json.loads(result.output)
        assert rows == [
            {
                "ID": "gitpod.user",
                "Account": "Jane Doe",
                "Account ID": "u-123",
                "Scopes": "function:getGitpodTokenScopes resource:default",
            }
        ]

    def test_plain_table(self, cli_runner: CliRunner, signed_in: Session) -> None:
        result = _invoke(cli_runner, "--plain", "sessions", "-s", "resource:default")
        assert result.exit_code == 0
        assert "ID\tAccount\tAccount ID\tScopes" in result.output
        assert "gitpod.user\tJane Doe\tu-123" in result.output

    def test_missing_scope_filters_out(
        self, cli_runner: CliRunner, signed_in: Session
    ) -> None:
        result = _invoke(cli_runner, "--plain", "sessions", "--scope", "resource:workspace")
        assert result.exit_code == 0
        assert "No matching sessions." in result.output
        assert "gitpod-auth login" in result.output

    def test_no_session(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "--plain", "sessions", "--scope", "resource:default")
        assert result.exit_code == 0
        assert "No matching sessions." in result.output


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_loopback_login_stores_and_reports(
        self,
        cli_runner: CliRunner,
        isolated_config: Path,
        sample_session: Session,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        seen: dict[str, Any] = {}

        async def fake_loopback(
            config: ProviderConfig,
            store: SessionStore,
            scopes: Optional[list[str]],
            timeout: float,
        ) -> Session:
            seen.update(base_url=config.base_url, scopes=scopes, timeout=timeout)
            store.write(sample_session)
            return sample_session

        monkeypatch.setattr("gitpod_auth.commands.auth._loopback_login", fake_loopback)
        result = _invoke(
            cli_runner,
            "--plain",
            "--base-url",
            "https://gitpod.example.com",
            "login",
            "--scope",
            "resource:default",
            "--timeout",
            "12",
        )

        assert result.exit_code == 0, result.output
        assert "Signed in as Jane Doe." in result.output
        assert seen == {
            "base_url": "https://gitpod.example.com",
            "scopes": ["resource:default"],
            "timeout": 12.0,
        }
        assert _store().read() == sample_session
        assert "tok-abc" not in result.output

    def test_timeout_uses_config_default(
        self,
        cli_runner: CliRunner,
        isolated_config: Path,
        sample_session: Session,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        timeouts: list[float] = []

        async def fake_loopback(config, store, scopes, timeout):
            timeouts.append(timeout)
            return sample_session

        monkeypatch.setattr("gitpod_auth.commands.auth._loopback_login", fake_loopback)
        result = _invoke(cli_runner, "--plain", "login")
        assert result.exit_code == 0
        assert timeouts == [300.0]

    def test_no_loopback_times_out_and_shows_url(
        self,
        cli_runner: CliRunner,
        isolated_config: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def no_browser(url: str) -> bool:
            return False

        monkeypatch.setattr("gitpod_auth.commands.auth._open_browser", no_browser)
        result = _invoke(cli_runner, "--plain", "login", "--no-loopback", "--timeout", "0.05")

        assert result.exit_code == 8
        assert "https://gitpod.io/api/oauth/authorize?" in result.output
        assert "code_challenge_method=S256" in result.output
        assert "did not complete within" in result.output


# ---------------------------------------------------------------------------
# scopes / whoami
# ---------------------------------------------------------------------------


class TestServerLookups:
    def test_scopes_requires_session(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "--plain", "scopes")
        assert result.exit_code == 4

    def test_scopes_prints_granted(
        self,
        cli_runner: CliRunner,
        signed_in: Session,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        tokens: list[str] = []

        async def fake_check(config: ProviderConfig, access_token: str) -> list[str]:
            tokens.append(access_token)
            return ["resource:default", "function:getWorkspaces"]

        monkeypatch.setattr("gitpod_auth.commands.auth.check_scopes", fake_check)
        result = _invoke(cli_runner, "--json", "--quiet", "scopes")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == ["resource:default", "function:getWorkspaces"]
        assert tokens == ["tok-abc"]

    def test_whoami_resolves_account(
        self,
        cli_runner: CliRunner,
        signed_in: Session,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def fake_resolve(config, access_token, scopes):
            return Session(
                id=config.session_id,
                account=Account(label="Jane D.", id="u-123"),
                scopes=list(scopes),
                access_token=access_token,
            )

        monkeypatch.setattr(
            "gitpod_auth.commands.auth.resolve_authentication_session", fake_resolve
        )
        result = _invoke(cli_runner, "--json", "--quiet", "whoami")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"label": "Jane D.", "id": "u-123"}

    def test_whoami_lookup_failure_exits_6(
        self,
        cli_runner: CliRunner,
        signed_in: Session,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def failing_resolve(config, access_token, scopes):
            raise IdentityLookupFailed("Could not resolve the Gitpod user")

        monkeypatch.setattr(
            "gitpod_auth.commands.auth.resolve_authentication_session", failing_resolve
        )
        result = _invoke(cli_runner, "--plain", "whoami")
        assert result.exit_code == 6
        assert "Could not resolve the Gitpod user" in result.output


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


class TestConfigCommands:
    def test_show_defaults(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "--json", "--quiet", "config", "show")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["base_url"] == "https://gitpod.io"
        assert data["rpc"]["max_retries"] == load_config().rpc.max_retries

    def test_show_effective_applies_base_url(
        self, cli_runner: CliRunner, isolated_config: Path
    ) -> None:
        result = _invoke(
            cli_runner,
            "--json",
            "--quiet",
            "--base-url",
            "https://cli.example.com",
            "config",
            "show",
            "--effective",
        )
        assert json.loads(result.output)["base_url"] == "https://cli.example.com"

    def test_set_string(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(
            cli_runner, "--plain", "config", "set", "base_url", "https://gitpod.example.com"
        )
        assert result.exit_code == 0, result.output
        assert load_config().base_url == "https://gitpod.example.com"

    def test_set_nested_int(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "--plain", "config", "set", "rpc.max_retries", "7")
        assert result.exit_code == 0, result.output
        assert load_config().rpc.max_retries == 7

    def test_set_list(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(
            cli_runner, "--plain", "config", "set", "scopes", "resource:default, function:getWorkspaces"
        )
        assert result.exit_code == 0, result.output
        assert load_config().scopes == ["resource:default", "function:getWorkspaces"]

    def test_set_bad_number_exits_2(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "--plain", "config", "set", "rpc.max_retries", "many")
        assert result.exit_code == 2
        assert "Expected integer" in result.output

    def test_set_unknown_key_exits_2(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "--plain", "config", "set", "nope", "x")
        assert result.exit_code == 2
        assert "Unknown config key: nope" in result.output

    def test_set_section_key_exits_2(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "--plain", "config", "set", "rpc", "x")
        assert result.exit_code == 2

    def test_reset_with_force(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        _invoke(cli_runner, "--plain", "config", "set", "login_timeout", "5")
        result = _invoke(cli_runner, "--plain", "--force", "config", "reset")
        assert result.exit_code == 0
        assert load_config() == ProviderConfig()

    def test_reset_declined(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        _invoke(cli_runner, "--plain", "config", "set", "login_timeout", "5")
        result = _invoke(cli_runner, "--plain", "config", "reset", input="n\n")
        assert result.exit_code == 0
        assert "Cancelled." in result.output
        assert load_config().login_timeout == 5.0
