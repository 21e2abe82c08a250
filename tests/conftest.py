"""Shared test fixtures for gitpod_auth.

Provides isolated config/data directories, secret storage and session
store fixtures, output state management, a CLI runner, and a fake RPC
connection factory so that auth tests never dial a real server.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import pytest
from pydantic import TypeAdapter

from gitpod_auth.auth.secret_storage import SecretStorage
from gitpod_auth.auth.session_store import SessionStore
from gitpod_auth.exceptions import ChannelError
from gitpod_auth.models import Account, ProviderConfig, Session, User
from gitpod_auth.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    Resetting forces a fresh manager to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and secrets to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path,
    forces the XDG layout on every platform, and clears the
    GITPOD_AUTH_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("gitpod_auth.config._is_xdg_platform", lambda: True)

    for var in ["GITPOD_AUTH_BASE_URL", "GITPOD_AUTH_CLIENT_ID"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(base_url="https://gitpod.example.com")


@pytest.fixture
def secret_storage(tmp_path: Path) -> SecretStorage:
    return SecretStorage(tmp_path / "secrets.json")


@pytest.fixture
def session_store(secret_storage: SecretStorage, provider_config: ProviderConfig) -> SessionStore:
    return SessionStore(secret_storage, provider_config.session_key)


@pytest.fixture
def sample_session() -> Session:
    return Session(
        id="gitpod.user",
        account=Account(label="Jane Doe", id="u-123"),
        scopes=["function:getGitpodTokenScopes", "resource:default"],
        access_token="tok-abc",
    )


# ---------------------------------------------------------------------------
# Fake RPC connection
# ---------------------------------------------------------------------------


@dataclass
class FakeServer:
    """Stands in for :class:`~gitpod_auth.rpc.gitpod.GitpodServer`."""

    user: Any = field(default_factory=lambda: {"id": "u-123", "name": "Jane Doe"})
    scopes: Any = field(default_factory=lambda: ["resource:default"])
    error: Optional[Exception] = None
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    async def get_logged_in_user(self) -> User:
        self.calls.append(("getLoggedInUser", ()))
        if self.error is not None:
            raise self.error
        return User.model_validate(self.user)

    async def get_gitpod_token_scopes(self, token_hash: str) -> list[str]:
        self.calls.append(("getGitpodTokenScopes", (token_hash,)))
        if self.error is not None:
            raise self.error
        return TypeAdapter(list[str]).validate_python(self.scopes)


@dataclass
class FakeConnection:
    server: FakeServer
    closed: bool = False

    async def close(self) -> None:
        self.closed = True


class FakeConnectionFactory:
    """Connection factory recording every connection it hands out."""

    def __init__(self, server: Optional[FakeServer] = None) -> None:
        self.server = server or FakeServer()
        self.connections: list[FakeConnection] = []
        self.tokens: list[str] = []

    def __call__(self, config: ProviderConfig, access_token: str) -> FakeConnection:
        self.tokens.append(access_token)
        connection = FakeConnection(self.server)
        self.connections.append(connection)
        return connection


@pytest.fixture
def fake_connections() -> FakeConnectionFactory:
    return FakeConnectionFactory()


@pytest.fixture
def failing_connections() -> FakeConnectionFactory:
    return FakeConnectionFactory(FakeServer(error=ChannelError("Could not connect")))


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
