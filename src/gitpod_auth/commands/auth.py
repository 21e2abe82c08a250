"""Session commands -- sign in, sign out, and inspect the stored session.

Typical workflow::

    gitpod-auth login            # browser sign-in
    gitpod-auth status           # who is signed in, with which scopes
    gitpod-auth scopes           # ask the server what the token may do
    gitpod-auth logout

By default ``login`` catches the redirect itself on a loopback port and
completes the code exchange in-process. With ``--no-loopback`` the
configured redirect URI is used and the command only waits for whatever
handles that URI to store the session.
"""

from __future__ import annotations

import asyncio
import contextlib
import webbrowser
from typing import Any, Iterator, Optional

import typer

from gitpod_auth.auth import (
    AuthorizationFlow,
    CallbackReceiver,
    GitpodAuthProvider,
    OAuthClient,
    SecretStorage,
    SessionStore,
    check_scopes,
    resolve_authentication_session,
)
from gitpod_auth.config import resolve_config
from gitpod_auth.exceptions import GitpodAuthError, SessionNotFound
from gitpod_auth.models import ProviderConfig, Session
from gitpod_auth.output import (
    error,
    format_response,
    info,
    print_table,
    show_url,
    success,
    suggest,
    warning,
)


@contextlib.contextmanager
def _exit_on_error() -> Iterator[None]:
    """Report a :class:`GitpodAuthError` and exit with its code."""
    try:
        yield
    except GitpodAuthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _resolve(ctx: typer.Context) -> tuple[ProviderConfig, SessionStore]:
    base_url = ctx.obj.get("base_url") if ctx.obj else None
    config = resolve_config(cli_base_url=base_url)
    return config, SessionStore(SecretStorage(), config.session_key)


def _require_session(store: SessionStore) -> Session:
    session = store.read()
    if session is None:
        raise SessionNotFound("Not signed in. Run 'gitpod-auth login' first.")
    return session


def _session_data(session: Session) -> dict[str, Any]:
    """Session details safe to print; the access token is left out."""
    return {
        "id": session.id,
        "account": {"id": session.account.id, "label": session.account.label},
        "scopes": list(session.scopes),
    }


async def _open_browser(url: str) -> bool:
    # webbrowser.open may block while it launches the browser.
    return await asyncio.to_thread(webbrowser.open, url)


def _show_manual_url(url: str) -> None:
    warning("Couldn't open the browser automatically. Open this URL to continue:")
    show_url(url)


def _provider(
    config: ProviderConfig, store: SessionStore, timeout: Optional[float] = None
) -> GitpodAuthProvider:
    def new_flow() -> AuthorizationFlow:
        return AuthorizationFlow(
            config, store, _open_browser, on_open_failed=_show_manual_url, timeout=timeout
        )

    return GitpodAuthProvider(config, store, new_flow)


async def _loopback_login(
    config: ProviderConfig,
    store: SessionStore,
    scopes: Optional[list[str]],
    timeout: float,
) -> Session:
    """Run a login whose redirect is caught and completed in this process."""
    receiver = CallbackReceiver(timeout=timeout).start()
    try:
        flow = AuthorizationFlow(
            config,
            store,
            _open_browser,
            on_open_failed=_show_manual_url,
            timeout=timeout,
            redirect_uri=receiver.redirect_uri,
        )
        request = flow.prepare(scopes)
        client = OAuthClient(config, store)

        async def complete() -> Session:
            code = await receiver.wait()
            return await client.complete(request, code)

        completion = asyncio.ensure_future(complete())
        waiting = asyncio.ensure_future(flow.run(request))
        try:
            await asyncio.wait({completion, waiting}, return_when=asyncio.FIRST_COMPLETED)
            if completion.done() and completion.exception() is not None:
                raise completion.exception()  # type: ignore[misc]
            return await waiting
        finally:
            for task in (completion, waiting):
                task.cancel()
            await asyncio.gather(completion, waiting, return_exceptions=True)
    finally:
        receiver.close()


def login_command(
    ctx: typer.Context,
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Additional scope to request (repeatable)."
    ),
    no_loopback: bool = typer.Option(
        False,
        "--no-loopback",
        help="Use the configured redirect URI instead of a local callback server.",
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the browser sign-in."
    ),
) -> None:
    """Sign in to Gitpod in the browser and store the session.

    Example::

        gitpod-auth login
        gitpod-auth --base-url https://gitpod.example.com login --timeout 120
    """
    with _exit_on_error():
        config, store = _resolve(ctx)
        wait_for = timeout if timeout is not None else config.login_timeout
        info(f"Signing in to {config.label} at {config.base_url}...")

        if no_loopback:
            provider = _provider(config, store, timeout=wait_for)
            info("Waiting for the redirect handler to store the session...")
            session = asyncio.run(provider.create_session(scope))
        else:
            session = asyncio.run(_loopback_login(config, store, scope, wait_for))

    success(f"Signed in as {session.account.label}.")
    format_response(_session_data(session))


def logout_command(ctx: typer.Context) -> None:
    """Remove the stored session."""
    with _exit_on_error():
        config, store = _resolve(ctx)
        provider = _provider(config, store)
        had_session = store.exists()
        provider.remove_session()

    if had_session:
        success(f"Signed out of {config.label}.")
    else:
        info("Not signed in.")


def status_command(ctx: typer.Context) -> None:
    """Show the stored session (without its token).

    Exits with code 4 when nobody is signed in.
    """
    with _exit_on_error():
        config, store = _resolve(ctx)
        session = _require_session(store)
    info(f"Signed in to {config.label} ({config.base_url})")
    format_response(_session_data(session))


def sessions_command(
    ctx: typer.Context,
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Only list sessions carrying this scope (repeatable)."
    ),
) -> None:
    """List sessions that carry the requested scopes (configured scopes by default)."""
    with _exit_on_error():
        config, store = _resolve(ctx)
        provider = _provider(config, store)
        sessions = provider.get_sessions(scope or config.scopes)

    if not sessions:
        info("No matching sessions.")
        suggest("Sign in: gitpod-auth login")
        return
    rows = [[s.id, s.account.label, s.account.id, " ".join(s.scopes)] for s in sessions]
    print_table(["ID", "Account", "Account ID", "Scopes"], rows, title="Sessions")


def scopes_command(ctx: typer.Context) -> None:
    """Ask the server which scopes the stored token actually carries."""
    with _exit_on_error():
        config, store = _resolve(ctx)
        session = _require_session(store)
        granted = asyncio.run(check_scopes(config, session.access_token))
    format_response(granted)


def whoami_command(ctx: typer.Context) -> None:
    """Resolve the stored token's account against the server."""
    with _exit_on_error():
        config, store = _resolve(ctx)
        session = _require_session(store)
        resolved = asyncio.run(
            resolve_authentication_session(config, session.access_token, session.scopes)
        )
    format_response(resolved.account.model_dump())
