"""Exception hierarchy for gitpod_auth.

All exceptions inherit from :class:`GitpodAuthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`gitpod_auth.exit_codes`.
The top-level error handler in :func:`gitpod_auth.app.main` catches
``GitpodAuthError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    GitpodAuthError (exit 1)
    +-- ConfigError              (exit 2)
    +-- AuthError                (exit 3)
    |   +-- LoginTimedOut        (exit 8)
    |   +-- LoginCancelled       (exit 9)
    |   +-- IdentityLookupFailed (exit 6)
    |   +-- BrowserOpenFailed    (exit 3)
    |   +-- MalformedSession     (exit 3)
    +-- SessionNotFound          (exit 4)
    +-- ChannelError             (exit 6)
    |   +-- RPCError             (exit 6)
    +-- EventWaitCancelled       (exit 1)
"""

from __future__ import annotations

from typing import Any

from gitpod_auth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LOGIN_CANCELLED,
    EXIT_LOGIN_TIMED_OUT,
    EXIT_NOT_FOUND,
)


class GitpodAuthError(Exception):
    """Base exception for all gitpod_auth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`gitpod_auth.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(GitpodAuthError):
    """Raised for configuration problems (invalid JSON, bad field values)."""

    exit_code = EXIT_INVALID_USAGE


class AuthError(GitpodAuthError):
    """Raised when authentication fails (token exchange rejected, bad redirect)."""

    exit_code = EXIT_AUTH_FAILURE


class LoginTimedOut(AuthError):
    """Raised when no session appears in storage before the login deadline.

    Retryable: the caller may start a fresh login.
    """

    exit_code = EXIT_LOGIN_TIMED_OUT


class LoginCancelled(AuthError):
    """Raised when an unrelated secret-storage key changes during a login.

    Any foreign write aborts the in-flight login instead of being ignored.
    Retryable: the caller may start a fresh login.
    """

    exit_code = EXIT_LOGIN_CANCELLED


class IdentityLookupFailed(AuthError):
    """Raised when the RPC channel cannot connect or a remote call fails
    while materializing a session or introspecting a token."""

    exit_code = EXIT_CONNECTION_ERROR


class BrowserOpenFailed(AuthError):
    """Raised by a browser opener that could not launch the authorization URL.

    Not fatal to the login flow: the URL is surfaced for manual copying and
    the flow keeps waiting for the redirect.

    Args:
        url: The authorization URL that could not be opened.
    """

    def __init__(self, url: str, message: str | None = None):
        super().__init__(message or f"Couldn't open {url} automatically")
        self.url = url


class MalformedSession(AuthError):
    """Raised when the stored session record does not parse as a session."""


class SessionNotFound(GitpodAuthError):
    """Raised when a command needs a stored session and there is none."""

    exit_code = EXIT_NOT_FOUND


class ChannelError(GitpodAuthError):
    """Raised on transport failures of the RPC channel (connect, send, close)."""

    exit_code = EXIT_CONNECTION_ERROR


class RPCError(ChannelError):
    """Raised when the remote end answers a call with a JSON-RPC error object.

    Args:
        code: The JSON-RPC error code.
        message: The error message sent by the server.
        data: Optional structured error data.
    """

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.data = data


class EventWaitCancelled(GitpodAuthError):
    """Raised into a pending event wait when its ``cancel()`` is invoked."""
