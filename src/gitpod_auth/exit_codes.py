"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~gitpod_auth.exceptions.GitpodAuthError` subclass.
Shell wrappers can inspect the exit code to tell a timed-out login from a
cancelled one without parsing stderr.

Example::

    $ gitpod-auth login --timeout 5
    $ echo $?
    8   # EXIT_LOGIN_TIMED_OUT -- nobody completed the browser step
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or configuration."""

EXIT_AUTH_FAILURE = 3
"""Authentication or authorisation failed."""

EXIT_NOT_FOUND = 4
"""No stored session exists."""

EXIT_CONNECTION_ERROR = 6
"""The RPC channel or token endpoint could not be reached."""

EXIT_LOGIN_TIMED_OUT = 8
"""The login flow expired before a session appeared."""

EXIT_LOGIN_CANCELLED = 9
"""The login flow was aborted by an unrelated secret-storage change."""
