"""gitpod_auth -- delegated Gitpod login via OAuth2 Authorization Code + PKCE.

This package signs a user in to a Gitpod installation from outside the
browser: it builds a PKCE-protected authorization URL, hands it to the
browser, waits for the redirect handler to drop a session into secret
storage, and talks to the Gitpod backend over an authenticated JSON-RPC
WebSocket to resolve the user and the scopes a token carries.

Typical workflow::

    gitpod-auth login         # open the browser and wait for the session
    gitpod-auth status        # show the stored session
    gitpod-auth scopes        # ask the backend what the token may do

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration management.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    auth: PKCE, session storage, the login flow and scope checks.
    rpc: The reconnecting JSON-RPC channel to the Gitpod server.
"""

__version__ = "0.1.0"
