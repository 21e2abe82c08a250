"""PKCE helpers (:rfc:`7636`) for the authorization code flow."""

from __future__ import annotations

import base64
import hashlib
import secrets

from gitpod_auth.models import PKCEPair


def derive_code_challenge(code_verifier: str) -> str:
    """Return the S256 challenge for *code_verifier* (unpadded base64url)."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> PKCEPair:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A fresh :class:`~gitpod_auth.models.PKCEPair`.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    return PKCEPair(
        code_verifier=code_verifier,
        code_challenge=derive_code_challenge(code_verifier),
    )
