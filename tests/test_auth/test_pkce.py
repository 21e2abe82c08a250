"""Tests for PKCE pair generation."""

from __future__ import annotations

import base64
import hashlib
import re

from gitpod_auth.auth.pkce import derive_code_challenge, generate_pkce_pair


class TestGeneratePKCEPair:
    def test_verifier_length_within_rfc_window(self) -> None:
        pair = generate_pkce_pair()
        assert 43 <= len(pair.code_verifier) <= 128

    def test_verifier_uses_unreserved_characters(self) -> None:
        pair = generate_pkce_pair()
        assert re.fullmatch(r"[A-Za-z0-9\-._~]+", pair.code_verifier)

    def test_challenge_is_s256_of_verifier(self) -> None:
        pair = generate_pkce_pair()
        digest = hashlib.sha256(pair.code_verifier.encode("ascii")).digest()
        expected = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        assert pair.code_challenge == expected

    def test_challenge_has_no_padding(self) -> None:
        assert "=" not in generate_pkce_pair().code_challenge

    def test_pairs_are_unique(self) -> None:
        verifiers = {generate_pkce_pair().code_verifier for _ in range(20)}
        assert len(verifiers) == 20


class TestDeriveCodeChallenge:
    def test_rfc7636_appendix_b_vector(self) -> None:
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert derive_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
