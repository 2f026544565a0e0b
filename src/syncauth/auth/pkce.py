"""PKCE (:rfc:`7636`) verifier and S256 challenge generation."""

from __future__ import annotations

import base64
import hashlib
import secrets

from syncauth.models import PKCEPair

VERIFIER_BYTES = 32
"""Random bytes behind each verifier; 32 bytes encode to 43 base64url characters."""


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def compute_code_challenge(code_verifier: str) -> str:
    """Return ``base64url(sha256(code_verifier))`` without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce_pair() -> PKCEPair:
    """Generate a fresh verifier from the OS CSPRNG and its S256 challenge.

    Every call draws new randomness, so a verifier is never shared between
    sessions.

    Returns:
        A :class:`~syncauth.models.PKCEPair` whose verifier is 43 characters
        from the unreserved base64url alphabet (``A-Z a-z 0-9 - _``).
    """
    verifier = _b64url(secrets.token_bytes(VERIFIER_BYTES))
    return PKCEPair(verifier=verifier, challenge=compute_code_challenge(verifier))
