"""Shared test helper functions.

Regular functions (not fixtures) importable by conftest.py and test modules.
"""

from __future__ import annotations

import base64
import time
from contextlib import contextmanager
from unittest.mock import MagicMock

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

OIDC_ENV = {
    "OIDC_ISSUER": "https://auth.example.com",
    "OIDC_AUDIENCE": "marketplace-api",
    "OIDC_JWKS_URL": "https://auth.example.com/.well-known/jwks.json",
}


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    public_key = private_key.public_key()
    return private_key, public_key


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return (
            base64.urlsafe_b64encode(n.to_bytes(byte_length, "big"))
            .rstrip(b"=")
            .decode()
        )

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = OIDC_ENV["OIDC_ISSUER"],
    aud: str = OIDC_ENV["OIDC_AUDIENCE"],
    exp: int | None = None,
    azp: str | None = None,
    role: str | None = None,
    roles: list[str] | None = None,
    email: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp
    if role:
        payload["role"] = role
    if roles is not None:
        payload["roles"] = roles
    if email:
        payload["email"] = email

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def fake_txn(cursor: MagicMock | None = None):
    """Build a txn() replacement yielding a single mock cursor.

    Returns:
        (txn replacement, cursor) tuple.
    """
    cur = cursor if cursor is not None else MagicMock()

    @contextmanager
    def _txn():
        yield cur

    return _txn, cur
