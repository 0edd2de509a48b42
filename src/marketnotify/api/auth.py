"""OIDC JWT authentication.

Provides:
- verify_token(): Validates JWT and returns its claims
- get_current_user(): FastAPI dependency for the authenticated caller
- require_admin(): FastAPI dependency restricting a route to the ADMIN role

The caller is built from token claims only; this service keeps no user table.
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any

import jwt
import requests
from fastapi import Depends, HTTPException, Request

ADMIN_ROLE = "ADMIN"

# JWKS cache with TTL
_jwks_cache: dict[str, Any] | None = None
_jwks_cache_time: float = 0
_jwks_cache_lock = threading.Lock()
_JWKS_CACHE_TTL = 600  # 10 minutes


@dataclass
class CurrentUser:
    """Authenticated caller."""

    id: str
    email: str | None
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


def _get_settings() -> dict[str, str | list[str] | None]:
    """Load OIDC settings from environment."""
    authorized_parties_raw = os.environ.get("OIDC_AUTHORIZED_PARTIES", "")
    authorized_parties: list[str] | None = None
    if authorized_parties_raw:
        authorized_parties = [p.strip() for p in authorized_parties_raw.split(",") if p.strip()]

    return {
        "issuer": os.environ.get("OIDC_ISSUER"),
        "audience": os.environ.get("OIDC_AUDIENCE"),
        "jwks_url": os.environ.get("OIDC_JWKS_URL"),
        "authorized_parties": authorized_parties,
    }


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    resp = requests.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def _get_jwks(jwks_url: str, force_refresh: bool = False) -> dict[str, Any]:
    """Get JWKS with caching."""
    global _jwks_cache, _jwks_cache_time

    with _jwks_cache_lock:
        now = time.time()
        if not force_refresh and _jwks_cache is not None and (now - _jwks_cache_time) < _JWKS_CACHE_TTL:
            return _jwks_cache

        try:
            _jwks_cache = _fetch_jwks(jwks_url)
        except requests.RequestException:
            raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
        _jwks_cache_time = now
        return _jwks_cache


def _find_key(jwks: dict[str, Any], kid: str) -> dict[str, Any] | None:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def verify_token(token: str) -> dict[str, Any]:
    """Verify an RS256 JWT against the configured JWKS.

    Args:
        token: JWT token string.

    Returns:
        Decoded claims (sub is guaranteed present).

    Raises:
        HTTPException: 401 if token is invalid, 503 if the JWKS is unreachable.
    """
    settings = _get_settings()

    issuer = settings.get("issuer")
    audience = settings.get("audience")
    jwks_url = settings.get("jwks_url")

    if not issuer or not audience or not jwks_url:
        raise HTTPException(status_code=401, detail="OIDC not configured")

    try:
        unverified_header = jwt.get_unverified_header(token)
    except jwt.exceptions.DecodeError:
        raise HTTPException(status_code=401, detail="Invalid token")

    kid = unverified_header.get("kid")
    if not kid:
        raise HTTPException(status_code=401, detail="Invalid token")

    jwks = _get_jwks(jwks_url)
    key_data = _find_key(jwks, kid)

    # Unknown kid: keys may have rotated since the last fetch
    if key_data is None:
        jwks = _get_jwks(jwks_url, force_refresh=True)
        key_data = _find_key(jwks, kid)

    if key_data is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    def _try_verify(jwk_data: dict[str, Any]) -> dict[str, Any]:
        try:
            public_key = jwt.algorithms.RSAAlgorithm.from_jwk(jwk_data)
        except (ValueError, TypeError, KeyError):
            raise HTTPException(status_code=401, detail="Invalid token")

        return jwt.decode(
            token,
            public_key,
            algorithms=["RS256"],
            issuer=issuer,
            audience=audience,
            options={"require": ["exp", "iss", "aud", "sub"]},
        )

    try:
        claims = _try_verify(key_data)
    except jwt.InvalidSignatureError:
        jwks = _get_jwks(jwks_url, force_refresh=True)
        key_data = _find_key(jwks, kid)
        if key_data is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        try:
            claims = _try_verify(key_data)
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid token")
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    authorized_parties = settings.get("authorized_parties")
    if authorized_parties and "azp" in claims:
        if claims["azp"] not in authorized_parties:
            raise HTTPException(status_code=401, detail="Invalid token")

    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")

    return claims


def _extract_bearer_token(request: Request) -> str:
    """Extract Bearer token from Authorization header.

    Raises:
        HTTPException: 401 if header missing or malformed.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    return parts[1]


def _roles_from_claims(claims: dict[str, Any]) -> frozenset[str]:
    """Accept either a single "role" claim or a "roles" list, case-insensitively."""
    raw: list[Any] = []
    if isinstance(claims.get("roles"), list):
        raw.extend(claims["roles"])
    if isinstance(claims.get("role"), str):
        raw.append(claims["role"])
    return frozenset(str(r).upper() for r in raw if r)


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: authenticated caller from the bearer token.

    Raises:
        HTTPException: 401 if token invalid/missing.
    """
    token = _extract_bearer_token(request)
    claims = verify_token(token)

    return CurrentUser(
        id=str(claims["sub"]),
        email=claims.get("email"),
        roles=_roles_from_claims(claims),
    )


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """FastAPI dependency: caller must hold the ADMIN role.

    Raises:
        HTTPException: 403 if the caller is not an admin.
    """
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


# Dependency aliases for cleaner imports
CurrentUserDep = Depends(get_current_user)
AdminDep = Depends(require_admin)
