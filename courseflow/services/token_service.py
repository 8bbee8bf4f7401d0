"""Access token validation (ES256).

Tokens are issued by the upstream auth service; this service only
verifies them.  Claims used: ``sub`` (user UUID), ``roles`` and an
optional display ``name``.

Keys:
- JWT_PUBLIC_KEY_PEM set: verify with that key; this process cannot mint.
- unset (dev/test): an ephemeral EC key pair is generated on import and
  ``create_access_token`` mints tokens against it.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from courseflow.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "auth-service"
AUDIENCE = "courseflow"
ACCESS_TOKEN_TTL_MIN = 15

if SETTINGS.jwt_public_key_pem:
    _private_key: ec.EllipticCurvePrivateKey | None = None
    _public_key = serialization.load_pem_public_key(
        SETTINGS.jwt_public_key_pem.encode()
    )
else:
    _private_key = ec.generate_private_key(ec.SECP256R1())
    _public_key = _private_key.public_key()


def create_access_token(
    *,
    sub: str,
    roles: list[str] | None = None,
    name: str = "",
    ttl_minutes: int = ACCESS_TOKEN_TTL_MIN,
) -> str:
    """Mint a token with the ephemeral dev key.  Used by tests and local tooling."""
    if _private_key is None:
        raise RuntimeError("token minting is disabled when JWT_PUBLIC_KEY_PEM is set")
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ttl_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "roles": roles or ["student"],
        "name": name,
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 to prevent alg:none and alg-switching.
    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat"]},
    )
