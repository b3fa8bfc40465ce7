"""
Bearer-token authentication for the AMP Tracker API.

Tokens are HS256 JWTs minted by the surrounding application's login flow
(``AuthService.issue_token``); this service verifies them on every request.
Claims: ``sub`` (user id), ``iat``, ``exp``, ``jti``, ``iss`` and ``aud``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt as pyjwt

from src.config.settings import get_settings
from src.lib.security import hash_uid

logger = logging.getLogger(__name__)

TOKEN_ISSUER = "amp-tracker"
TOKEN_AUDIENCE = "amp-tracker-api"
TOKEN_ALGORITHM = "HS256"

# Tolerated clock skew between the minting service and this one
LEEWAY_SECONDS = 30

# HS256 keys shorter than the hash output are rejected in production
MIN_PRODUCTION_SECRET_LENGTH = 32


@dataclass(frozen=True)
class AuthToken:
    """Verified claims of a bearer token."""

    user_id: int
    issued_at: datetime
    expires_at: datetime
    jti: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def expired(self) -> bool:
        return datetime.now(UTC) >= self.expires_at


class AuthService:
    """
    Signs and verifies bearer tokens.

    Args:
        secret_key: Signing secret (default: ``AMP_API_SECRET_KEY`` from settings)

    Raises:
        RuntimeError: If no secret is configured
    """

    TOKEN_EXPIRY_DAYS = 30

    def __init__(self, secret_key: str | None = None) -> None:
        resolved_key = secret_key or get_settings().api_secret_key
        if not resolved_key:
            raise RuntimeError(
                "AMP_API_SECRET_KEY environment variable is required. "
                "Set it to a cryptographically random string."
            )
        self.secret_key: str = resolved_key

    def generate_token(self, user_id: int) -> AuthToken:
        now = datetime.now(UTC)
        return AuthToken(
            user_id=user_id,
            issued_at=now,
            expires_at=now + timedelta(days=self.TOKEN_EXPIRY_DAYS),
        )

    def encode_token(self, token: AuthToken) -> str:
        payload: dict[str, Any] = {
            "sub": str(token.user_id),
            "iat": token.issued_at,
            "exp": token.expires_at,
            "jti": token.jti,
            "iss": TOKEN_ISSUER,
            "aud": TOKEN_AUDIENCE,
        }
        return pyjwt.encode(payload, self.secret_key, algorithm=TOKEN_ALGORITHM)

    def issue_token(self, user_id: int) -> str:
        """Generate and sign a token for ``user_id`` in one step."""
        encoded = self.encode_token(self.generate_token(user_id))
        logger.info("Issued token for user_hash=%s", hash_uid(user_id))
        return encoded

    def decode_token(self, jwt_token: str) -> AuthToken | None:
        """
        Verify signature, expiry, issuer and audience.

        Returns:
            The token, or None if it fails any check
        """
        try:
            payload = pyjwt.decode(
                jwt_token,
                self.secret_key,
                algorithms=[TOKEN_ALGORITHM],
                audience=TOKEN_AUDIENCE,
                issuer=TOKEN_ISSUER,
                leeway=LEEWAY_SECONDS,
                options={"require": ["sub", "exp", "iat"]},
            )
            return AuthToken(
                user_id=int(payload["sub"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
                jti=payload.get("jti", ""),
            )
        except pyjwt.ExpiredSignatureError:
            logger.info("Rejected expired token")
            return None
        except (pyjwt.InvalidTokenError, ValueError) as e:
            logger.warning("Rejected invalid token: %s", e)
            return None


def validate_secrets() -> None:
    """
    Fail fast at startup when the signing secret is missing or, in
    production, too short.

    Raises:
        RuntimeError: If AMP_API_SECRET_KEY is unusable
    """
    settings = get_settings()
    if not settings.api_secret_key:
        raise RuntimeError(
            "Missing required secrets: AMP_API_SECRET_KEY. "
            "Set this environment variable before starting the application."
        )
    if settings.is_production and len(settings.api_secret_key) < MIN_PRODUCTION_SECRET_LENGTH:
        raise RuntimeError(
            f"AMP_API_SECRET_KEY must be at least {MIN_PRODUCTION_SECRET_LENGTH} characters in production."
        )


__all__ = [
    "AuthService",
    "AuthToken",
    "LEEWAY_SECONDS",
    "TOKEN_AUDIENCE",
    "TOKEN_ISSUER",
    "validate_secrets",
]
