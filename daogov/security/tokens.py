"""
JWT Token Handling for DAO Governance

Bearer tokens are issued by the platform's auth service; this module only
verifies them and extracts the caller id. ``create_access_token`` exists
for tooling and tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import jwt as pyjwt
import structlog
from jwt.exceptions import DecodeError, ExpiredSignatureError, InvalidTokenError
from pydantic import ValidationError

from daogov.config import get_settings
from daogov.models.user import TokenPayload

logger = structlog.get_logger(__name__)

# Hardcoded whitelist; never take the algorithm from the token header
ALLOWED_JWT_ALGORITHMS = ["HS256", "HS384", "HS512"]

MAX_TOKEN_SIZE_BYTES = 8192


class TokenError(Exception):
    """Base exception for token errors."""

    pass


class TokenExpiredError(TokenError):
    """Token has expired."""

    pass


class TokenInvalidError(TokenError):
    """Token is invalid."""

    pass


def create_access_token(
    user_id: str,
    secret_key: str | None = None,
    expires_delta: timedelta | None = None,
    additional_claims: dict[str, Any] | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: Caller's unique identifier (``sub`` claim)
        secret_key: Signing key (uses settings if not provided)
        expires_delta: Lifetime (uses settings if not provided)
        additional_claims: Extra claims to include in token

    Returns:
        Encoded JWT access token
    """
    settings = get_settings()
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes))

    payload: dict[str, Any] = {
        "sub": user_id,
        "exp": expire,
        "iat": now,
        "jti": str(uuid4()),
        "type": "access",
    }
    if additional_claims:
        payload.update(additional_claims)

    encoded: str = pyjwt.encode(
        payload,
        secret_key or settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded


def decode_token(token: str, secret_key: str | None = None) -> TokenPayload:
    """
    Decode and validate a JWT token.

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is invalid
    """
    settings = get_settings()

    if len(token.encode("utf-8")) > MAX_TOKEN_SIZE_BYTES:
        logger.warning("token_too_large", size=len(token))
        raise TokenInvalidError("Token exceeds maximum size")

    try:
        payload = pyjwt.decode(
            token,
            secret_key or settings.jwt_secret_key,
            algorithms=ALLOWED_JWT_ALGORITHMS,
            options={"require": ["sub", "exp"]},
        )
        return TokenPayload(
            sub=payload["sub"],
            exp=payload.get("exp"),
            iat=payload.get("iat"),
            jti=payload.get("jti"),
            type=payload.get("type", "access"),
        )
    except ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except (InvalidTokenError, DecodeError) as e:
        raise TokenInvalidError(f"Invalid token: {str(e)}")
    except ValidationError as e:
        raise TokenInvalidError(f"Token payload validation failed: {str(e)}")


def extract_token_from_header(authorization: str) -> str:
    """
    Extract JWT token from Authorization header.

    Expected format: "Bearer <token>"

    Raises:
        TokenInvalidError: If header format is invalid
    """
    parts = authorization.split()

    if len(parts) != 2:
        raise TokenInvalidError("Invalid authorization header format")

    scheme, token = parts

    if scheme.lower() != "bearer":
        raise TokenInvalidError("Invalid authentication scheme")

    return token


def verify_token(
    token: str, secret_key: str | None = None, expected_type: str = "access"
) -> TokenPayload:
    """
    Verify a JWT token and check its type.

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is invalid or wrong type
    """
    payload = decode_token(token, secret_key)

    if expected_type and payload.type != expected_type:
        raise TokenInvalidError(f"Expected {expected_type} token, got {payload.type}")

    return payload
