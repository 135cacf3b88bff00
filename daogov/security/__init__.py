"""
DAO Governance Security

Bearer token verification.
"""

from daogov.security.tokens import (
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
    create_access_token,
    decode_token,
    extract_token_from_header,
    verify_token,
)

__all__ = [
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
    "create_access_token",
    "decode_token",
    "extract_token_from_header",
    "verify_token",
]
