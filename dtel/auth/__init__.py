"""
Access tokens for dtel sessions.

Provides:
- Key derivation (secp256k1 keys from the API secret)
- Grant claims (identity, capabilities, metadata)
- Token issuing and verification (ES256K JWTs)
"""

from .keys import (
    KeyPair,
    derive_key_pair,
    derive_private_key,
    derive_public_key,
)
from .grants import (
    ClaimGrants,
    VideoGrant,
    DEFAULT_TTL,
    parse_ttl,
)
from .tokens import (
    AccessToken,
    AccessTokenOptions,
    TokenVerifier,
    ALGORITHM,
)

__all__ = [
    # Keys
    "KeyPair",
    "derive_key_pair",
    "derive_private_key",
    "derive_public_key",
    # Grants
    "ClaimGrants",
    "VideoGrant",
    "DEFAULT_TTL",
    "parse_ttl",
    # Tokens
    "AccessToken",
    "AccessTokenOptions",
    "TokenVerifier",
    "ALGORITHM",
]
