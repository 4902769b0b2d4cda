"""
Access token issuing and verification.

Tokens are compact JWTs signed with ES256K. The signing key is derived from
the API secret (see ``keys``), and the API key is the issuer claim.

Usage:
    token = AccessToken(api_key, api_secret, identity="alice", ttl="10h")
    token.add_grant(VideoGrant(room_join=True, room="standup"))
    jwt_str = token.to_jwt()

    claims = TokenVerifier(api_key, api_secret).verify(jwt_str)
"""

import logging
import os
import sys
import time
from dataclasses import dataclass
from typing import Optional, Union

import jwt

from .grants import ClaimGrants, VideoGrant, parse_ttl
from .keys import derive_private_key, derive_public_key
from ..exceptions import (
    ConfigurationError,
    ExpiredTokenError,
    InvalidSignatureError,
    IssuerMismatchError,
    MalformedTokenError,
    MissingIdentityError,
    TokenVerificationError,
)

logger = logging.getLogger(__name__)

ALGORITHM = "ES256K"

API_KEY_ENV = "API_KEY"
API_SECRET_ENV = "API_SECRET"

_browser_warning_emitted = False


def _running_in_browser() -> bool:
    """True under Pyodide and other Emscripten builds."""
    return sys.platform == "emscripten"


def _warn_if_browser() -> None:
    global _browser_warning_emitted
    if _browser_warning_emitted or not _running_in_browser():
        return
    _browser_warning_emitted = True
    logger.warning(
        "You should not include your API secret in your web client bundle. "
        "Your web client should request a token from your backend server, "
        "which should use the API secret to generate it."
    )


def _resolve_credentials(api_key: Optional[str], api_secret: Optional[str]) -> tuple[str, str]:
    api_key = api_key or os.environ.get(API_KEY_ENV)
    api_secret = api_secret or os.environ.get(API_SECRET_ENV)
    if not api_key or not api_secret:
        raise ConfigurationError("api-key and api-secret must be set")
    return api_key, api_secret


@dataclass
class AccessTokenOptions:
    """Options accepted by AccessToken."""
    identity: Optional[str] = None
    ttl: Union[int, float, str, None] = None  # seconds, or a span like "10h"
    name: Optional[str] = None
    metadata: Optional[str] = None
    webhook_url: Optional[str] = None


class AccessToken:
    """
    Builder for a signed access token.

    Grants accumulate on this object and are frozen into a ClaimGrants
    only when the token is signed.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        options: Optional[AccessTokenOptions] = None,
        **kwargs
    ):
        """
        Args:
            api_key: API key, defaults to the API_KEY environment variable
            api_secret: Hex secret, defaults to the API_SECRET environment variable
            options: AccessTokenOptions, or pass the same fields as keywords
        """
        self.api_key, self._api_secret = _resolve_credentials(api_key, api_secret)
        _warn_if_browser()

        if options is not None and kwargs:
            raise ConfigurationError(
                f"pass either options or keyword options, not both (got {sorted(kwargs)})"
            )
        options = options or AccessTokenOptions(**kwargs)

        self.identity = options.identity
        self.ttl = options.ttl
        self._ttl_seconds = parse_ttl(options.ttl)

        self.name = options.name
        self.metadata = options.metadata
        self.webhook_url = options.webhook_url
        self.content_hash: Optional[str] = None
        self.video: Optional[VideoGrant] = None

    def add_grant(self, grant: Union[VideoGrant, dict]) -> None:
        """Replace the video grant of this token."""
        if isinstance(grant, dict):
            grant = VideoGrant.model_validate(grant)
        self.video = grant

    set_grant = add_grant

    @property
    def sha256(self) -> Optional[str]:
        return self.content_hash

    @sha256.setter
    def sha256(self, value: Optional[str]) -> None:
        self.content_hash = value

    def claims(self) -> ClaimGrants:
        """Snapshot of the grants accumulated so far."""
        return ClaimGrants(
            identity=self.identity,
            name=self.name,
            metadata=self.metadata,
            content_hash=self.content_hash,
            webhook_url=self.webhook_url,
            video=self.video,
        )

    def to_jwt(self) -> str:
        """
        Sign the accumulated grants.

        Raises:
            MissingIdentityError: the grant requests room join without identity
            KeyDerivationError: the API secret is not a valid key
        """
        claims = self.claims()
        if not claims.identity and claims.requests_join:
            raise MissingIdentityError("identity is required for join but not set")

        now = int(time.time())
        payload = claims.to_payload()
        payload.update({
            "iss": self.api_key,
            "iat": now,
            "nbf": now,
            "exp": int(now + self._ttl_seconds),
        })
        if claims.identity:
            payload["sub"] = claims.identity
            payload["jti"] = claims.identity

        private_pem = derive_private_key(self._api_secret)
        return jwt.encode(payload, private_pem, algorithm=ALGORITHM)

    sign = to_jwt


class TokenVerifier:
    """Verifies tokens issued for one API key/secret pair."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        leeway: float = 0
    ):
        self.api_key, self._api_secret = _resolve_credentials(api_key, api_secret)
        self.leeway = leeway

    def verify(self, token: str) -> ClaimGrants:
        """
        Verify signature, issuer and expiry, then decode the claims.

        Raises:
            MalformedTokenError: token cannot be parsed
            InvalidSignatureError: signature or algorithm mismatch
            IssuerMismatchError: issued by another API key
            ExpiredTokenError: past expiration
        """
        public_pem = derive_public_key(self._api_secret)

        try:
            payload = jwt.decode(
                token,
                public_pem,
                algorithms=[ALGORITHM],
                issuer=self.api_key,
                leeway=self.leeway,
                options={"require": ["exp", "iss"]},
            )
        except jwt.InvalidSignatureError as e:
            raise InvalidSignatureError("invalid token signature") from e
        except jwt.InvalidAlgorithmError as e:
            raise InvalidSignatureError(f"unexpected token algorithm: {e}") from e
        except jwt.ExpiredSignatureError as e:
            raise ExpiredTokenError("token has expired") from e
        except jwt.InvalidIssuerError as e:
            raise IssuerMismatchError("token issuer does not match api key") from e
        except jwt.ImmatureSignatureError as e:
            raise TokenVerificationError("token is not yet valid") from e
        except jwt.DecodeError as e:
            raise MalformedTokenError(f"malformed token: {e}") from e
        except jwt.InvalidTokenError as e:
            raise MalformedTokenError(f"invalid token claims: {e}") from e

        try:
            return ClaimGrants.from_payload(payload)
        except ValueError as e:
            raise MalformedTokenError(f"invalid grant claims: {e}") from e
