"""
API routes for dtel.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ..auth import AccessToken, AccessTokenOptions, TokenVerifier, VideoGrant
from ..exceptions import (
    ConfigurationError,
    KeyDerivationError,
    MissingIdentityError,
    NoAvailableNodeError,
    RegistryUnavailableError,
    TokenVerificationError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ Request/Response Models ============

class TokenRequest(BaseModel):
    """Request to mint an access token."""
    identity: Optional[str] = Field(default=None, description="Participant identity")
    ttl: Optional[Union[int, str]] = Field(default=None, description="Seconds, or a span like '10h'")
    name: Optional[str] = None
    metadata: Optional[str] = None
    webhook_url: Optional[str] = None
    grant: Optional[VideoGrant] = None


class TokenResponse(BaseModel):
    token: str


class VerifyRequest(BaseModel):
    token: str


class EndpointResponse(BaseModel):
    url: str
    client_ip: Optional[str] = None


# ============ Routes ============

def _credentials(request: Request) -> tuple[Optional[str], Optional[str]]:
    config = request.app.state.config
    return config.api_key, config.api_secret


@router.post("/token", response_model=TokenResponse)
async def create_token(body: TokenRequest, request: Request):
    """Mint a signed access token."""
    api_key, api_secret = _credentials(request)
    try:
        token = AccessToken(
            api_key,
            api_secret,
            AccessTokenOptions(
                identity=body.identity,
                ttl=body.ttl or request.app.state.config.default_ttl,
                name=body.name,
                metadata=body.metadata,
                webhook_url=body.webhook_url,
            ),
        )
        if body.grant is not None:
            token.add_grant(body.grant)
        return TokenResponse(token=token.to_jwt())
    except MissingIdentityError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (ConfigurationError, KeyDerivationError) as e:
        logger.error(f"Token issuing misconfigured: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/token/verify")
async def verify_token(body: VerifyRequest, request: Request):
    """Verify a token and return its claims."""
    api_key, api_secret = _credentials(request)
    try:
        claims = TokenVerifier(api_key, api_secret).verify(body.token)
    except TokenVerificationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except (ConfigurationError, KeyDerivationError) as e:
        logger.error(f"Token verification misconfigured: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return claims.model_dump(by_alias=True, exclude_none=True)


@router.get("/endpoint", response_model=EndpointResponse)
async def resolve_endpoint(
    request: Request,
    client_ip: Optional[str] = Query(default=None, description="Defaults to the caller's address"),
):
    """Pick the edge node endpoint for a client."""
    client_ip = client_ip or (request.client.host if request.client else None)

    try:
        resolver = request.app.state.resolver_factory()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))

    try:
        url = await resolver.resolve_endpoint(client_ip)
    except (NoAvailableNodeError, RegistryUnavailableError) as e:
        raise HTTPException(status_code=503, detail=str(e))
    finally:
        await resolver.close()

    return EndpointResponse(url=url, client_ip=client_ip)
