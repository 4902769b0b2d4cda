"""
dtel - access tokens and edge node resolution

Mints and verifies signed grant tokens for real-time sessions, and picks
the edge node a client should connect to.

Example:
    >>> from dtel import AccessToken, VideoGrant
    >>> token = AccessToken(api_key, api_secret, identity="alice")
    >>> token.add_grant(VideoGrant(room_join=True, room="standup"))
    >>> jwt = token.to_jwt()
"""

__version__ = "1.0.0"

from .config import Config, get_config
from .auth import AccessToken, AccessTokenOptions, ClaimGrants, TokenVerifier, VideoGrant
from .edge import EdgeResolver, NodeDirectory, build_resolver

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "AccessToken",
    "AccessTokenOptions",
    "ClaimGrants",
    "TokenVerifier",
    "VideoGrant",
    "EdgeResolver",
    "NodeDirectory",
    "build_resolver",
]
