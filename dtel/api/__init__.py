"""
API server for dtel.

Provides REST endpoints for:
- Token issuing and verification
- Edge endpoint resolution
"""

from .server import create_app, run_server
from .routes import router

__all__ = [
    "create_app",
    "run_server",
    "router",
]
