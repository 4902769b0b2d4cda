"""
FastAPI server for dtel.
"""

import logging
from typing import Callable, Optional

from fastapi import FastAPI
import uvicorn

from ..config import Config, get_config, set_config
from ..edge import EdgeResolver, build_resolver

logger = logging.getLogger(__name__)

ResolverFactory = Callable[[], EdgeResolver]


def create_app(
    config: Optional[Config] = None,
    resolver_factory: Optional[ResolverFactory] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Configuration to serve with (defaults to the global config)
        resolver_factory: Builds one resolver per request; defaults to
            wiring from config
    """
    from .. import __version__
    from .routes import router

    if config:
        set_config(config)
    config = get_config()

    app = FastAPI(
        title="dtel",
        description="Access tokens and edge node resolution",
        version=__version__,
    )
    app.state.config = config
    app.state.resolver_factory = resolver_factory or (lambda: build_resolver(config))

    app.include_router(router, prefix="/v1")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 7880,
    reload: bool = False
):
    """
    Run the server with uvicorn.

    With reload, uvicorn re-imports the app factory in a worker process,
    which builds its config from the config file and environment.
    """
    app = "dtel.api.server:create_app" if reload else create_app()
    logger.info(f"Serving dtel API on {host}:{port}")
    uvicorn.run(
        app,
        host=host,
        port=port,
        reload=reload,
        factory=reload,
        log_level="info"
    )
