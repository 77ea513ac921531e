"""FastAPI application entry point for the connector host."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from idconnect import __version__
from idconnect.contract.base import Connector
from idconnect.host import ConnectorHost
from idconnect.sample.connector import DirectoryConnector
from idconnect.settings import settings
from idconnect.util.logging import setup_logging


def create_app(connector: Connector | None = None) -> FastAPI:
    """Build the application around ``connector`` (the sample directory by default).

    A default sample connector gets its schema provisioned first; a
    connector passed in is expected to be provisioned already.
    The host is created on startup and unloaded on shutdown, which closes
    pooled sessions and runs the connector's unload hook.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        target = connector
        if target is None:
            target = DirectoryConnector()
            target.init_schema({})
        host = ConnectorHost(target)
        app.state.host = host
        try:
            yield
        finally:
            host.close()

    app = FastAPI(
        title="idconnect - Connector Host",
        description="Drives identity-management connectors through the two-phase connector contract.",
        version=__version__,
        lifespan=lifespan,
    )

    # -- Routers --------------------------------------------------------------

    from idconnect.api.routes import router as connector_router

    app.include_router(connector_router)

    # -- Health check ---------------------------------------------------------

    @app.get("/health", tags=["health"])
    def health_check() -> dict:
        """Simple liveness check."""
        return {"status": "healthy"}

    return app


def run() -> None:
    """Entry point for the ``idconnect`` console script."""
    import uvicorn

    setup_logging()
    uvicorn.run(create_app(), host=settings.API_HOST, port=settings.API_PORT)
