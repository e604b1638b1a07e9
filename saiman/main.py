"""Local FastAPI application serving the desktop window."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from saiman import __version__
from saiman.api.endpoints import router
from saiman.config import Settings
from saiman.services.container import Services, build_services
from saiman.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)


def create_app(services: Services | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the application; services are built from settings at start-up unless given."""
    if services is not None:
        settings = services.settings
    elif settings is None:
        settings = Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        if owned:
            setup_logging(LogConfig(level=settings.log_level, log_dir=settings.logs_dir))
            app.state.services = build_services(settings)
        else:
            app.state.services = services
        try:
            yield
        finally:
            if owned:
                app.state.services.close()

    app = FastAPI(
        title="Saiman",
        description="Local API for the Saiman research assistant: conversations, cancellation and usage.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "Conversation",
                "description": "Send messages, cancel in-flight requests, browse and delete conversations.",
            },
            {
                "name": "Health",
                "description": "Service health and token usage.",
            },
        ],
    )

    # Only the configured front-end origins may call the API from a browser
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type"],
    )

    app.include_router(router)
    return app


def serve() -> None:
    """Run the API with uvicorn on the configured host and port."""
    import uvicorn

    settings = Settings()
    uvicorn.run(create_app(settings=settings), host=settings.api_host, port=settings.api_port, log_level="info")


if __name__ == "__main__":
    serve()
