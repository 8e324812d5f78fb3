"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models.responses import ErrorCodes, ErrorResponse
from api.routes import health_router, post_call_router, reports_router
from core.config import API_DEBUG, API_VERSION, get_settings
from core.database import ensure_schema
from core.logging import RequestIDMiddleware, init_logging
from services.context import AppContext, build_context

logger = logging.getLogger(__name__)


def create_app(context: AppContext | None = None) -> FastAPI:
    """
    Build the API application.

    A prebuilt context (tests, scripts) is used as given and left open;
    otherwise one is built from settings at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        owned = context is None
        app.state.context = context or build_context(get_settings())
        settings = app.state.context.settings
        await asyncio.to_thread(ensure_schema, settings.DB_PATH)
        logger.info(
            "Voice reports API started (adapter: %s, per-call strategy: %s)",
            settings.DATA_ADAPTER,
            settings.PER_CALL_STRATEGY,
        )

        yield

        if owned:
            await app.state.context.aclose()

    app = FastAPI(
        title="Voice Daily Reports API",
        description="Webhooks for voice-submitted daily reports and their call recordings",
        version=API_VERSION,
        debug=API_DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(RequestIDMiddleware)

    # CORS middleware (for development)
    if API_DEBUG:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Global exception handler for unexpected errors
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions with standard error format."""
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                code=ErrorCodes.INTERNAL_ERROR,
                details=[],
            ).model_dump(),
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(reports_router)
    app.include_router(post_call_router)

    return app


init_logging(get_settings().LOG_LEVEL)
app = create_app()


# Entry point for uvicorn
if __name__ == "__main__":
    import uvicorn

    from core.config import API_HOST, API_PORT

    uvicorn.run(
        "api.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=API_DEBUG,
    )
