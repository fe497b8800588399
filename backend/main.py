"""FastAPI control API for SceneFlow: queue editing, run control, scheduling and logs."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sceneflow import __version__
from sceneflow.config import get_settings
from sceneflow.logging_utils import configure_logging
from sceneflow.runtime import Runtime
from backend.auth import is_public, validate_token

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    data_dir: str
    running: bool


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """Build the app. ``runtime`` is created from the environment when not given."""
    settings = runtime.settings if runtime is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "runtime", None) is None:
            configure_logging(settings.sceneflow_log_level)
            app.state.runtime = Runtime(settings)
        # Scheduler wake-ups need the running loop
        app.state.runtime.scheduler.restore()
        try:
            yield
        finally:
            await app.state.runtime.close()

    app = FastAPI(
        title="SceneFlow API",
        description="Bulk scene submission and orchestration.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    # -----------------------------------------------------------------------
    # Authentication middleware: bearer token on /api/* when one is configured
    # -----------------------------------------------------------------------
    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        path = request.url.path
        expected = settings.sceneflow_api_token
        if request.method == "OPTIONS" or not expected or is_public(path) or not path.startswith("/api/"):
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if not auth_header.lower().startswith("bearer "):
            return Response(
                content='{"detail":"Authentication required"}',
                status_code=401,
                media_type="application/json",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not validate_token(auth_header.split(" ", 1)[1], expected):
            return Response(
                content='{"detail":"Invalid token"}',
                status_code=401,
                media_type="application/json",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return await call_next(request)

    # -----------------------------------------------------------------------
    # CORS: added LAST so it is the outermost middleware and 401 responses
    # carry CORS headers too.
    # -----------------------------------------------------------------------
    logger.info("CORS configured for origins: %s", settings.cors_origin_list)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    # -----------------------------------------------------------------------
    # Health & root
    # -----------------------------------------------------------------------
    @app.get("/health", response_model=HealthResponse)
    @app.get("/api/health", response_model=HealthResponse)
    async def health(request: Request):
        """Health check endpoint."""
        rt = request.app.state.runtime
        return HealthResponse(
            status="ok",
            data_dir=str(settings.data_dir),
            running=bool(rt and rt.session.running),
        )

    @app.get("/api/")
    async def root():
        """API root."""
        return {"message": "SceneFlow API", "version": __version__}

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    from backend.routes import jobs, logs, queue

    app.include_router(queue.router, prefix="/api", tags=["queue"])
    app.include_router(jobs.router, prefix="/api", tags=["jobs"])
    app.include_router(logs.router, prefix="/api", tags=["logs"])
    return app


app = create_app()
