# backend/labedu/main.py
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .database import Database, database_from_env, get_read_db
from .errors import ServiceError, service_error_handler, translate_db_error

from .apps.content.client import GenerativeContentClient
from .apps.content.router import router as content_router
from .apps.diagnostics import services as diagnostics_services
from .apps.diagnostics.router import router as diagnostics_router
from .apps.diagnostics.schemas import ConnectionStatus
from .apps.organization.router import router as organization_router
from .apps.training.router import router as training_router

logger = logging.getLogger(__name__)


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://localhost:4173",
    ]


async def _store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    return await service_error_handler(request, translate_db_error(exc))


def create_app(
    *,
    database: Optional[Database] = None,
    content_client: Optional[GenerativeContentClient] = None,
) -> FastAPI:
    """
    Composition root. Engines and HTTP clients are built when the app starts
    and released when it stops; pass them in to override (tests, scripts).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.database = database or database_from_env()
        app.state.content_client = content_client or GenerativeContentClient.from_env()
        if app.state.content_client is None:
            logger.warning("GENAI_API_KEY is not set; content generation is disabled")
        try:
            yield
        finally:
            if app.state.content_client is not None:
                app.state.content_client.close()
            app.state.database.dispose()

    app = FastAPI(title="LabEdu API", version="1.0.0", lifespan=lifespan)
    cors_origins = _allowed_origins()
    allow_credentials = "*" not in cors_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(SQLAlchemyError, _store_error_handler)

    @app.get("/", tags=["health"])
    def read_root():
        return {"status": "ok", "message": "LabEdu backend is running"}

    @app.get("/health", tags=["health"])
    def health():
        return {"status": "ok"}

    @app.get("/health/ready", tags=["health"])
    def readiness(db: Session = Depends(get_read_db)):
        result = diagnostics_services.check_connection(db)
        status_code = 200 if result.status == ConnectionStatus.HEALTHY else 503
        return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))

    app.include_router(organization_router)
    app.include_router(training_router)
    app.include_router(content_router)
    app.include_router(diagnostics_router)
    return app


app = create_app()
