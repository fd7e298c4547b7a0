"""FastAPI application."""
from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth import get_current_user
from .config import settings
from .database import Base, SessionLocal, engine
from .domain_errors import DomainError
from .problem_details import domain_error_handler, store_error_handler
from .routers import (
    jig_masters,
    jig_requests,
    master_data,
    notifications,
    production_requests,
    production_schedules,
    quality_inspections,
    sample_requests,
    shortage_requests,
    users,
)
from .services.notifier import Notifier
from .services.workspace import Workspace
from .store import DocumentStore, StoreError

logger = logging.getLogger(__name__)


def _default_store() -> DocumentStore:
    if settings.AUTO_CREATE_SCHEMA:
        Base.metadata.create_all(bind=engine)
    return DocumentStore(
        SessionLocal,
        max_attempts=settings.STORE_TRANSACTION_MAX_ATTEMPTS,
        backoff_seconds=settings.STORE_TRANSACTION_BACKOFF_SECONDS,
    )


def _default_notifier(store: DocumentStore) -> Notifier:
    from .celery_app import enqueue_fan_out

    return Notifier(store, dispatch=enqueue_fan_out)


def create_app(store: DocumentStore | None = None, notifier: Notifier | None = None) -> FastAPI:
    # Production safety checks (explicit frontend origins required).
    if settings.ENV.lower() == "production" and not settings.cors_origins:
        raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
    if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
        raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")
    if settings.ENV.lower() == "production" and settings.JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.workspace.open()
        try:
            yield
        finally:
            app.state.workspace.close()

    app = FastAPI(
        title="TMS Factory Operations",
        version="1.0.0",
        description="Backend API for jig, sample, production, shortage and quality tracking",
        lifespan=lifespan,
    )

    app.state.store = store or _default_store()
    app.state.notifier = notifier or _default_notifier(app.state.store)
    app.state.workspace = Workspace(app.state.store)

    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(StoreError, store_error_handler)

    cors_headers = ["Authorization", "Content-Type"]
    if settings.ENV.lower() != "production":
        cors_headers = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=cors_headers,
    )

    for module in (
        jig_requests,
        sample_requests,
        production_requests,
        quality_inspections,
        shortage_requests,
        jig_masters,
        production_schedules,
        notifications,
        master_data,
        users,
    ):
        app.include_router(module.router, prefix="/api/v1")

    @app.get("/api/v1/system/health")
    def health_check():
        """Health check endpoint."""
        workspace = app.state.workspace
        return {
            "status": "ok",
            "version": "1.0.0",
            "workspace": "open" if workspace.is_open else "closed",
        }

    @app.get("/api/v1/system/notices", dependencies=[Depends(get_current_user)])
    def recent_notices():
        """User-visible outcome messages of recent mutations, oldest first."""
        return [
            {"message": n.message, "level": n.level, "createdAt": n.created_at.isoformat()}
            for n in app.state.workspace.notices()
        ]

    return app


app = create_app()
