"""
Main FastAPI application entry point.
Configures the application, middleware, and routes.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from nursecred.api.routes import auth, credentials, exams, files, health, questions, users
from nursecred.core.config import settings
from nursecred.core.exceptions import AppError, register_exception_handlers
from nursecred.core.logging import get_logger, setup_logging
from nursecred.core.roles import UserRole
from nursecred.db.session import engine, init_db
from nursecred.services.user_service import UserService

# Setup logging
setup_logging()
logger = get_logger(__name__)


def bootstrap_admin() -> None:
    """Create the first administrator unless an active account already has its username."""
    with Session(engine) as session:
        if UserService.get_by_username(session, settings.FIRST_ADMIN_USERNAME):
            return

        logger.info("Creating first administrator...")
        try:
            admin = UserService.create(
                session,
                {
                    "username": settings.FIRST_ADMIN_USERNAME,
                    "email": settings.FIRST_ADMIN_EMAIL,
                    "password": settings.FIRST_ADMIN_PASSWORD,
                    "full_name": "Administrator",
                },
                role=UserRole.ADMIN,
            )
        except AppError as e:
            logger.error(f"Failed to create first administrator: {e.message}")
            logger.warning("Continuing without an administrator account.")
            return
        logger.info(f"Administrator created: {admin.username}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.
    Runs startup and shutdown logic.
    """
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")

    logger.info("Creating database tables...")
    init_db()

    if not settings.DISABLE_BOOTSTRAP_USERS:
        bootstrap_admin()
    else:
        logger.info("User bootstrapping disabled (DISABLE_BOOTSTRAP_USERS=true)")

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url=f"{settings.API_PREFIX}/docs",
    redoc_url=f"{settings.API_PREFIX}/redoc",
    lifespan=lifespan,
)

# Cookies carry the session, so origins must be listed explicitly
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["authorization", "content-type", "accept"],
    )

register_exception_handlers(app)

app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(auth.router, prefix=settings.API_PREFIX)
app.include_router(users.router, prefix=settings.API_PREFIX)
app.include_router(files.router, prefix=settings.API_PREFIX)
app.include_router(questions.router, prefix=settings.API_PREFIX)
app.include_router(exams.router, prefix=settings.API_PREFIX)
app.include_router(credentials.router, prefix=settings.API_PREFIX)
