import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.core.config import settings
from app.core.error_handlers import register_error_handlers
from app.core.middleware import MultipartBodyLimitMiddleware, SecurityHeadersMiddleware
from app.core.observability import setup_logging
from app.db.bootstrap import bootstrap_database
from app.db.session import engine
from app.routers import auth, health, recipes, users

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(application: FastAPI):
    setup_logging(settings.log_level, settings.log_format)
    await bootstrap_database(engine, resync=settings.resync_counters_on_startup)
    logger.info("RecipeShare API started")
    yield
    await engine.dispose()
    logger.info("RecipeShare API stopped")


def create_app() -> FastAPI:
    application = FastAPI(title="RecipeShare API", lifespan=lifespan)

    # Последний добавленный middleware выполняется первым.
    application.add_middleware(MultipartBodyLimitMiddleware)
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(application)

    application.include_router(health.router, prefix=API_PREFIX)
    application.include_router(auth.router, prefix=API_PREFIX)
    application.include_router(users.router, prefix=API_PREFIX)
    application.include_router(recipes.router, prefix=API_PREFIX)

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    application.mount("/uploads", StaticFiles(directory=str(settings.upload_dir)), name="uploads")
    return application


app = create_app()
