import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from core.celery import celery_app
from core.config import settings
from core.db import Base, build_session_factory, create_db_engine
from core.exceptions import register_exception_handlers
from core.logging_config import setup_logging
from routes.inventory import router as inventory_router
from routes.orders import router as orders_router
from routes.payments import router as payments_router
from routes.products import router as products_router
from routes.subscriptions import router as subscriptions_router
from routes.webhooks import router as webhooks_router
from services.rate_limit import create_redis_client
import models  # noqa: F401  registers tables on Base.metadata

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
    yield
    app.state.engine.dispose()


def create_app(database_url: str | None = None) -> FastAPI:
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    engine = create_db_engine(database_url or settings.DATABASE_URL, echo=settings.SQLALCHEMY_ECHO)
    app.state.engine = engine
    # Ensure tables exist (for dev/test; in prod use Alembic)
    Base.metadata.create_all(bind=engine)
    app.state.session_factory = build_session_factory(engine)
    app.state.redis = create_redis_client(settings.REDIS_URL, testing=settings.TESTING)

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        openapi_schema["components"]["securitySchemes"] = {
            "BearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
            }
        }
        openapi_schema["security"] = [{"BearerAuth": []}]
        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi

    register_exception_handlers(app)
    app.include_router(subscriptions_router)
    app.include_router(products_router)
    app.include_router(webhooks_router)
    app.include_router(inventory_router)
    app.include_router(orders_router)
    app.include_router(payments_router)

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": settings.APP_NAME}

    @app.get("/celery-health", tags=["health"])
    async def celery_health_check():
        """Check Celery worker status"""
        try:
            stats = celery_app.control.inspect(timeout=1.0).stats()
        except Exception as exc:
            logger.warning("celery inspect failed: %s", exc)
            return {"status": "unhealthy", "error": str(exc)}
        if stats:
            return {"status": "healthy", "workers": len(stats)}
        return {"status": "no_workers", "message": "No Celery workers running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.DEBUG,
    )
