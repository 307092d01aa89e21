# backend/studio_booking/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI, Response

from .core.config import settings
from .database import get_db_pool_status, init_db
from .errors import register_error_handlers
from .routes import prometheus
from .routes.v1 import (
    bookings as bookings_v1,
    classes as classes_v1,
    comps as comps_v1,
    coupons as coupons_v1,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

API_TITLE = "Studio Booking API"
API_VERSION = "0.1.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info("Studio booking API starting up (environment=%s)", settings.environment)
    if settings.is_testing:
        logger.info("Running under pytest (test mode active)")
    else:
        init_db()
    yield
    logger.info("Studio booking API shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    register_error_handlers(app)

    # Route order matters: the studio-scoped routers share the /studios prefix
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(classes_v1.router, prefix="/studios")
    api_v1.include_router(coupons_v1.router, prefix="/studios")
    api_v1.include_router(comps_v1.router, prefix="/studios")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    app.include_router(api_v1)

    app.include_router(prometheus.router)

    @app.get("/health", include_in_schema=False)
    def health(response: Response) -> dict[str, object]:
        response.headers["Cache-Control"] = "no-store"
        return {"status": "ok", "environment": settings.environment, "db": get_db_pool_status()}

    return app


app = create_app()
