"""
Shopwatch API - FastAPI Main Entry

✅ LOCAL:
    cd backend
    python -m uvicorn shopwatch.main:app --reload --host 0.0.0.0 --port 8000

✅ QUICK CHECKS:
    curl -i http://127.0.0.1:8000/health
    curl -i "http://127.0.0.1:8000/v1/offers/search?q=airpods&strategy=BEST_PRICE"
    curl -i -X POST http://127.0.0.1:8000/v1/simulate/price-tick

✅ LIVE OFFERS:
    Set SERPAPI_API_KEY (and keep ENABLE_WEB_SEARCH_OFFERS=true).
    Without a key every product still gets fallback offers.

✅ BACKGROUND TICKS:
    PRICE_TICK_INTERVAL_SECONDS=60 runs the drift/alert tick every minute.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# ✅ Routers
from shopwatch.api.routes_meta import router as meta_router
from shopwatch.api.routes_notifications import router as notifications_router
from shopwatch.api.routes_offers import router as offers_router
from shopwatch.api.routes_watchlist import router as watchlist_router
from shopwatch.core.config import Settings, settings as default_settings
from shopwatch.core.database import AsyncSessionLocal, engine, init_db
from shopwatch.core.logging_config import setup_logging
from shopwatch.core.scheduler import setup_scheduler
from shopwatch.core.serpapi import SerpApiClient
from shopwatch.services.providers import OfferProviders

logger = logging.getLogger(__name__)


def create_app(
    config: Settings = default_settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    serpapi_client: Optional[SerpApiClient] = None,
    manage_database: bool = True,
) -> FastAPI:
    setup_logging(config.LOG_LEVEL)
    session_factory = session_factory or AsyncSessionLocal

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup - initialize database
        if manage_database:
            await init_db()

        scheduler = setup_scheduler(session_factory, config)
        if scheduler is not None:
            scheduler.start()

        yield

        # Shutdown
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        if manage_database:
            await engine.dispose()

    app = FastAPI(
        title="Shopwatch API",
        version=config.APP_VERSION,
        description="Ranked purchase offers per product, plus price-drop watching",
        lifespan=lifespan,
    )

    # Process-scoped provider state (response cache + call metrics)
    app.state.offer_providers = OfferProviders(serpapi_client or SerpApiClient(config=config), config)
    app.state.session_factory = session_factory
    app.state.config = config

    # ✅ CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ✅ Storage failures are server errors, always
    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "storage_unavailable", "message": str(exc)})

    # ✅ Root (GET /)
    @app.get("/")
    def root():
        return {
            "name": "Shopwatch API",
            "status": "ok",
            "docs": "/docs",
            "health": "/health",
            "version": "/version",
        }

    # ✅ Health Check (GET /health)
    @app.get("/health")
    def health():
        return {"ok": True}

    # ✅ Version endpoint (GET /version)
    @app.get("/version")
    def version():
        return {"version": config.APP_VERSION, "build": config.BUILD_ID}

    # ✅ Mount routers
    app.include_router(offers_router)
    app.include_router(watchlist_router)
    app.include_router(notifications_router)
    app.include_router(meta_router)

    return app


app = create_app()
