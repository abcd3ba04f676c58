import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI
from sqlalchemy import text

from app.api.routes import health, search
from app.config import get_settings
from app.database import SessionLocal, engine
from app.models.base import Base
from app.services.context import SearchContext

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        db.execute(text("SELECT 1"))

    context = getattr(app.state, "search_context", None)
    if context is None:
        context = SearchContext.from_settings(settings)
        app.state.search_context = context
    logger.info(
        "Search ready: strategy=%s sources=%s threshold=%s",
        context.strategy.name.value,
        context.source_names,
        context.config.sufficiency_threshold,
    )

    sweeper = asyncio.create_task(context.sweep_cache_forever(settings.cache_sweep_seconds))
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await context.aclose()


def create_app(context: SearchContext | None = None) -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Home Archive Search",
        version="0.1.0",
        description="Catalog search with resilient external source fallback.",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.search_context = context

    app.include_router(health.router)
    app.include_router(search.router)

    @app.get("/meta")
    def meta() -> dict:
        settings = get_settings()
        return {
            "service": "home-archive-search",
            "version": "0.1.0",
            "search_strategy": settings.catalog_search_strategy.value,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


app = create_app()
