import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from src.core.errors import NotFoundError, PersistenceError, QuoteEngineError, ValidationError
from src.server.api import floorplan, quotes, system
from src.server.db.session import engine, init_db
from src.server.loaders.catalog_loader import seed_catalog_if_empty
from src.server.settings.config import configure_logging, settings
from src.services.staging_cache import StagingCache

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    PersistenceError: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Initialising database...")
    init_db()
    if settings.seed_catalog:
        with Session(engine) as session:
            seed_catalog_if_empty(session)
    app.state.staging_cache = StagingCache(
        ttl_seconds=settings.staging_ttl_seconds,
        max_entries=settings.staging_max_entries,
    )
    yield
    logger.info("Shutting down...")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuoteEngineError)
async def quote_engine_error_handler(request: Request, exc: QuoteEngineError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


# Routers
app.include_router(system.router)
app.include_router(floorplan.router)     # /floorplans/...
app.include_router(quotes.router)        # /quotes/..., versions, rollback, upgrade-grade
