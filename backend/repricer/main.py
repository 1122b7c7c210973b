from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog

from repricer.api.buybox_routes import router as buybox_router
from repricer.api.repricing_routes import router as repricing_router
from repricer.core.config import settings
from repricer.core.errors import (
    InsufficientCreditsError,
    NotFoundError,
    RepricerError,
    UnsupportedMarketplaceError,
)
from repricer.core.logger import configure_logging
from repricer.jobs.scheduler import RepricingScheduler
from repricer.marketplaces.factory import AdapterFactory

configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Buy Box Repricer API",
    description="Buy Box monitoring and rule-driven repricing",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:8080",
        "http://127.0.0.1:8080",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(repricing_router)
app.include_router(buybox_router)


def _status_for(exc: RepricerError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, UnsupportedMarketplaceError):
        return 400
    if isinstance(exc, InsufficientCreditsError):
        return 403
    return 500


@app.exception_handler(RepricerError)
async def repricer_error_handler(request: Request, exc: RepricerError):
    status = _status_for(exc)
    if status >= 500:
        logger.error("api.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status, content={"success": False, "message": str(exc)})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.api_route("/health", methods=["GET", "HEAD"])
def health_check():
    try:
        from repricer.db.session import engine

        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))

        return {
            "status": "healthy",
            "service": "repricer-api",
            "database": "connected",
            "scheduler": getattr(app.state, "scheduler", None) is not None,
        }
    except Exception as e:
        return {
            "status": "degraded",
            "service": "repricer-api",
            "database": "disconnected",
            "error": str(e),
        }


@app.on_event("startup")
async def startup_event():
    app.state.adapters = AdapterFactory()
    if settings.REPRICING_SCHEDULER_ENABLED:
        scheduler = RepricingScheduler(adapters=app.state.adapters)
        scheduler.start()
        app.state.scheduler = scheduler


@app.on_event("shutdown")
async def shutdown_event():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        await scheduler.stop(wait=True)
        app.state.scheduler = None
    await app.state.adapters.aclose()
