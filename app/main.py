import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import events, health, ingestion
from app.config import settings
from app.observability.metrics import metrics
from app.services.events.errors import EventPipelineError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(
        "workforce_signal.startup",
        extra={
            "mode": settings.workforce_signal_mode,
            "storage": "database" if settings.database_url else "memory",
            "company_name_matching": settings.company_name_matching,
        },
    )
    yield
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Ingests company workforce events from news sources and corroborates them across sources.",
    lifespan=lifespan,
    debug=settings.debug,
)

if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log each request with its status and latency."""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
    metrics.timing("http.request.latency_ms", elapsed_ms, tags={"path": request.url.path})
    return response


@app.exception_handler(EventPipelineError)
async def pipeline_error_handler(request: Request, exc: EventPipelineError) -> JSONResponse:
    """Uncaught pipeline errors surface as the run-trigger failure shape."""
    logger.error("api.pipeline_error", extra={"path": request.url.path, "code": exc.code})
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(events.router, prefix="/api", tags=["events"])
app.include_router(ingestion.router, prefix="/api", tags=["ingestion"])


@app.get("/")
async def root():
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "mode": settings.workforce_signal_mode,
    }
