# nexus_agent/main.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time
import uuid

from nexus_agent import config
from nexus_agent.api.routes import database, router, start_stores, stop_stores
from nexus_agent.observability.logger import setup_logging, get_logger
from nexus_agent.observability.metrics import metrics_tracker
from nexus_agent.observability.posthog_client import posthog_client

# Initialize logging FIRST
setup_logging(log_level=config.LOG_LEVEL)
logger = get_logger(__name__)

VERSION = "1.0.0"

# Initialize FastAPI app
app = FastAPI(
    title="Nexus Agent API",
    description="Knowledge-base assistant that drafts support replies with rotating Gemini keys",
    version=VERSION,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every HTTP request with latency, record request metrics and
    register the request id in PostHog.
    """

    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    posthog_client.identify_user(
        distinct_id=request_id,
        properties={
            "entry_point": request.url.path,
            "method": request.method,
        },
    )

    logger.info(
        "request_started",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None
        }
    )

    start_time = time.time()

    try:

        response = await call_next(request)

    except Exception as e:

        latency = time.time() - start_time

        metrics_tracker.record_failure()

        logger.error(
            "request_failed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "latency_seconds": round(latency, 3),
                "error": str(e),
                "error_type": type(e).__name__
            },
            exc_info=True
        )

        raise

    latency = time.time() - start_time

    if response.status_code >= 500:
        metrics_tracker.record_failure()
    else:
        metrics_tracker.record_success(latency)

    logger.info(
        "request_completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_seconds": round(latency, 3)
        }
    )

    return response


# Include API routes
app.include_router(router)


@app.on_event("startup")
async def startup_event():

    start_stores()

    logger.info(
        "application_startup",
        extra={"version": VERSION, "database_backend": database.backend_name},
    )

    if database.backend_name == "memory":

        logger.warning(
            "volatile_storage",
            extra={
                "warning_detail":
                "FIREBASE_DATABASE_URL not set. Memories, settings and keys live in process memory."
            }
        )


@app.on_event("shutdown")
async def shutdown_event():

    stop_stores()

    logger.info("application_shutdown")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):

    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "unhandled_exception",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "error": str(exc),
            "error_type": type(exc).__name__
        },
        exc_info=True
    )

    posthog_client.track_error(
        distinct_id=request_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
        endpoint=request.url.path,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An internal error occurred. Please try again.",
            "request_id": request_id,
            "error_type": type(exc).__name__
        }
    )


@app.get("/")
async def root():

    return {
        "message": "Nexus Agent API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics"
    }
