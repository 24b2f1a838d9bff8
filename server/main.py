"""
Common Ground API Server

FastAPI application for survey scoring, pairwise alignment and groups.
Routes, the domain service and the store are organized into focused modules.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from commonground.service import CommonGroundService
from config import config, get_logger
from database.db import Database
from server.middleware.logging import log_requests
from server.middleware.metrics import metrics_middleware
from server.middleware.request_id import RequestIDMiddleware
from server.routes import common_ground, groups, monitoring
from userland.auth import init_jwt, is_initialized

logger = get_logger(__name__)


# Lifespan context manager for store initialization
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the store and service; close the store on shutdown"""
    db = await Database.from_config()
    logger.info("initialized store", backend=config.STORE)

    # Store in app state
    app.state.db = db
    app.state.service = CommonGroundService.from_config(db)

    yield

    try:
        await db.close()
    except Exception as e:
        # Don't crash on shutdown - log and continue
        logger.error("error closing store", error=str(e), exc_info=True)


# Initialize FastAPI app with lifespan
app = FastAPI(title="Common Ground API", description="Survey alignment and groups", lifespan=lifespan)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

# Request ID middleware (must be early in stack for tracing)
app.add_middleware(RequestIDMiddleware)

# Initialize JWT for authentication
jwt_secret = config.get_jwt_secret()
if not jwt_secret:
    logger.warning("COMMONGROUND_JWT_SECRET not set. Authenticated endpoints will return 401.")
elif not is_initialized():
    init_jwt(jwt_secret)
    logger.info("JWT authentication initialized")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and parameters are 400 with one generic message"""
    logger.info("invalid request", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request body."},
    )


# Register middleware (execution order: metrics -> logging)
# FastAPI middleware stack: last registered runs first, so register in reverse order
@app.middleware("http")
async def log_requests_middleware(request, call_next):
    return await log_requests(request, call_next)


@app.middleware("http")
async def metrics_middleware_wrapper(request, call_next):
    return await metrics_middleware(request, call_next)


# Mount routers
app.include_router(monitoring.router)     # Root, health and metrics
app.include_router(common_ground.router)  # Scoring and pairwise
app.include_router(groups.router)         # Groups


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting Common Ground API server...")
    logger.info("configuration", config_summary=config.summary())

    uvicorn.run(
        app,
        host=config.API_HOST,
        port=config.API_PORT,
        access_log=False,  # Disable default uvicorn logs (we have custom middleware logging)
    )
