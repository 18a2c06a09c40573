"""
Placement Drive Platform - Main Application

FastAPI backend with:
- PostgreSQL for drives, rosters, applications and timelines
- MongoDB for notifications and per-department drive chat groups
- JWT authentication (tokens issued by the portal's login service)

Run: uvicorn app.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.exceptions import PlacementError
from app.db.mongodb import init_mongo_indexes, test_mongo_connection
from app.db.postgres import init_postgres_schema, test_postgres_connection

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Placement Drive Platform",
    description="""
    Campus placement drives, eligibility and application tracking.

    ## Features
    - **Drives**: Companies and TPOs publish drives with eligibility rules
    - **Eligibility**: Every failed rule is reported, not just the first
    - **Applications**: Status lifecycle with a fixed interview timeline
    - **Notifications**: Fan-out to students and staff on drive and application events
    - **Chat**: One group per drive and department, joined on apply
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.exception_handler(PlacementError)
async def placement_error_handler(request: Request, exc: PlacementError):
    if exc.status_code >= 500:
        logger.error("Unhandled placement error on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Startup event
@app.on_event("startup")
async def startup_event():
    """Create tables and MongoDB indexes on startup."""
    try:
        init_postgres_schema()
        logger.info("PostgreSQL schema ready")
    except Exception as e:
        logger.warning("PostgreSQL schema initialization failed: %s", e)

    try:
        init_mongo_indexes()
        logger.info("MongoDB indexes initialized")
    except Exception as e:
        logger.warning("MongoDB index initialization failed: %s", e)


@app.get("/", tags=["Health"])
async def root():
    return {"status": "healthy", "app": "Placement Drive Platform"}


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "postgres": "connected" if test_postgres_connection() else "disconnected",
        "mongodb": "connected" if test_mongo_connection() else "disconnected"
    }
