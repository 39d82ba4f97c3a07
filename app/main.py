"""
FastAPI application for the unified inbox
Conversations, transcript analysis and provider webhooks
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog

from .config import get_settings
from .database.init_db import db_manager, init_database
from .tasks.queue import task_queue
from .web.routers.analysis import router as analysis_router
from .web.routers.inbox import router as inbox_router
from .web.routers.webhooks import router as webhooks_router

settings = get_settings()

logging.basicConfig(format="%(message)s", level=settings.log_level)

# Setup structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger("inbox.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    logger.info("Starting unified inbox", version="1.0.0", environment=settings.environment)

    try:
        await init_database()
        await task_queue.start()
        logger.info("Application startup completed")

        yield

    finally:
        logger.info("Shutting down application")
        await task_queue.stop()
        await db_manager.close()
        logger.info("Application shutdown completed")


# Create FastAPI app
app = FastAPI(
    title="Unified Inbox",
    description="Conversation reconciliation and AI call analysis",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(inbox_router)
app.include_router(analysis_router)
app.include_router(webhooks_router)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests"""
    start_time = datetime.utcnow()
    request_id = f"{int(start_time.timestamp())}-{id(request)}"

    logger.info(
        "Request started",
        request_id=request_id,
        method=request.method,
        path=request.url.path
    )

    response = await call_next(request)

    duration = (datetime.utcnow() - start_time).total_seconds()
    logger.info(
        "Request completed",
        request_id=request_id,
        status_code=response.status_code,
        duration_seconds=round(duration, 3)
    )
    return response


# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.status_code,
                "message": exc.detail,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": 500,
                "message": "Internal server error",
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


@app.get("/health")
async def health_check():
    """Database and task queue health"""
    try:
        async with db_manager.get_session() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": str(e),
                "timestamp": datetime.utcnow().isoformat()
            }
        )

    return {
        "status": "healthy",
        "environment": settings.environment,
        "queue": task_queue.get_stats(),
        "timestamp": datetime.utcnow().isoformat()
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
