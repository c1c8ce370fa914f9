"""
FastAPI Application - Tool Catalog Service
"""

# Load environment variables from .env file FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.config import config
from app.core.errors import ErrorResponse, StoreError, error_response_handler, http_exception_handler
from app.core.logger import logger
from app.core.telemetry import instrument_app, shutdown_tracing
from app.db.mongodb import close_mongo_connection, connect_to_mongo, get_reviews_collection
from app.api import health, home, tools
from app.events.change_feed import MongoReviewChangeStream
from app.middleware import CorrelationIdMiddleware
from app.repositories.review import ReviewRepository
from app.services.download import DownloadCounterWatch
from app.services.read_coordinator import ReadCoordinator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting Tool Catalog Service...")
    try:
        await connect_to_mongo()
    except StoreError as e:
        logger.critical(
            f"Cannot start without MongoDB: {e.message}",
            metadata={"event": "startup_failed", "host": config.mongodb_host}
        )
        raise

    reviews = await get_reviews_collection()
    app.state.read_coordinator = ReadCoordinator(
        ReviewRepository(reviews),
        MongoReviewChangeStream(reviews),
    )
    app.state.download_counter_watch = DownloadCounterWatch()

    logger.info(
        "Tool Catalog Service started successfully",
        metadata={
            "service_name": config.service_name,
            "version": config.service_version,
            "environment": config.environment,
            "port": config.port
        }
    )

    yield

    logger.info("Shutting down Tool Catalog Service...")
    await app.state.read_coordinator.close()
    await close_mongo_connection()
    shutdown_tracing()


app = FastAPI(
    title="Tool Catalog Service",
    description="Community tool catalog with live review aggregates and download tracking",
    version=config.service_version,
    lifespan=lifespan
)

instrument_app(app)

app.add_middleware(CorrelationIdMiddleware)

app.add_exception_handler(ErrorResponse, error_response_handler)
app.add_exception_handler(HTTPException, http_exception_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(
        "Request validation error",
        metadata={"event": "request_validation_error", "errors": jsonable_encoder(exc.errors())}
    )
    return JSONResponse(
        status_code=422,
        content={"error": "Validation error", "details": jsonable_encoder(exc.errors())}
    )


app.include_router(home.router, tags=["home"])
app.include_router(health.router, tags=["health"])
app.include_router(tools.router, prefix="/api/tools", tags=["tools"])


if __name__ == "__main__":
    import uvicorn

    logger.info(
        f"Starting {config.service_name} on port {config.port}",
        metadata={
            "service_name": config.service_name,
            "version": config.service_version,
            "environment": config.environment,
            "port": config.port
        }
    )

    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.environment == "development"
    )
