"""
Health and operational API endpoints
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from app.core.config import config
from app.core.logger import logger
from app.db.mongodb import db

router = APIRouter()

# Track service start time
start_time = time.time()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": config.service_name,
        "timestamp": _now(),
        "version": config.api_version,
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness probe - the store must answer a ping"""
    database = await check_database_health()
    coordinator = getattr(request.app.state, "read_coordinator", None)
    body = {
        "service": config.service_name,
        "timestamp": _now(),
        "checks": [database],
        "observed_tools": len(coordinator.observed_tools) if coordinator else 0,
    }

    if database["status"] != "healthy":
        logger.warning(
            "Readiness check failed",
            metadata={"event": "readiness_check_failed", "error": database.get("error")}
        )
        return JSONResponse(status_code=503, content={"status": "not ready", **body})
    return {"status": "ready", **body}


@router.get("/health/live")
def liveness_check():
    """Liveness probe - check if the app is running"""
    return {
        "status": "alive",
        "service": config.service_name,
        "timestamp": _now(),
        "uptime": round(time.time() - start_time, 2),
    }


async def check_database_health() -> Dict[str, Any]:
    """Ping MongoDB and report the round-trip time"""
    check_start = time.time()

    if db.client is None:
        return {"name": "database", "status": "unhealthy", "error": "not connected", "timestamp": _now()}

    try:
        await db.client.admin.command("ping")
    except PyMongoError as e:
        logger.error(
            f"Database health check failed: {e}",
            metadata={"event": "health_check_database_failed", "error": str(e)}
        )
        return {
            "name": "database",
            "status": "unhealthy",
            "error": str(e),
            "response_time_ms": round((time.time() - check_start) * 1000, 2),
            "timestamp": _now(),
        }

    return {
        "name": "database",
        "status": "healthy",
        "database": config.mongodb_database,
        "response_time_ms": round((time.time() - check_start) * 1000, 2),
        "timestamp": _now(),
    }
