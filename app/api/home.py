"""
Home/Root API endpoints
"""

from fastapi import APIRouter

from app.core.config import config

router = APIRouter()


@router.get("/")
async def root():
    """Service information"""
    return {
        "service": config.service_name,
        "version": config.service_version,
        "environment": config.environment,
        "message": "Tool Catalog Service is running",
        "status": "operational"
    }


@router.get("/version")
def get_version():
    return {"version": config.service_version}
