"""Shared test fixtures"""
import os

# No span export from the test run
os.environ.setdefault("ENABLE_TRACING", "false")

import pytest
from unittest.mock import AsyncMock
from datetime import datetime, timezone
from bson import ObjectId

from app.models.tool import Tool
from app.models.user import User
from tests.fixtures.fakes import InMemoryDownloadLog, InMemoryReviewStore, InMemoryToolRepository


@pytest.fixture
def mock_collection():
    """Mock MongoDB collection for testing"""
    collection = AsyncMock()
    return collection


@pytest.fixture
def tool_id():
    """Sample tool ID for testing"""
    return "507f1f77bcf86cd799439011"


@pytest.fixture
def tool_doc(tool_id):
    """Tool document as stored in MongoDB"""
    return {
        "_id": ObjectId(tool_id),
        "slug": "family-sharing-manager",
        "title": "Family Sharing Manager",
        "short_description": "Manage Steam family sharing",
        "full_description": "<p>Long description</p>",
        "tags": ["steam", "family"],
        "images": ["https://img.example.com/1.png"],
        "version": "2.1.0",
        "download_url": "https://dl.example.com/fsm.zip",
        "mirror_url": "https://mirror.example.com/fsm.zip",
        "downloads": 10,
        "visible": True,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }


@pytest.fixture
def sample_tool(tool_doc, tool_id):
    doc = dict(tool_doc)
    doc.pop("_id")
    return Tool(id=tool_id, **doc)


@pytest.fixture
def acting_user():
    return User(id="user-a", email="a@example.com", display_name="Alice")


@pytest.fixture
def review_store():
    return InMemoryReviewStore()


@pytest.fixture
def tool_repository(sample_tool):
    return InMemoryToolRepository([sample_tool])


@pytest.fixture
def download_log():
    return InMemoryDownloadLog()


@pytest.fixture(autouse=True)
def _isolate_correlation_id():
    """Keep correlation ids set by one test from leaking into the next"""
    from app.middleware.correlation_id import correlation_id_ctx

    token = correlation_id_ctx.set(None)
    yield
    correlation_id_ctx.reset(token)
