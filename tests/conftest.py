"""
Shared test fixtures
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from app.analysis.schemas import AnalysisResult
from app.config import Settings
from app.database.init_db import DatabaseManager


@pytest.fixture
def test_settings():
    """Settings isolated from the environment"""
    return Settings(
        _env_file=None,
        openai_api_key="test-api-key",
        database_url="sqlite+aiosqlite:///:memory:",
        environment="testing"
    )


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database per test"""
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.init_database()
    yield manager
    await manager.close()


@pytest.fixture
def make_interaction():
    """Factory for interaction feed rows"""
    def _make(id, created_at, channel="sms", direction="inbound", content="", contact_point="+15551234567",
              customer_id=None):
        return SimpleNamespace(
            id=id,
            contact_point=contact_point,
            channel=channel,
            direction=direction,
            content=content,
            created_at=created_at,
            customer_id=customer_id
        )
    return _make


@pytest.fixture
def make_call():
    """Factory for call record rows"""
    def _make(id, created_at, summary=None, transcript=None, customer_phone="+15551234567",
              direction="inbound", duration_seconds=185):
        return SimpleNamespace(
            id=id,
            customer_phone=customer_phone,
            direction=direction,
            created_at=created_at,
            summary=summary,
            transcript=transcript,
            duration_seconds=duration_seconds
        )
    return _make


@pytest.fixture
def sample_analysis_data():
    """Provider answer in the camelCase shape the prompt asks for"""
    return {
        "rating": 8,
        "summary": "Customer called about brake noise on a 2019 Honda Civic and booked Tuesday.",
        "nextActions": ["Send intake form", "Confirm Tuesday appointment"],
        "tags": ["New Customer", "Brakes"],
        "customerInfo": {
            "firstName": "John",
            "lastName": "Doe",
            "vehicleYear": "2019",
            "vehicleMake": "Honda",
            "vehicleModel": "Civic",
            "serviceRequested": "Brake inspection",
            "confidence": "high"
        },
        "pipeline": {
            "status": "booked",
            "title": "Brake Job - 2019 Honda Civic",
            "dealValue": 450,
            "priority": "high",
            "confidence": 90
        }
    }


@pytest.fixture
def sample_analysis(sample_analysis_data):
    return AnalysisResult.model_validate(sample_analysis_data)


@pytest.fixture
def mock_analyzer(sample_analysis):
    """Analyzer double returning a fixed result"""
    analyzer = MagicMock()
    analyzer.analyze = AsyncMock(return_value=sample_analysis)
    return analyzer
