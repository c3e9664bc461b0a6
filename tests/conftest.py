"""
Test Configuration and Fixtures
"""
import json

import pytest
from fastapi.testclient import TestClient

from mindmap_engine.ai_engine import MindmapSynthesizer
from mindmap_engine.api.v1.endpoints import mindmap as endpoints
from mindmap_engine.core.config import Settings
from mindmap_engine.main import app
from mindmap_engine.services.file_service import UploadedFile


PASSAGE = (
    "Photosynthesis is the process used by plants, algae and certain bacteria to "
    "harness energy from sunlight and turn it into chemical energy. "
    "There are two types of photosynthetic processes: oxygenic photosynthesis and "
    "anoxygenic photosynthesis. This process takes place in the chloroplasts, "
    "specifically using chlorophyll. "
) * 6


class FakeOracle:
    """Deterministic stand-in for the structuring oracle."""

    name = "Fake"

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def structure(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response)


@pytest.fixture
def passage():
    assert 1800 <= len(PASSAGE) <= 2200
    return PASSAGE


@pytest.fixture
def config():
    """Settings isolated from .env with a Gemini credential configured."""
    return Settings(_env_file=None, AI_PROVIDER="gemini", GOOGLE_API_KEY="test-key", GROQ_API_KEY=None)


@pytest.fixture
def config_without_key():
    return Settings(_env_file=None, AI_PROVIDER="gemini", GOOGLE_API_KEY=None, GROQ_API_KEY=None)


@pytest.fixture
def nested_payload():
    return {
        "title": "Photosynthesis",
        "root": {
            "id": "root",
            "text": "Photosynthesis",
            "level": 0,
            "children": [
                {
                    "id": "concept-1",
                    "text": "Types",
                    "description": "Two photosynthetic processes",
                    "level": 1,
                    "children": [
                        {"id": "sub-1-1", "text": "Oxygenic", "level": 2, "children": []},
                        {"id": "sub-1-2", "text": "Anoxygenic", "level": 2, "children": []},
                    ],
                },
                {
                    "id": "concept-2",
                    "text": "Location",
                    "level": 1,
                    "children": [
                        {"id": "sub-2-1", "text": "Chloroplasts", "level": 2, "children": []},
                    ],
                },
            ],
        },
    }


@pytest.fixture
def flat_nodes():
    return [
        {"id": "root", "text": "Photosynthesis", "level": 0},
        {"id": "concept-1", "text": "Types", "level": 1},
        {"id": "sub-1-1", "text": "Oxygenic", "level": 2},
        {"id": "detail-1-1-1", "text": "Releases oxygen", "level": 3},
        {"id": "sub-1-2", "text": "Anoxygenic", "level": 2},
        {"id": "concept-2", "text": "Location", "level": 1},
        {"id": "sub-2-1", "text": "Chloroplasts", "level": 2},
    ]


@pytest.fixture
def make_file():
    def _make(name, mime_type=None, content=b"", size_bytes=None):
        return UploadedFile(
            name=name,
            mime_type=mime_type,
            size_bytes=len(content) if size_bytes is None else size_bytes,
            content=content,
        )
    return _make


@pytest.fixture
def fake_oracle(nested_payload):
    return FakeOracle(response=nested_payload)


@pytest.fixture
def client(config, fake_oracle):
    """Test client wired to the fake oracle and isolated settings."""
    app.dependency_overrides[endpoints.get_settings] = lambda: config
    app.dependency_overrides[endpoints.get_synthesizer] = (
        lambda: MindmapSynthesizer(oracle=fake_oracle, config=config)
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def oracle_factory():
    return FakeOracle
