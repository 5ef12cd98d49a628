"""Configuration for pytest."""

import base64
import json

import pytest


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


FAKE_JPEG = b"\xff\xd8\xff\xe0" + b"fake-jpeg-body-for-tests" + b"\xff\xd9"
DATA_URI = "data:image/jpeg;base64," + base64.b64encode(FAKE_JPEG).decode("ascii")


def make_payload_text(**overrides) -> str:
    """Build payload JSON text; ``None`` values drop the key."""
    payload = {
        "locationId": "loc-1",
        "lat": -33.86,
        "lng": 151.2,
        "images": [DATA_URI],
    }
    payload.update(overrides)
    return json.dumps({k: v for k, v in payload.items() if v is not None})


@pytest.fixture
def data_uri():
    """A valid base64 image data URI."""
    return DATA_URI


@pytest.fixture
def valid_payload_text():
    """Payload text that passes validation."""
    return make_payload_text()


@pytest.fixture
def memory_storage():
    """Empty in-memory key-value storage."""
    from hyperlocal_demo.modules.config_store import InMemoryStorage

    return InMemoryStorage()


@pytest.fixture
def config_store(memory_storage):
    """ConfigStore over in-memory storage."""
    from hyperlocal_demo.modules.config_store import ConfigStore

    return ConfigStore(memory_storage)


@pytest.fixture
def sample_frame():
    """A single captured frame."""
    from hyperlocal_demo.schemas import CapturedFrame

    return CapturedFrame(image_data=FAKE_JPEG)
