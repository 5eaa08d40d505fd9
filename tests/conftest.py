"""Shared test configuration and fixtures."""

import base64
import json
from typing import Any, Dict, List, Optional, Union

import pytest

from mixpanel_analytics.storage import InMemoryStorage
from mixpanel_analytics.transport import TransportResponse
from mixpanel_analytics.types import TrackEvent

# =============================================================================
# Environment Reset
# =============================================================================


@pytest.fixture(autouse=True)
def reset_env(monkeypatch):
    """Clear environment variables before each test."""
    for var in (
        "MIXPANEL_TOKEN",
        "MIXPANEL_ANALYTICS_CONFIG",
        "MIXPANEL_ANALYTICS_BASE_URL",
        "MIXPANEL_ANALYTICS_VERBOSE",
        "MIXPANEL_ANALYTICS_UPLOAD_INTERVAL",
        "MIXPANEL_ANALYTICS_ANONYMIZE",
        "MIXPANEL_ANALYTICS_STORAGE_PATH",
        "MIXPANEL_ANALYTICS_TIMEOUT",
        "MIXPANEL_ANALYTICS_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


# =============================================================================
# Fakes
# =============================================================================

Outcome = Union[TransportResponse, Exception]

OK = TransportResponse(status_code=200, body="1")
API_FAILURE = TransportResponse(status_code=200, body="0")
SERVER_ERROR = TransportResponse(status_code=500, body="")


class FakeTransport:
    """Records requests and answers them from a scripted list of outcomes.

    Once the script is exhausted every request gets ``default``.
    """

    def __init__(self, outcomes: Optional[List[Outcome]] = None, default: Outcome = OK):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.requests: List[Dict[str, Any]] = []

    def _next(self) -> TransportResponse:
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def get(self, url, headers):
        self.requests.append({"method": "GET", "url": url, "headers": dict(headers)})
        return self._next()

    async def post(self, url, headers, data):
        self.requests.append({"method": "POST", "url": url, "headers": dict(headers), "data": dict(data)})
        return self._next()


class FailingStorage(InMemoryStorage):
    """Storage whose writes raise."""

    async def set_string(self, key, value):
        raise OSError("disk full")


def decode_data(data: str) -> Any:
    """Inverse of the wire encoding: base64 of UTF-8 JSON."""
    return json.loads(base64.b64decode(data).decode("utf-8"))


def make_track_events(count: int, start: int = 0) -> List[TrackEvent]:
    return [
        TrackEvent(
            name=f"event-{i}",
            properties={"n": i},
            timestamp_ms=1_700_000_000_000 + i,
            distinct_id="u1",
            token="test-token",
        )
        for i in range(start, start + count)
    ]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def errors():
    """Collects everything sent to the on_error callback."""
    return []
