"""Mock-related test fixtures."""

from typing import Any

import pytest
from pytest_mock import MockerFixture

from paysync.core.metrics import MetricsCollector


@pytest.fixture(autouse=True)
def avoid_external_requests(mocker: MockerFixture) -> None:
    """Block external HTTP requests during tests.

    Note: AsyncClient with ASGITransport or MockTransport doesn't make real
    HTTP requests, so we only block real network calls via HTTPTransport.
    """

    def fail(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("External HTTP communication disabled for tests")

    mocker.patch("httpx._transports.default.AsyncHTTPTransport.handle_async_request", new=fail)
    mocker.patch("httpx._transports.default.HTTPTransport.handle_request", new=fail)


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    """Clear in-memory rate limit counters between tests."""
    from paysync.core.rate_limit import limiter

    limiter.reset()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Fresh collector so counters start at zero in every test."""
    return MetricsCollector()
