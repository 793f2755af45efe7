"""Centralized test fixtures.

This module re-exports all fixtures from fixture modules so conftest.py can
pull them in with a single star import.
"""

from .cin7 import cin7_service, fake_cin7, unconfigured_cin7_service
from .client import admin_headers, client
from .database import db_session, session_factory, test_engine
from .mocks import avoid_external_requests, metrics, reset_rate_limits
from .payments import make_idempotency_key, make_posting, make_webhook_event, test_payment_link
from .stripe_events import stripe_service

__all__ = [
    "test_engine",
    "session_factory",
    "db_session",
    "client",
    "admin_headers",
    "avoid_external_requests",
    "reset_rate_limits",
    "metrics",
    "fake_cin7",
    "cin7_service",
    "unconfigured_cin7_service",
    "stripe_service",
    "test_payment_link",
    "make_posting",
    "make_webhook_event",
    "make_idempotency_key",
]
