"""Pytest bootstrap configuration.

Pin environment-driven settings before application modules are imported.
"""
import os

os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("TRUST_PROXY_HEADERS", "false")
os.environ.setdefault("PAYPAL__WEBHOOK_ID", "WH-TEST")

import pytest

from tests.fakes import FakeOrdersClient, InMemoryReservationStore, StubVerifier


@pytest.fixture
def store():
    return InMemoryReservationStore()


@pytest.fixture
def orders():
    return FakeOrdersClient()


@pytest.fixture
def verifier():
    return StubVerifier()
