"""Pytest bootstrap configuration.

Environment variables are set before test collection so module-level settings
objects pick them up on import.
"""
import os

os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("PAYMENT__GATEWAY__MERCHANT_ID", "env-merchant")
os.environ.setdefault("PAYMENT__GATEWAY__MERCHANT_KEY", "env-key")
os.environ.setdefault("PAYMENT__SPLIT__MARKETPLACE_MERCHANT_ID", "marketplace-1")

import pytest  # noqa: E402

from fakes import FakeGateway, RecordingLogger  # noqa: E402
from infrastructure.repositories.payment_store import (  # noqa: E402
    InMemoryAuthorizationStore,
    InMemoryPaymentStore,
)


@pytest.fixture
def logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def store() -> InMemoryPaymentStore:
    return InMemoryPaymentStore()


@pytest.fixture
def authorizations() -> InMemoryAuthorizationStore:
    return InMemoryAuthorizationStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
