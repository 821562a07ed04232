"""Shared test fixtures."""

from decimal import Decimal

import pytest

from paylink.common.cache import MemoryCache
from paylink.common.db import Base, make_engine, make_session_factory
from paylink.services.identity.models import User  # noqa: F401  registers the users table
from paylink.services.payments.auth import TokenValidationGateway, TokenVerdict
from paylink.services.payments.repository import PaymentRepository
from paylink.services.payments.schemas import PaymentCreateRequest
from paylink.services.payments.service import PaymentLifecycleCoordinator
from tests.fakes import ALICE, FakeClock, FakeValidator


@pytest.fixture
def session_factory():
    """Fresh in-memory database per test."""
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCache(clock=clock)


@pytest.fixture
def repository(session_factory):
    return PaymentRepository(session_factory)


@pytest.fixture
def coordinator(repository, cache):
    return PaymentLifecycleCoordinator(repository, cache, idempotency_ttl_seconds=86400)


@pytest.fixture
def valid_validator():
    return FakeValidator(TokenVerdict(valid=True, user=ALICE))


@pytest.fixture
def gateway(cache, valid_validator):
    return TokenValidationGateway(cache, valid_validator, ttl_seconds=300)


@pytest.fixture
def payment_spec():
    return PaymentCreateRequest(
        amount=Decimal("10000"),
        currency="KES",
        payment_method="MOBILE_MONEY",
        customer_phone="+254700000000",
        customer_email="customer@example.com",
    )
