"""
Shared test fixtures.

Sets up an isolated SQLite database so tests never touch the
real ledger, and replaces the payment provider and onboarding
service with in-memory fakes.
"""

import os

# Settings are read at import time.
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ONBOARDING_SERVICE_URL", "")
os.environ["STRIPE_SECRET_KEY"] = ""

import json
import threading

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from unlock_service.api.deps import get_gateway, get_onboarding_gate
from unlock_service.exceptions import (
    EntryNotFound,
    InvalidWebhook,
    PaymentGatewayUnavailable,
)
from unlock_service.main import app
from unlock_service.models.base import Base, get_db
from unlock_service.models.enums import (
    EntryKind,
    IntentStatus,
    OnboardingStage,
    TargetType,
)
from unlock_service.models.ledger_entry import LedgerEntry
from unlock_service.services.onboarding import OnboardingGate
from unlock_service.services.payment_gateway import (
    PaymentGateway,
    PaymentIntent,
    PriceBook,
    Refund,
    VerifiedIntent,
    WebhookEvent,
)


TEST_DATABASE_URL = "sqlite:///./test.db"

# timeout lets concurrent writers wait for SQLite's write lock
# instead of failing straight away.
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class FakeGateway(PaymentGateway):
    """
    In-memory stand-in for the payment provider.

    Intents are stored with their metadata. Tests move them
    between statuses with set_status(), or register a payment
    made outside create_intent() with add_payment().
    """

    WEBHOOK_SIGNATURE = "valid-signature"

    def __init__(self):
        super().__init__(
            PriceBook(
                project_visibility_price=4900,
                platform_investor_price=2900,
                directory_investor_price=1900,
                overrides={"investor:platform:VIP": 9900},
            ),
            currency="usd",
        )
        self.intents: dict[str, VerifiedIntent] = {}
        self.keys: dict[str, str] = {}
        self.refunds: list[str] = []
        self.verify_calls = 0
        self.unavailable = False
        self._lock = threading.Lock()

    def _create_provider_intent(self, amount, metadata, idempotency_key):
        with self._lock:
            intent_id = self.keys.get(idempotency_key)
            if intent_id is None:
                intent_id = f"pi_{len(self.intents) + 1}"
                self.keys[idempotency_key] = intent_id
                self.intents[intent_id] = VerifiedIntent(
                    intent_id, IntentStatus.PENDING, amount, dict(metadata)
                )
        return PaymentIntent(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret",
            amount=amount,
            currency=self.currency,
        )

    def add_payment(
        self,
        intent_id,
        subject_id,
        target_id,
        target_type,
        amount=2900,
        status=IntentStatus.SUCCEEDED,
        tag=None,
        score=None,
    ):
        metadata = {
            "subject_id": subject_id,
            "target_id": target_id,
            "target_type": target_type.value,
        }
        if tag:
            metadata["tag"] = tag
        if score is not None:
            metadata["score"] = str(score)
        self.intents[intent_id] = VerifiedIntent(
            intent_id, status, amount, metadata
        )

    def set_status(self, intent_id, status):
        intent = self.intents[intent_id]
        self.intents[intent_id] = VerifiedIntent(
            intent_id, status, intent.amount, intent.metadata
        )

    def verify_intent(self, intent_id):
        with self._lock:
            self.verify_calls += 1
        if self.unavailable:
            raise PaymentGatewayUnavailable("provider timed out")
        intent = self.intents.get(intent_id)
        if intent is None:
            return VerifiedIntent(intent_id, IntentStatus.FAILED, 0)
        return intent

    def refund(self, intent_id):
        if self.unavailable:
            raise PaymentGatewayUnavailable("provider timed out")
        if intent_id not in self.intents:
            raise EntryNotFound(intent_id)
        self.refunds.append(intent_id)
        return Refund(
            refund_id=f"re_{intent_id}",
            amount=self.intents[intent_id].amount,
            status="succeeded",
        )

    def parse_webhook(self, payload, signature):
        if signature != self.WEBHOOK_SIGNATURE:
            raise InvalidWebhook("Invalid webhook signature")
        event = json.loads(payload)
        obj = event["data"]["object"]
        return WebhookEvent(
            event_id=event["id"],
            event_type=event["type"],
            intent_id=obj.get("id"),
            metadata=obj.get("metadata", {}),
        )


class FakeOnboardingGate(OnboardingGate):
    """Every subject is active unless a test says otherwise."""

    def __init__(self):
        self.stages: dict[str, OnboardingStage] = {}

    def stage(self, subject_id):
        return self.stages.get(subject_id, OnboardingStage.ACTIVE)


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def add_entry(db_session):
    """
    Insert a committed UNLOCK entry with a fixed timestamp.

    Bypasses the engine so windowed reads can be tested
    against entries of any age.
    """
    def _add(reference, subject, target, created_at, score=None, tag=None,
             target_type=TargetType.PLATFORM_INVESTOR):
        entry = LedgerEntry(
            kind=EntryKind.UNLOCK,
            subject_id=subject,
            target_id=target,
            target_type=target_type,
            payment_reference=reference,
            amount=2900,
            currency="usd",
            tag=tag,
            score=score,
            grant_key=LedgerEntry.make_grant_key(subject, target, target_type),
            created_at=created_at,
        )
        db_session.add(entry)
        db_session.commit()
        return entry

    return _add


@pytest.fixture
def session_factory():
    """For tests that need one session per thread."""
    return TestSessionLocal


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def onboarding():
    return FakeOnboardingGate()


@pytest.fixture
def client(db_session, gateway, onboarding):
    """
    Provide a test client wired to the test database and fakes.

    The lifespan hook is not entered, so no provider
    credentials are needed.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_onboarding_gate] = lambda: onboarding
    yield TestClient(app)
    app.dependency_overrides.clear()
