import hashlib
import hmac
import json
import os
from datetime import UTC, datetime
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from billing_sync.application.handlers import build_default_dispatcher
from billing_sync.application.services.event_dispatcher import EventRoute
from billing_sync.application.services.signature_verifier import StripeSignatureVerifier
from billing_sync.application.services.webhook_reconciler import WebhookReconciler
from billing_sync.core.config import Settings
from billing_sync.domain import models  # noqa: F401
from billing_sync.domain.events import StripeEventEnvelope
from billing_sync.infrastructure.db.base import Base
from billing_sync.infrastructure.db.session import build_session_factory, instrument_engine
from billing_sync.interfaces.http.application import create_app

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "")
WEBHOOK_SECRET = "whsec_test"
TENANT_ID = "tenant_a"


@pytest.fixture
def db_engine():
    if TEST_DATABASE_URL:
        engine = create_engine(TEST_DATABASE_URL, pool_pre_ping=True)
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as exc:
            pytest.skip(f"Database unavailable: {exc}")
    else:
        engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    instrument_engine(engine)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def dispatcher():
    return build_default_dispatcher()


@pytest.fixture
def swap_handler(dispatcher, monkeypatch):
    """Route an event type to another handler for one test; returns the routed one."""

    def _swap_handler(event_type: str, handler):
        route = dispatcher.routes[event_type]
        monkeypatch.setitem(dispatcher.routes, event_type, EventRoute(model=route.model, handler=handler))
        return route.handler

    return _swap_handler


@pytest.fixture
def verifier():
    return StripeSignatureVerifier(secret=WEBHOOK_SECRET, tolerance_seconds=300)


@pytest.fixture
def reconciler(verifier, dispatcher, session_factory):
    return WebhookReconciler(verifier=verifier, dispatcher=dispatcher, session_factory=session_factory)


@pytest.fixture
def client(session_factory, dispatcher, verifier):
    app = create_app(
        settings=Settings(stripe_webhook_secret=WEBHOOK_SECRET),
        session_factory=session_factory,
        dispatcher=dispatcher,
        verifier=verifier,
    )
    with TestClient(app) as test_client:
        yield test_client


def sign(payload_bytes: bytes, *, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp if timestamp is not None else int(datetime.now(UTC).timestamp())
    signed = f"{timestamp}.".encode("utf-8") + payload_bytes
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def make_event():
    def _make_event(event_type: str, obj: dict, *, event_id: str | None = None, created: int | None = None) -> dict:
        return {
            "id": event_id or f"evt_{uuid4().hex[:16]}",
            "object": "event",
            "type": event_type,
            "livemode": False,
            "created": created if created is not None else int(datetime.now(UTC).timestamp()),
            "api_version": "2024-06-20",
            "data": {"object": obj},
        }

    return _make_event


@pytest.fixture
def envelope_of():
    def _envelope_of(payload: dict) -> StripeEventEnvelope:
        return StripeEventEnvelope.model_validate(payload)

    return _envelope_of


@pytest.fixture
def deliver(reconciler):
    """Run a signed delivery through the reconciler, bypassing HTTP."""

    def _deliver(payload: dict):
        body = json.dumps(payload).encode("utf-8")
        return reconciler.handle_delivery(payload_bytes=body, signature_header=sign(body))

    return _deliver


@pytest.fixture
def post_event(client):
    def _post_event(payload: dict, *, secret: str = WEBHOOK_SECRET, headers: dict | None = None):
        body = json.dumps(payload).encode("utf-8")
        request_headers = {"Stripe-Signature": sign(body, secret=secret), "Content-Type": "application/json"}
        request_headers.update(headers or {})
        return client.post("/webhooks/billing", content=body, headers=request_headers)

    return _post_event


@pytest.fixture
def sign_payload():
    return sign
