import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from billing_sync.application.services.event_journal import record_event
from billing_sync.application.services.webhook_reconciler import WebhookProcessingError
from billing_sync.core.config import Settings
from billing_sync.domain.models.stripe_customer import StripeCustomer
from billing_sync.domain.models.stripe_invoice import StripeInvoice
from billing_sync.domain.models.stripe_subscription import StripeSubscription
from billing_sync.domain.models.webhook_event import WebhookEvent
from billing_sync.interfaces.http.application import create_app

TENANT_ID = "tenant_a"


def _count(session_factory, model) -> int:
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(model)).scalar_one()


def _journal(session_factory, stripe_event_id: str) -> WebhookEvent:
    with session_factory() as db:
        return db.execute(select(WebhookEvent).where(WebhookEvent.stripe_event_id == stripe_event_id)).scalar_one()


def _customer_event(make_event, **overrides):
    obj = {"id": "cus_1", "object": "customer", "email": "a@example.com", "metadata": {"tenant_id": TENANT_ID}}
    obj.update(overrides)
    return make_event("customer.updated", obj)


def _subscription_event(make_event, status: str, event_id: str):
    return make_event(
        "customer.subscription.updated",
        {
            "id": "sub_1",
            "object": "subscription",
            "customer": "cus_1",
            "status": status,
            "metadata": {"tenant_id": TENANT_ID},
            "items": {"data": []},
        },
        event_id=event_id,
    )


def test_tampered_body_is_rejected_and_not_journaled(client, session_factory, make_event, sign_payload):
    body = json.dumps(_customer_event(make_event)).encode("utf-8")
    header = sign_payload(body)
    tampered = body.replace(b"a@example.com", b"b@example.com")

    response = client.post("/webhooks/billing", content=tampered, headers={"Stripe-Signature": header})

    assert response.status_code == 400
    assert response.json()["error_code"] == "invalid_signature"
    assert _count(session_factory, WebhookEvent) == 0


def test_missing_signature_header_is_rejected(client, session_factory, make_event):
    response = client.post("/webhooks/billing", content=json.dumps(_customer_event(make_event)))

    assert response.status_code == 400
    assert response.json()["error_code"] == "missing_signature"
    assert _count(session_factory, WebhookEvent) == 0


def test_missing_secret_fails_closed(session_factory, dispatcher, make_event, sign_payload):
    app = create_app(
        settings=Settings(stripe_webhook_secret=None),
        session_factory=session_factory,
        dispatcher=dispatcher,
    )
    body = json.dumps(_customer_event(make_event)).encode("utf-8")

    with TestClient(app) as unconfigured_client:
        response = unconfigured_client.post(
            "/webhooks/billing",
            content=body,
            headers={"Stripe-Signature": sign_payload(body)},
        )

    assert response.status_code == 400
    assert response.json()["error_code"] == "webhook_secret_not_configured"
    assert _count(session_factory, WebhookEvent) == 0


def test_redelivery_invokes_handler_once(client, swap_handler, session_factory, make_event, post_event):
    calls = []

    def spy(db, event):
        calls.append(event.id)
        real_handler(db, event)

    real_handler = swap_handler("customer.subscription.updated", spy)
    payload = _subscription_event(make_event, "past_due", "evt_sub_1")

    first = post_event(payload)
    second = post_event(payload)

    assert first.status_code == 200
    assert first.json() == {"received": True, "event_id": "evt_sub_1", "status": "processed"}
    assert second.status_code == 200
    assert second.json()["status"] == "duplicate"
    assert calls == ["evt_sub_1"]


def test_duplicate_subscription_update_converges_to_single_row(session_factory, make_event, post_event):
    payload = _subscription_event(make_event, "past_due", "evt_past_due")

    assert post_event(payload).status_code == 200
    assert post_event(payload).status_code == 200

    with session_factory() as db:
        rows = db.execute(select(StripeSubscription).where(StripeSubscription.stripe_subscription_id == "sub_1")).scalars().all()
    assert len(rows) == 1
    assert rows[0].status == "past_due"
    assert _count(session_factory, WebhookEvent) == 1
    journaled = _journal(session_factory, "evt_past_due")
    assert journaled.processed is True
    assert journaled.error_message is None


def test_handler_failure_returns_500_and_redelivery_recovers(client, swap_handler, session_factory, make_event, post_event):
    real_handler = swap_handler("customer.updated", _explode)
    payload = _customer_event(make_event)

    failed = post_event(payload)

    assert failed.status_code == 500
    assert failed.json()["error_code"] == "webhook_processing_failed"
    journaled = _journal(session_factory, payload["id"])
    assert journaled.processed is False
    assert "database unavailable" in journaled.error_message
    assert journaled.processing_attempts == 1
    assert _count(session_factory, StripeCustomer) == 0

    swap_handler("customer.updated", real_handler)
    recovered = post_event(payload)

    assert recovered.status_code == 200
    assert recovered.json()["status"] == "processed"
    journaled = _journal(session_factory, payload["id"])
    assert journaled.processed is True
    assert journaled.processing_attempts == 2
    assert _count(session_factory, StripeCustomer) == 1


def test_delivery_arriving_mid_processing_is_not_applied_twice(swap_handler, session_factory, make_event, deliver):
    payload = _subscription_event(make_event, "past_due", "evt_sub_race")
    calls = []
    overlapping = []

    def handler_with_overlapping_delivery(db, event):
        calls.append(event.id)
        if not overlapping:
            overlapping.append(deliver(payload))
        real_handler(db, event)

    real_handler = swap_handler("customer.subscription.updated", handler_with_overlapping_delivery)

    result = deliver(payload)

    assert result.status == "processed"
    assert [r.status for r in overlapping] == ["in_flight"]
    assert calls == ["evt_sub_race"]
    journaled = _journal(session_factory, "evt_sub_race")
    assert journaled.processed is True
    assert journaled.processing_attempts == 1
    assert journaled.lease_expires_at is None


def test_delivery_of_leased_event_returns_503(session_factory, make_event, envelope_of, post_event):
    payload = _customer_event(make_event)
    with session_factory() as db:
        record_event(db, envelope_of(payload))
        db.commit()

    response = post_event(payload)

    assert response.status_code == 503
    assert response.json()["error_code"] == "webhook_event_in_flight"
    assert _journal(session_factory, payload["id"]).processed is False
    assert _count(session_factory, StripeCustomer) == 0


def test_failure_of_one_event_does_not_block_an_interleaved_one(swap_handler, session_factory, make_event, deliver):
    invoice = make_event(
        "invoice.paid",
        {"id": "in_1", "object": "invoice", "customer": "cus_1", "metadata": {"tenant_id": TENANT_ID}},
    )
    customer = _customer_event(make_event)
    interleaved = []

    def write_then_fail(db, event):
        interleaved.append(deliver(customer))
        real_invoice_handler(db, event)
        raise RuntimeError("database unavailable")

    real_invoice_handler = swap_handler("invoice.paid", write_then_fail)

    with pytest.raises(WebhookProcessingError):
        deliver(invoice)

    assert [r.status for r in interleaved] == ["processed"]
    assert _count(session_factory, StripeCustomer) == 1
    assert _count(session_factory, StripeInvoice) == 0
    assert _journal(session_factory, invoice["id"]).processed is False
    assert _journal(session_factory, customer["id"]).processed is True


def test_failed_event_stays_retryable_over_http(swap_handler, session_factory, make_event, post_event):
    swap_handler("invoice.paid", _explode)
    invoice = make_event(
        "invoice.paid",
        {"id": "in_2", "object": "invoice", "customer": "cus_1", "metadata": {"tenant_id": TENANT_ID}},
    )

    assert post_event(invoice).status_code == 500
    assert post_event(_customer_event(make_event)).status_code == 200
    assert post_event(invoice).status_code == 500
    assert _journal(session_factory, invoice["id"]).processing_attempts == 2


def test_unknown_event_type_is_acknowledged(session_factory, make_event, post_event):
    payload = make_event("charge.dispute.created", {"id": "dp_1", "object": "dispute"})

    response = post_event(payload)

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert _journal(session_factory, payload["id"]).processed is True
    assert _count(session_factory, StripeCustomer) == 0


def test_error_payload_carries_request_id(client):
    response = client.post(
        "/webhooks/billing",
        content=b"{}",
        headers={"Stripe-Signature": "t=1,v1=abc", "X-Request-ID": "req-123"},
    )

    assert response.status_code == 400
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.json()["trace_id"] == "req-123"


def test_health_reports_database(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["services"]["database"] == "up"
    assert body["services"]["webhook_secret_configured"] is True


def test_metrics_exposes_webhook_counters(client, make_event, post_event):
    post_event(make_event("charge.dispute.created", {"id": "dp_2"}))

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "webhook_events_total" in response.text


def _explode(db, event):
    raise RuntimeError("database unavailable")

