import pytest

from billing_sync.application.services.event_dispatcher import DispatchOutcome, EventDispatcher
from billing_sync.domain.events import (
    CheckoutSessionEvent,
    CustomerEvent,
    InvoiceEvent,
    PaymentIntentEvent,
    PaymentMethodEvent,
    PayoutEvent,
    SubscriptionEvent,
    TransferEvent,
)
from billing_sync.infrastructure.logging.context import get_tenant_id


@pytest.mark.parametrize(
    ("event_type", "model"),
    [
        ("customer.created", CustomerEvent),
        ("customer.updated", CustomerEvent),
        ("customer.subscription.created", SubscriptionEvent),
        ("customer.subscription.deleted", SubscriptionEvent),
        ("customer.subscription.paused", SubscriptionEvent),
        ("invoice.finalized", InvoiceEvent),
        ("invoice.marked_uncollectible", InvoiceEvent),
        ("payment_method.automatically_updated", PaymentMethodEvent),
        ("checkout.session.completed", CheckoutSessionEvent),
        ("payment_intent.payment_failed", PaymentIntentEvent),
        ("transfer.reversed", TransferEvent),
        ("payout.canceled", PayoutEvent),
    ],
)
def test_default_routes_decode_into_family_event(dispatcher, event_type, model):
    assert dispatcher.handles(event_type)
    assert dispatcher.routes[event_type].model is model


def test_every_event_type_has_exactly_one_route(dispatcher):
    assert len(dispatcher.routes) == 27
    with pytest.raises(ValueError):
        dispatcher.register(["invoice.paid"], model=InvoiceEvent, handler=lambda db, event: None)


def test_unknown_event_type_is_acknowledged_without_handler(db, dispatcher, make_event, envelope_of):
    outcome = dispatcher.dispatch(db, envelope_of(make_event("charge.dispute.created", {"id": "dp_1"})))

    assert outcome is DispatchOutcome.UNHANDLED
    assert not dispatcher.handles("charge.dispute.created")


def test_dispatch_hands_typed_event_to_handler_with_tenant_context(db, make_event, envelope_of):
    seen = []

    def spy(session, event):
        seen.append((event, get_tenant_id()))

    dispatcher = EventDispatcher()
    dispatcher.register(["customer.updated"], model=CustomerEvent, handler=spy)
    payload = make_event(
        "customer.updated",
        {"id": "cus_1", "email": "a@example.com", "metadata": {"tenant_id": "tenant_a", "tier": 2}},
    )

    outcome = dispatcher.dispatch(db, envelope_of(payload))

    assert outcome is DispatchOutcome.HANDLED
    event, tenant_during_handler = seen[0]
    assert isinstance(event, CustomerEvent)
    assert event.object.email == "a@example.com"
    assert event.object.metadata == {"tenant_id": "tenant_a", "tier": "2"}
    assert tenant_during_handler == "tenant_a"
    assert get_tenant_id() is None


def test_handler_error_propagates_and_clears_tenant_context(db, make_event, envelope_of):
    def explode(session, event):
        raise RuntimeError("write conflict")

    dispatcher = EventDispatcher()
    dispatcher.register(["invoice.paid"], model=InvoiceEvent, handler=explode)
    payload = make_event("invoice.paid", {"id": "in_1", "customer": "cus_1", "metadata": {"tenant_id": "tenant_a"}})

    with pytest.raises(RuntimeError, match="write conflict"):
        dispatcher.dispatch(db, envelope_of(payload))
    assert get_tenant_id() is None
