import logging

import pytest
from sqlalchemy import func, select

from billing_sync.domain.models.stripe_customer import StripeCustomer
from billing_sync.domain.models.stripe_invoice import StripeInvoice
from billing_sync.domain.models.stripe_payment_method import StripePaymentMethod
from billing_sync.domain.models.stripe_subscription import StripeSubscription

TENANT_ID = "tenant_a"


@pytest.fixture
def apply(db, dispatcher, envelope_of):
    def _apply(payload: dict):
        outcome = dispatcher.dispatch(db, envelope_of(payload))
        db.commit()
        return outcome

    return _apply


def _customer(**overrides) -> dict:
    obj = {
        "id": "cus_1",
        "object": "customer",
        "email": "owner@example.com",
        "name": "Owner",
        "metadata": {"tenant_id": TENANT_ID},
    }
    obj.update(overrides)
    return obj


def _subscription(status: str = "active", **overrides) -> dict:
    obj = {
        "id": "sub_1",
        "object": "subscription",
        "customer": "cus_1",
        "status": status,
        "cancel_at_period_end": False,
        "metadata": {},
        "items": {
            "data": [
                {
                    "id": "si_1",
                    "current_period_start": 1_760_000_000,
                    "current_period_end": 1_762_592_000,
                    "price": {
                        "id": "price_1",
                        "product": "prod_1",
                        "nickname": "Pro",
                        "unit_amount": 4900,
                        "currency": "usd",
                        "recurring": {"interval": "month"},
                    },
                }
            ]
        },
    }
    obj.update(overrides)
    return obj


def test_customer_events_upsert_by_provider_id(db, apply, make_event):
    apply(make_event("customer.created", _customer()))
    apply(make_event("customer.updated", _customer(email="billing@example.com", phone="+48123")))

    rows = db.execute(select(StripeCustomer)).scalars().all()
    assert len(rows) == 1
    assert rows[0].tenant_id == TENANT_ID
    assert rows[0].email == "billing@example.com"
    assert rows[0].phone == "+48123"


def test_customer_without_tenant_is_skipped_with_warning(db, apply, make_event, caplog):
    caplog.set_level(logging.WARNING)

    apply(make_event("customer.created", _customer(metadata={})))

    assert db.execute(select(func.count()).select_from(StripeCustomer)).scalar_one() == 0
    assert "customer_missing_tenant" in caplog.text


def test_subscription_resolves_tenant_through_customer_and_item_period(db, apply, make_event):
    apply(make_event("customer.created", _customer()))
    apply(make_event("customer.subscription.created", _subscription()))

    row = db.execute(select(StripeSubscription)).scalar_one()
    assert row.tenant_id == TENANT_ID
    assert row.status == "active"
    assert row.stripe_price_id == "price_1"
    assert row.stripe_product_id == "prod_1"
    assert row.plan_name == "Pro"
    assert row.plan_price == 4900
    assert row.billing_cycle == "month"
    assert row.current_period_start is not None
    assert row.current_period_end is not None


def test_subscription_for_unknown_customer_without_metadata_is_skipped(db, apply, make_event):
    apply(make_event("customer.subscription.created", _subscription(customer="cus_unknown")))

    assert db.execute(select(func.count()).select_from(StripeSubscription)).scalar_one() == 0


def test_out_of_order_delivery_keeps_last_applied_and_warns(db, apply, make_event, caplog):
    caplog.set_level(logging.WARNING)
    apply(make_event("customer.created", _customer()))

    apply(make_event("customer.subscription.updated", _subscription("past_due"), created=1_760_000_200))
    apply(make_event("customer.subscription.updated", _subscription("active"), created=1_760_000_100))

    row = db.execute(select(StripeSubscription)).scalar_one()
    assert row.status == "active"
    assert "webhook_event_out_of_order" in caplog.text


def test_subscription_deleted_stores_status_verbatim(db, apply, make_event):
    apply(make_event("customer.created", _customer()))
    apply(make_event("customer.subscription.created", _subscription()))
    apply(
        make_event(
            "customer.subscription.deleted",
            _subscription("canceled", canceled_at=1_760_100_000, cancel_at_period_end=True),
        )
    )

    row = db.execute(select(StripeSubscription)).scalar_one()
    assert row.status == "canceled"
    assert row.canceled_at is not None
    assert row.cancel_at_period_end is True


def test_invoice_resolves_tenant_through_subscription(db, apply, make_event):
    apply(make_event("customer.created", _customer()))
    apply(make_event("customer.subscription.created", _subscription(customer="cus_1")))
    invoice = {
        "id": "in_1",
        "object": "invoice",
        "customer": "cus_other",
        "subscription": "sub_1",
        "number": "INV-0001",
        "status": "paid",
        "amount_due": 4900,
        "amount_paid": 4900,
        "subtotal": 4900,
        "total": 4900,
        "currency": "usd",
        "status_transitions": {"paid_at": 1_760_000_500},
        "lines": {"data": [{"id": "il_1", "amount": 4900}]},
    }

    apply(make_event("invoice.paid", invoice))

    row = db.execute(select(StripeInvoice)).scalar_one()
    assert row.tenant_id == TENANT_ID
    assert row.status == "paid"
    assert row.amount_paid == 4900
    assert row.paid_at is not None
    assert row.line_items == [{"id": "il_1", "amount": 4900}]


def test_payment_method_attach_update_and_detach(db, apply, make_event):
    apply(make_event("customer.created", _customer()))
    payment_method = {
        "id": "pm_1",
        "object": "payment_method",
        "customer": "cus_1",
        "type": "card",
        "card": {"brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030},
    }

    apply(make_event("payment_method.attached", payment_method))
    payment_method["card"] = {"brand": "visa", "last4": "4242", "exp_month": 1, "exp_year": 2031}
    apply(make_event("payment_method.automatically_updated", payment_method))

    row = db.execute(select(StripePaymentMethod)).scalar_one()
    assert row.tenant_id == TENANT_ID
    assert row.card_last4 == "4242"
    assert row.card_exp_year == 2031

    apply(make_event("payment_method.detached", {**payment_method, "customer": None}))

    assert db.execute(select(func.count()).select_from(StripePaymentMethod)).scalar_one() == 0


def test_payment_method_for_unknown_customer_is_skipped(db, apply, make_event):
    apply(
        make_event(
            "payment_method.attached",
            {"id": "pm_2", "object": "payment_method", "customer": "cus_missing", "type": "card"},
        )
    )

    assert db.execute(select(func.count()).select_from(StripePaymentMethod)).scalar_one() == 0


def test_checkout_session_completed_has_no_side_effects(db, apply, make_event):
    session = {
        "id": "cs_1",
        "object": "checkout.session",
        "mode": "subscription",
        "customer": "cus_1",
        "subscription": "sub_1",
        "client_reference_id": TENANT_ID,
    }

    apply(make_event("checkout.session.completed", session))

    assert db.execute(select(func.count()).select_from(StripeSubscription)).scalar_one() == 0
