from billing_sync.application.handlers.checkout_sessions import (
    CHECKOUT_SESSION_EVENT_TYPES,
    handle_checkout_session_completed,
)
from billing_sync.application.handlers.customers import CUSTOMER_EVENT_TYPES, handle_customer_event
from billing_sync.application.handlers.invoices import INVOICE_EVENT_TYPES, handle_invoice_event
from billing_sync.application.handlers.payment_intents import (
    PAYMENT_INTENT_EVENT_TYPES,
    handle_payment_intent_event,
)
from billing_sync.application.handlers.payment_methods import (
    PAYMENT_METHOD_EVENT_TYPES,
    handle_payment_method_event,
)
from billing_sync.application.handlers.payouts import PAYOUT_EVENT_TYPES, handle_payout_event
from billing_sync.application.handlers.subscriptions import SUBSCRIPTION_EVENT_TYPES, handle_subscription_event
from billing_sync.application.handlers.transfers import TRANSFER_EVENT_TYPES, handle_transfer_event
from billing_sync.application.services.event_dispatcher import EventDispatcher
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


def build_default_dispatcher() -> EventDispatcher:
    dispatcher = EventDispatcher()
    dispatcher.register(CUSTOMER_EVENT_TYPES, model=CustomerEvent, handler=handle_customer_event)
    dispatcher.register(SUBSCRIPTION_EVENT_TYPES, model=SubscriptionEvent, handler=handle_subscription_event)
    dispatcher.register(INVOICE_EVENT_TYPES, model=InvoiceEvent, handler=handle_invoice_event)
    dispatcher.register(PAYMENT_METHOD_EVENT_TYPES, model=PaymentMethodEvent, handler=handle_payment_method_event)
    dispatcher.register(
        CHECKOUT_SESSION_EVENT_TYPES,
        model=CheckoutSessionEvent,
        handler=handle_checkout_session_completed,
    )
    dispatcher.register(PAYMENT_INTENT_EVENT_TYPES, model=PaymentIntentEvent, handler=handle_payment_intent_event)
    dispatcher.register(TRANSFER_EVENT_TYPES, model=TransferEvent, handler=handle_transfer_event)
    dispatcher.register(PAYOUT_EVENT_TYPES, model=PayoutEvent, handler=handle_payout_event)
    return dispatcher


__all__ = ["build_default_dispatcher"]
