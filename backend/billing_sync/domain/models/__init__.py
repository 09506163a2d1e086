from billing_sync.domain.models.booking import Booking
from billing_sync.domain.models.payout import Payout
from billing_sync.domain.models.revenue_transaction import RevenueTransaction
from billing_sync.domain.models.stripe_customer import StripeCustomer
from billing_sync.domain.models.stripe_invoice import StripeInvoice
from billing_sync.domain.models.stripe_payment_method import StripePaymentMethod
from billing_sync.domain.models.stripe_subscription import StripeSubscription
from billing_sync.domain.models.webhook_event import WebhookEvent

__all__ = [
    "Booking",
    "Payout",
    "RevenueTransaction",
    "StripeCustomer",
    "StripeInvoice",
    "StripePaymentMethod",
    "StripeSubscription",
    "WebhookEvent",
]
