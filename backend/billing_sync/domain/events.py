from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _expandable_id(value: Any) -> Any:
    # Stripe sends either the bare id or the expanded object for references.
    if isinstance(value, dict):
        return value.get("id")
    return value


def _string_metadata(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(key): str(item) for key, item in value.items() if item is not None}


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    object: dict[str, Any] = Field(default_factory=dict)
    previous_attributes: dict[str, Any] | None = None


class StripeEventEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    livemode: bool = False
    created: int | None = None
    api_version: str | None = None
    data: StripeEventData = Field(default_factory=StripeEventData)


class ProviderObject(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def normalize_metadata(cls, value: Any) -> dict[str, str]:
        return _string_metadata(value)

    @property
    def tenant_id(self) -> str | None:
        return self.metadata.get("tenant_id") or None


class CustomerObject(ProviderObject):
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    address: dict[str, Any] | None = None


class SubscriptionObject(ProviderObject):
    customer: str | None = None
    status: str = "incomplete"
    current_period_start: int | None = None
    current_period_end: int | None = None
    cancel_at_period_end: bool = False
    canceled_at: int | None = None
    trial_start: int | None = None
    trial_end: int | None = None
    items: dict[str, Any] = Field(default_factory=dict)

    @field_validator("customer", mode="before")
    @classmethod
    def normalize_customer(cls, value: Any) -> Any:
        return _expandable_id(value)

    @property
    def first_item(self) -> dict[str, Any]:
        data = self.items.get("data") or []
        return data[0] if data and isinstance(data[0], dict) else {}

    @property
    def price(self) -> dict[str, Any]:
        price = self.first_item.get("price")
        return price if isinstance(price, dict) else {}


class InvoiceObject(ProviderObject):
    customer: str | None = None
    subscription: str | None = None
    number: str | None = None
    status: str | None = None
    amount_due: int = 0
    amount_paid: int = 0
    subtotal: int = 0
    total: int = 0
    tax: int | None = None
    currency: str = "usd"
    due_date: int | None = None
    status_transitions: dict[str, Any] = Field(default_factory=dict)
    invoice_pdf: str | None = None
    hosted_invoice_url: str | None = None
    lines: dict[str, Any] = Field(default_factory=dict)

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def normalize_references(cls, value: Any) -> Any:
        return _expandable_id(value)


class PaymentMethodObject(ProviderObject):
    customer: str | None = None
    type: str = "card"
    card: dict[str, Any] | None = None
    billing_details: dict[str, Any] | None = None

    @field_validator("customer", mode="before")
    @classmethod
    def normalize_customer(cls, value: Any) -> Any:
        return _expandable_id(value)


class CheckoutSessionObject(ProviderObject):
    mode: str | None = None
    customer: str | None = None
    subscription: str | None = None
    payment_intent: str | None = None
    payment_status: str | None = None
    client_reference_id: str | None = None

    @field_validator("customer", "subscription", "payment_intent", mode="before")
    @classmethod
    def normalize_references(cls, value: Any) -> Any:
        return _expandable_id(value)

    @property
    def tenant_id(self) -> str | None:
        return self.metadata.get("tenant_id") or self.client_reference_id or None


class PaymentIntentObject(ProviderObject):
    status: str | None = None
    amount: int = 0
    currency: str = "usd"
    transfer_data: dict[str, Any] | None = None
    last_payment_error: dict[str, Any] | None = None

    @property
    def tenant_id(self) -> str | None:
        return self.metadata.get("tenant_id") or self.metadata.get("listing_owner_tenant_id") or None

    @property
    def booking_id(self) -> str | None:
        return self.metadata.get("booking_id") or None

    @property
    def transfer_id(self) -> str | None:
        transfer = (self.transfer_data or {}).get("transfer")
        return _expandable_id(transfer) or None


class TransferObject(ProviderObject):
    amount: int = 0
    currency: str = "usd"
    destination: str | None = None
    reversed: bool = False

    @field_validator("destination", mode="before")
    @classmethod
    def normalize_destination(cls, value: Any) -> Any:
        return _expandable_id(value)

    @property
    def tenant_id(self) -> str | None:
        return self.metadata.get("tenant_id") or self.metadata.get("listing_owner_tenant_id") or None

    @property
    def booking_id(self) -> str | None:
        return self.metadata.get("booking_id") or None


class PayoutObject(ProviderObject):
    amount: int = 0
    currency: str = "usd"
    status: str | None = None
    arrival_date: int | None = None
    failure_code: str | None = None
    failure_message: str | None = None


class _TypedEvent(BaseModel):
    id: str
    type: str
    livemode: bool = False
    created: int | None = None


class CustomerEvent(_TypedEvent):
    family: Literal["customer"] = "customer"
    object: CustomerObject


class SubscriptionEvent(_TypedEvent):
    family: Literal["subscription"] = "subscription"
    object: SubscriptionObject


class InvoiceEvent(_TypedEvent):
    family: Literal["invoice"] = "invoice"
    object: InvoiceObject


class PaymentMethodEvent(_TypedEvent):
    family: Literal["payment_method"] = "payment_method"
    object: PaymentMethodObject


class CheckoutSessionEvent(_TypedEvent):
    family: Literal["checkout_session"] = "checkout_session"
    object: CheckoutSessionObject


class PaymentIntentEvent(_TypedEvent):
    family: Literal["payment_intent"] = "payment_intent"
    object: PaymentIntentObject


class TransferEvent(_TypedEvent):
    family: Literal["transfer"] = "transfer"
    object: TransferObject


class PayoutEvent(_TypedEvent):
    family: Literal["payout"] = "payout"
    object: PayoutObject


BillingEvent = Union[
    CustomerEvent,
    SubscriptionEvent,
    InvoiceEvent,
    PaymentMethodEvent,
    CheckoutSessionEvent,
    PaymentIntentEvent,
    TransferEvent,
    PayoutEvent,
]


def decode_typed_event(model: type[_TypedEvent], envelope: StripeEventEnvelope) -> BillingEvent:
    return model.model_validate(
        {
            "id": envelope.id,
            "type": envelope.type,
            "livemode": envelope.livemode,
            "created": envelope.created,
            "object": envelope.data.object,
        }
    )
