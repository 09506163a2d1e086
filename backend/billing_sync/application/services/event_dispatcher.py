from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy.orm import Session

from billing_sync.domain.events import BillingEvent, StripeEventEnvelope, decode_typed_event
from billing_sync.infrastructure.logging.context import reset_tenant_id, set_tenant_id
from billing_sync.infrastructure.observability.metrics import measure_handler

logger = logging.getLogger(__name__)

EventHandler = Callable[[Session, BillingEvent], None]


class DispatchOutcome(StrEnum):
    HANDLED = "handled"
    UNHANDLED = "unhandled"


@dataclass(frozen=True)
class EventRoute:
    model: type
    handler: EventHandler

    @property
    def handler_name(self) -> str:
        return getattr(self.handler, "__qualname__", repr(self.handler))


class EventDispatcher:
    def __init__(self) -> None:
        self.routes: dict[str, EventRoute] = {}

    def register(self, event_types: Iterable[str], *, model: type, handler: EventHandler) -> None:
        for event_type in event_types:
            if event_type in self.routes:
                raise ValueError(f"Event type {event_type} is already routed to {self.routes[event_type].handler_name}")
            self.routes[event_type] = EventRoute(model=model, handler=handler)

    def handles(self, event_type: str) -> bool:
        return event_type in self.routes

    def dispatch(self, db: Session, envelope: StripeEventEnvelope) -> DispatchOutcome:
        route = self.routes.get(envelope.type)
        if route is None:
            logger.info("webhook_event_unhandled event_type=%s event_id=%s", envelope.type, envelope.id)
            return DispatchOutcome.UNHANDLED

        typed_event = decode_typed_event(route.model, envelope)
        tenant_token = set_tenant_id(typed_event.object.tenant_id)
        try:
            with measure_handler(envelope.type):
                route.handler(db, typed_event)
        finally:
            reset_tenant_id(tenant_token)
        logger.info(
            "webhook_event_applied event_type=%s event_id=%s handler=%s",
            envelope.type,
            envelope.id,
            route.handler_name,
        )
        return DispatchOutcome.HANDLED
