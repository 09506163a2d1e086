from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_sync.application.services.event_dispatcher import DispatchOutcome, EventDispatcher
from billing_sync.application.services.event_journal import (
    DEFAULT_LEASE_SECONDS,
    JournalOutcome,
    claim_event,
    get_event,
    list_redrive_candidates,
    mark_failed,
    mark_processed,
    record_event,
)
from billing_sync.application.services.signature_verifier import SignatureVerificationError, StripeSignatureVerifier
from billing_sync.domain.events import StripeEventEnvelope
from billing_sync.infrastructure.logging.context import reset_event_id, set_event_id
from billing_sync.infrastructure.observability.metrics import record_signature_failure, record_webhook_outcome

logger = logging.getLogger(__name__)

STATUS_PROCESSED = "processed"
STATUS_IGNORED = "ignored"
STATUS_DUPLICATE = "duplicate"
STATUS_FAILED = "failed"
STATUS_IN_FLIGHT = "in_flight"


class WebhookProcessingError(Exception):
    def __init__(self, stripe_event_id: str, event_type: str, message: str) -> None:
        super().__init__(message)
        self.stripe_event_id = stripe_event_id
        self.event_type = event_type
        self.message = message


@dataclass(frozen=True)
class ReconcileResult:
    stripe_event_id: str
    event_type: str
    status: str


class WebhookReconciler:
    """Verify, journal and apply one provider delivery.

    The handler's writes and the journal's ``processed`` flag are committed in
    the same transaction. A failing handler is rolled back and the failure is
    journaled in a separate transaction, so the provider's retry (or the
    re-drive worker) applies the event again from a clean slate. Only the
    holder of the journal row's processing lease dispatches; an overlapping
    delivery is answered ``in_flight``.
    """

    def __init__(
        self,
        *,
        verifier: StripeSignatureVerifier,
        dispatcher: EventDispatcher,
        session_factory: Callable[[], Session],
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
    ) -> None:
        self.verifier = verifier
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.lease_seconds = lease_seconds

    def handle_delivery(self, *, payload_bytes: bytes, signature_header: str | None) -> ReconcileResult:
        try:
            envelope = self.verifier.construct_event(payload_bytes=payload_bytes, signature_header=signature_header)
        except SignatureVerificationError as exc:
            record_signature_failure(exc.error_code)
            logger.warning("webhook_signature_rejected reason=%s", exc.error_code)
            raise

        event_token = set_event_id(envelope.id)
        try:
            with self.session_factory() as db:
                entry = record_event(db, envelope, lease_seconds=self.lease_seconds)
                db.commit()
                if entry.outcome is JournalOutcome.IN_FLIGHT:
                    return self._in_flight(envelope.id, envelope.type)
                if not entry.should_dispatch:
                    record_webhook_outcome(envelope.type, STATUS_DUPLICATE)
                    logger.info("webhook_event_duplicate event_type=%s event_id=%s", envelope.type, envelope.id)
                    return ReconcileResult(envelope.id, envelope.type, STATUS_DUPLICATE)
                if entry.outcome is JournalOutcome.REDELIVERED:
                    logger.info(
                        "webhook_event_redelivered event_type=%s event_id=%s previous_attempts=%s",
                        envelope.type,
                        envelope.id,
                        entry.processing_attempts,
                    )
                return self._apply(db, envelope)
        finally:
            reset_event_id(event_token)

    def reprocess_event(self, stripe_event_id: str) -> ReconcileResult | None:
        event_token = set_event_id(stripe_event_id)
        try:
            with self.session_factory() as db:
                stored = get_event(db, stripe_event_id)
                if stored is None:
                    logger.warning("webhook_event_not_journaled event_id=%s", stripe_event_id)
                    return None
                if stored.processed:
                    return ReconcileResult(stored.stripe_event_id, stored.event_type, STATUS_DUPLICATE)
                claimed = claim_event(db, stripe_event_id, lease_seconds=self.lease_seconds)
                db.commit()
                if not claimed:
                    return self._in_flight(stored.stripe_event_id, stored.event_type)
                envelope = StripeEventEnvelope.model_validate(stored.event_data)
                return self._apply(db, envelope)
        finally:
            reset_event_id(event_token)

    def redrive_stale_events(
        self,
        *,
        older_than_seconds: int,
        max_attempts: int,
        limit: int,
        now: datetime | None = None,
    ) -> dict:
        with self.session_factory() as db:
            candidate_ids = [
                row.stripe_event_id
                for row in list_redrive_candidates(
                    db,
                    older_than_seconds=older_than_seconds,
                    max_attempts=max_attempts,
                    limit=limit,
                    now=now,
                )
            ]

        processed = 0
        failed = 0
        in_flight = 0
        for stripe_event_id in candidate_ids:
            try:
                result = self.reprocess_event(stripe_event_id)
            except WebhookProcessingError:
                failed += 1
                continue
            if result is None or result.status == STATUS_DUPLICATE:
                continue
            if result.status == STATUS_IN_FLIGHT:
                in_flight += 1
            else:
                processed += 1

        logger.info(
            "webhook_redrive_completed candidates=%s processed=%s failed=%s in_flight=%s",
            len(candidate_ids),
            processed,
            failed,
            in_flight,
        )
        return {
            "candidates": len(candidate_ids),
            "processed": processed,
            "failed": failed,
            "in_flight": in_flight,
        }

    def _apply(self, db: Session, envelope: StripeEventEnvelope) -> ReconcileResult:
        try:
            outcome = self.dispatcher.dispatch(db, envelope)
            mark_processed(db, envelope.id)
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.exception("webhook_event_failed event_type=%s event_id=%s", envelope.type, envelope.id)
            self._journal_failure(db, envelope, f"{type(exc).__name__}: {exc}")
            record_webhook_outcome(envelope.type, STATUS_FAILED)
            raise WebhookProcessingError(envelope.id, envelope.type, "Webhook event processing failed") from exc

        status = STATUS_PROCESSED if outcome is DispatchOutcome.HANDLED else STATUS_IGNORED
        record_webhook_outcome(envelope.type, status)
        return ReconcileResult(envelope.id, envelope.type, status)

    def _in_flight(self, stripe_event_id: str, event_type: str) -> ReconcileResult:
        record_webhook_outcome(event_type, STATUS_IN_FLIGHT)
        logger.warning("webhook_event_in_flight event_type=%s event_id=%s", event_type, stripe_event_id)
        return ReconcileResult(stripe_event_id, event_type, STATUS_IN_FLIGHT)

    def _journal_failure(self, db: Session, envelope: StripeEventEnvelope, error: str) -> None:
        try:
            mark_failed(db, envelope.id, error)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("webhook_event_failure_not_journaled event_id=%s", envelope.id)
