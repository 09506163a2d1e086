from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Callable
from datetime import UTC, datetime

from fastapi import HTTPException, status
from pydantic import ValidationError

from billing_sync.core.config import Settings
from billing_sync.domain.events import StripeEventEnvelope


class SignatureVerificationError(HTTPException):
    error_code = "signature_verification_failed"

    def __init__(self, message: str) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error_code": self.error_code, "message": message},
        )
        self.message = message


class WebhookSecretNotConfiguredError(SignatureVerificationError):
    error_code = "webhook_secret_not_configured"


class MissingSignatureError(SignatureVerificationError):
    error_code = "missing_signature"


class MalformedSignatureError(SignatureVerificationError):
    error_code = "malformed_signature"


class SignatureExpiredError(SignatureVerificationError):
    error_code = "signature_expired"


class InvalidSignatureError(SignatureVerificationError):
    error_code = "invalid_signature"


class InvalidPayloadError(SignatureVerificationError):
    error_code = "invalid_payload"


def _utc_now_timestamp() -> int:
    return int(datetime.now(UTC).timestamp())


def compute_signature(secret: str, timestamp: int | str, payload_bytes: bytes) -> str:
    signed_payload = f"{timestamp}.".encode("utf-8") + payload_bytes
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def parse_signature_header(signature_header: str) -> tuple[str | None, list[str]]:
    timestamp = None
    signatures: list[str] = []
    for chunk in signature_header.split(","):
        if "=" not in chunk:
            continue
        key, value = chunk.split("=", 1)
        key = key.strip()
        value = value.strip()
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


class StripeSignatureVerifier:
    def __init__(
        self,
        *,
        secret: str | None,
        tolerance_seconds: int = 300,
        clock: Callable[[], int] = _utc_now_timestamp,
    ) -> None:
        self.secret = secret
        self.tolerance_seconds = max(1, tolerance_seconds)
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> StripeSignatureVerifier:
        return cls(
            secret=settings.stripe_webhook_secret,
            tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
        )

    def verify(self, *, payload_bytes: bytes, signature_header: str | None) -> None:
        if not self.secret:
            raise WebhookSecretNotConfiguredError("Webhook secret is not configured")
        if not signature_header:
            raise MissingSignatureError("Missing webhook signature")

        timestamp, signatures = parse_signature_header(signature_header)
        if not timestamp or not signatures:
            raise MalformedSignatureError("Invalid webhook signature header")

        try:
            signed_at = int(timestamp)
        except ValueError as exc:
            raise MalformedSignatureError("Invalid webhook signature timestamp") from exc

        if abs(self.clock() - signed_at) > self.tolerance_seconds:
            raise SignatureExpiredError("Expired webhook signature")

        expected = compute_signature(self.secret, timestamp, payload_bytes)
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise InvalidSignatureError("Invalid webhook signature")

    def construct_event(self, *, payload_bytes: bytes, signature_header: str | None) -> StripeEventEnvelope:
        self.verify(payload_bytes=payload_bytes, signature_header=signature_header)
        return parse_event_payload(payload_bytes)


def parse_event_payload(payload_bytes: bytes) -> StripeEventEnvelope:
    try:
        payload = json.loads(payload_bytes.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidPayloadError("Invalid webhook payload") from exc
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Invalid webhook payload")
    try:
        return StripeEventEnvelope.model_validate(payload)
    except ValidationError as exc:
        raise InvalidPayloadError("Webhook payload is missing event id or type") from exc
