"""Authenticity checks for inbound transcription webhooks.

Deliveries follow the Standard Webhooks scheme: the sender signs
``"{webhook-id}.{webhook-timestamp}.{body}"`` with HMAC-SHA256 using the
base64 decoded shared secret and sends ``v1,<base64 digest>`` in the
``webhook-signature`` header (several space separated entries are allowed
during secret rotation).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
from collections.abc import Callable, Mapping

from salad_transcription.errors import WebhookVerificationError
from salad_transcription.types import TranscriptionJob, WebhookEnvelope

logger = logging.getLogger(__name__)

ID_HEADER = "webhook-id"
TIMESTAMP_HEADER = "webhook-timestamp"
SIGNATURE_HEADER = "webhook-signature"
REQUIRED_HEADERS = (ID_HEADER, TIMESTAMP_HEADER, SIGNATURE_HEADER)

SIGNATURE_VERSION = "v1"
SECRET_PREFIX = "whsec_"


def decode_secret(base64_secret: str) -> bytes:
    value = base64_secret.strip()
    if value.startswith(SECRET_PREFIX):
        value = value[len(SECRET_PREFIX):]
    try:
        secret = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Webhook secret is not valid base64") from exc
    if not secret:
        raise ValueError("Webhook secret is empty")
    return secret


def envelope_from_headers(headers: Mapping[str, str], payload: bytes | str) -> WebhookEnvelope:
    lowered = {str(key).lower(): value for key, value in headers.items()}
    missing = [name for name in REQUIRED_HEADERS if not lowered.get(name)]
    if missing:
        raise WebhookVerificationError(f"Missing webhook headers: {', '.join(missing)}")

    raw_payload = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
    return WebhookEnvelope(
        id=lowered[ID_HEADER],
        timestamp=lowered[TIMESTAMP_HEADER],
        signature=lowered[SIGNATURE_HEADER],
        raw_payload=raw_payload,
    )


class WebhookVerifier:
    def __init__(
        self,
        base64_secret: str,
        *,
        tolerance_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = decode_secret(base64_secret)
        self.tolerance_seconds = tolerance_seconds
        self._clock = clock

    def sign(self, webhook_id: str, timestamp: str, payload: bytes) -> str:
        content = f"{webhook_id}.{timestamp}.".encode("utf-8") + payload
        digest = hmac.new(self._secret, content, hashlib.sha256).digest()
        return f"{SIGNATURE_VERSION},{base64.b64encode(digest).decode('ascii')}"

    def check(self, envelope: WebhookEnvelope) -> None:
        """Raise ``WebhookVerificationError`` unless ``envelope`` is authentic."""
        try:
            timestamp = int(envelope.timestamp)
        except ValueError as exc:
            raise WebhookVerificationError("Invalid webhook timestamp", identifier=envelope.id) from exc

        if self.tolerance_seconds is not None:
            skew = abs(self._clock() - timestamp)
            if skew > self.tolerance_seconds:
                raise WebhookVerificationError(
                    f"Webhook timestamp outside tolerance ({int(skew)}s)",
                    identifier=envelope.id,
                )

        candidates = []
        for entry in envelope.signature.split():
            version, _, signature = entry.partition(",")
            if version == SIGNATURE_VERSION and signature:
                candidates.append(signature)
        if not candidates:
            raise WebhookVerificationError("Malformed webhook signature", identifier=envelope.id)

        expected = self.sign(envelope.id, envelope.timestamp, envelope.raw_payload).partition(",")[2]
        for candidate in candidates:
            if hmac.compare_digest(expected.encode("ascii"), candidate.encode("utf-8", "replace")):
                return
        raise WebhookVerificationError("Webhook signature mismatch", identifier=envelope.id)

    def verify(self, envelope: WebhookEnvelope) -> bool:
        try:
            self.check(envelope)
        except WebhookVerificationError as exc:
            logger.warning("Rejected webhook: %s", exc)
            return False
        return True

    def verify_request(self, headers: Mapping[str, str], payload: bytes | str) -> bool:
        try:
            envelope = envelope_from_headers(headers, payload)
        except WebhookVerificationError as exc:
            logger.warning("Rejected webhook: %s", exc)
            return False
        return self.verify(envelope)

    def parse(self, headers: Mapping[str, str], payload: bytes | str) -> TranscriptionJob:
        """Verify a delivery and return the job snapshot it carries.

        Raises ``WebhookVerificationError`` for unauthentic deliveries and
        ``ValueError`` when an authentic body is not a job payload.
        """
        envelope = envelope_from_headers(headers, payload)
        self.check(envelope)

        body = json.loads(envelope.raw_payload)
        if not isinstance(body, dict):
            raise ValueError("Webhook payload is not a JSON object")
        data = body.get("data")
        return TranscriptionJob.from_payload(data if isinstance(data, dict) else body)


def process_webhook(
    base64_secret: str,
    headers: Mapping[str, str],
    payload: bytes | str,
    *,
    tolerance_seconds: int | None = None,
) -> TranscriptionJob:
    return WebhookVerifier(base64_secret, tolerance_seconds=tolerance_seconds).parse(headers, payload)
