"""
Ticket payload codec.

ENCODING
========

The scannable code carries the ticket's identity, encrypted:

    NONCE_HEX ":" CIPHERTEXT_HEX

- plaintext is canonical JSON of TicketPayload (sorted keys, no whitespace)
- AES-256-GCM, key = SHA-256(secret), 12-byte nonce drawn fresh on every call
- GCM's tag makes tampering and wrong keys indistinguishable from each other
  but distinct from structural garbage
- hex is uppercase so the whole string fits the QR alphanumeric charset

Two encodings of the same payload never match, so identical attendee data
never yields identical codes.

Decoding never raises on bad input. It returns a DecodeResult carrying either
the payload or one DecodeError. Freshness (the embedded issuance timestamp
must be younger than max_age) is a separate check so a stale code still
decodes and can be reported precisely.

Key rotation: encode with the current secret, decode with the current secret
first and then each previous one.
"""

import enum
import hashlib
import json
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Iterable, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel, ValidationError

from ticketgate.core.clock import from_epoch_ms, utcnow
from ticketgate.core.config import get_settings

NONCE_BYTES = 12
SEPARATOR = ":"


class DecodeError(str, enum.Enum):
    MALFORMED_INPUT = "malformed_input"
    DECRYPTION_FAILURE = "decryption_failure"
    STALE_TIMESTAMP = "stale_timestamp"
    MISSING_FIELD = "missing_field"


class TicketPayload(BaseModel):
    ticket_id: str
    event_id: int
    user_id: int
    order_id: int
    attendee_name: str
    attendee_email: str
    timestamp: int  # issuance time, epoch milliseconds

    model_config = {"frozen": True, "extra": "ignore"}

    @property
    def issued_at(self) -> datetime:
        return from_epoch_ms(self.timestamp)


REQUIRED_FIELDS = tuple(TicketPayload.model_fields)


@dataclass(frozen=True)
class DecodeResult:
    payload: Optional[TicketPayload] = None
    error: Optional[DecodeError] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


def _derive_key(secret: str) -> bytes:
    if not secret:
        raise ValueError("ticket encryption secret must not be empty")
    return hashlib.sha256(secret.encode("utf-8")).digest()


class PayloadCodec:
    def __init__(
        self,
        secret: str,
        previous_secrets: Iterable[str] = (),
        max_age: timedelta = timedelta(hours=24),
    ):
        self._cipher = AESGCM(_derive_key(secret))
        self._fallbacks = [AESGCM(_derive_key(s)) for s in previous_secrets if s]
        self.max_age = max_age

    def encode(self, payload: TicketPayload) -> str:
        plaintext = json.dumps(
            payload.model_dump(), sort_keys=True, separators=(",", ":"), ensure_ascii=False,
        ).encode("utf-8")
        nonce = os.urandom(NONCE_BYTES)
        ciphertext = self._cipher.encrypt(nonce, plaintext, None)
        return f"{nonce.hex().upper()}{SEPARATOR}{ciphertext.hex().upper()}"

    def decode(self, encoded) -> DecodeResult:
        if not isinstance(encoded, str) or not encoded.strip():
            return DecodeResult(error=DecodeError.MALFORMED_INPUT, detail="empty code")

        parts = encoded.strip().split(SEPARATOR)
        if len(parts) != 2:
            return DecodeResult(error=DecodeError.MALFORMED_INPUT, detail="unexpected code layout")

        try:
            nonce = bytes.fromhex(parts[0])
            ciphertext = bytes.fromhex(parts[1])
        except ValueError:
            return DecodeResult(error=DecodeError.MALFORMED_INPUT, detail="code is not hex")

        if len(nonce) != NONCE_BYTES or not ciphertext:
            return DecodeResult(error=DecodeError.MALFORMED_INPUT, detail="bad nonce or empty body")

        plaintext = None
        for cipher in (self._cipher, *self._fallbacks):
            try:
                plaintext = cipher.decrypt(nonce, ciphertext, None)
                break
            except InvalidTag:
                continue
        if plaintext is None:
            return DecodeResult(error=DecodeError.DECRYPTION_FAILURE, detail="authentication failed")

        try:
            raw = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return DecodeResult(error=DecodeError.MALFORMED_INPUT, detail="plaintext is not JSON")
        if not isinstance(raw, dict):
            return DecodeResult(error=DecodeError.MALFORMED_INPUT, detail="plaintext is not an object")

        missing = [name for name in REQUIRED_FIELDS if name not in raw]
        if missing:
            return DecodeResult(
                error=DecodeError.MISSING_FIELD, detail=f"missing {', '.join(missing)}",
            )

        try:
            payload = TicketPayload.model_validate(raw)
        except ValidationError as exc:
            return DecodeResult(error=DecodeError.MALFORMED_INPUT, detail=f"bad field types: {exc.error_count()}")

        return DecodeResult(payload=payload)

    def check_validity(self, payload: TicketPayload, now: Optional[datetime] = None) -> Optional[DecodeError]:
        for name in REQUIRED_FIELDS:
            value = getattr(payload, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                return DecodeError.MISSING_FIELD
            # ids and timestamps of 0 are as good as absent
            if isinstance(value, int) and value <= 0:
                return DecodeError.MISSING_FIELD

        now = now or utcnow()
        if now - payload.issued_at >= self.max_age:
            return DecodeError.STALE_TIMESTAMP
        return None

    def decode_and_verify(self, encoded, now: Optional[datetime] = None) -> DecodeResult:
        result = self.decode(encoded)
        if not result.ok:
            return result
        error = self.check_validity(result.payload, now)
        if error is not None:
            return DecodeResult(payload=result.payload, error=error, detail=error.value)
        return result


@lru_cache()
def get_payload_codec() -> PayloadCodec:
    settings = get_settings()
    return PayloadCodec(
        settings.TICKET_ENCRYPTION_KEY,
        previous_secrets=settings.TICKET_ENCRYPTION_PREVIOUS_KEYS,
        max_age=timedelta(hours=settings.PAYLOAD_MAX_AGE_HOURS),
    )
