"""
Signed payment state carried through the gateway redirect.

The callback leg runs in a fresh request with no server-side session, so the
initiation leg packs ``user_id:amount_toman:timestamp`` into a URL-safe token
and signs it with HMAC-SHA-256. On return the signature is checked before any
field of the token is trusted, then the token age is bounded.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional

from app.config import ZarinpalSettings
from app.payment.errors import ConfigurationError, Expired, InvalidSignature, MalformedState
from app.utils.time import now_ms as _now_ms

STATE_DELIMITER = ":"
MAX_STATE_AGE_MS = 30 * 60 * 1000  # 30 minutes


@dataclass(frozen=True)
class PaymentStatePayload:
    user_id: str
    amount_toman: int
    timestamp: int


@dataclass(frozen=True)
class SignedState:
    state: str
    signature: str


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("ascii"))


def _parse_int(raw: str) -> int:
    raw = raw.strip()
    if not raw or not raw.lstrip("-").isdigit():
        raise ValueError(raw)
    return int(raw)


class StateCodec:
    @staticmethod
    def encode(payload: PaymentStatePayload) -> str:
        if not payload.user_id or STATE_DELIMITER in payload.user_id:
            raise ValueError("user_id must be non-empty and must not contain ':'")
        raw = f"{payload.user_id}{STATE_DELIMITER}{int(payload.amount_toman)}{STATE_DELIMITER}{int(payload.timestamp)}"
        return _b64url(raw.encode("utf-8"))

    @staticmethod
    def decode(token: str) -> PaymentStatePayload:
        try:
            decoded = _b64url_decode(token).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise MalformedState(f"Invalid payment state payload: {e}") from e
        parts = decoded.split(STATE_DELIMITER)
        if len(parts) != 3 or not all(parts):
            raise MalformedState("Invalid payment state payload")
        user_id, amount_str, timestamp_str = parts
        try:
            amount_toman = _parse_int(amount_str)
            timestamp = _parse_int(timestamp_str)
        except ValueError as e:
            raise MalformedState("Invalid payment state payload") from e
        return PaymentStatePayload(user_id=user_id, amount_toman=amount_toman, timestamp=timestamp)


class StateSigner:
    def __init__(self, secret: Optional[str]) -> None:
        self._secret = secret or ""

    def _key(self) -> bytes:
        if not self._secret:
            raise ConfigurationError("ZARINPAL_CALLBACK_SECRET is not configured")
        return self._secret.encode("utf-8")

    def sign(self, token: str) -> str:
        return hmac.new(self._key(), token.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, token: str, signature: str) -> bool:
        expected = self.sign(token)
        return hmac.compare_digest(expected.encode("ascii"), (signature or "").encode("utf-8"))


class PaymentStateProtocol:
    def __init__(self, signer: StateSigner, *, max_age_ms: int = MAX_STATE_AGE_MS) -> None:
        self.signer = signer
        self.max_age_ms = max_age_ms

    @classmethod
    def from_settings(cls, zp: ZarinpalSettings) -> "PaymentStateProtocol":
        return cls(StateSigner(zp.callback_secret))

    def create_state(self, user_id: str, amount_toman: int, now_ms: Optional[int] = None) -> SignedState:
        ts = _now_ms() if now_ms is None else int(now_ms)
        token = StateCodec.encode(PaymentStatePayload(user_id=user_id, amount_toman=int(amount_toman), timestamp=ts))
        return SignedState(state=token, signature=self.signer.sign(token))

    def verify_state(self, state: str, signature: str, now_ms: Optional[int] = None) -> PaymentStatePayload:
        # Signature first: nothing inside the token is parsed until it is authentic.
        if not self.signer.verify(state, signature):
            raise InvalidSignature("Invalid payment signature")
        payload = StateCodec.decode(state)
        now = _now_ms() if now_ms is None else int(now_ms)
        age = now - payload.timestamp
        if age < 0 or age > self.max_age_ms:
            raise Expired("Payment request expired")
        return payload
