"""
Wallet top-up checkout over ZarinPal.

Two independent legs share nothing in memory:

1. initiate(): validate the amount, sign {user_id, amount, now} into the
   callback URL, ask the gateway for an authority and hand back its redirect URL.
2. handle_callback(): on the gateway redirect, check Status, verify the signed
   state, verify the payment with the gateway, then credit the wallet using the
   authority as the ledger reference so duplicate callbacks never double-credit.

handle_callback() never raises: every failure becomes a terminal CallbackOutcome.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Protocol
from urllib.parse import urlencode

from app.config import ZarinpalSettings
from app.payment.errors import (
    PaymentError,
    StateError,
    ValidationError,
)
from app.payment.providers.zarinpal import GatewayVerificationResult, PaymentRequestResult
from app.payment.state import PaymentStateProtocol
from app.services.wallet_ledger import BalanceLedger
from app.utils.money import format_toman, to_major_units

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/billing/checkout/callback"
GATEWAY_NAME = "zarinpal"
SUPPORT_HINT = "در صورت کسر مبلغ از حساب، لطفاً پشتیبانی را مطلع کنید."


class CheckoutState(str, enum.Enum):
    INITIATING = "initiating"
    AWAITING_GATEWAY_REDIRECT = "awaiting_gateway_redirect"
    CALLBACK_RECEIVED = "callback_received"
    VERIFIED = "verified"
    REJECTED = "rejected"
    FAILED = "failed"
    INVALID = "invalid"


class PaymentGateway(Protocol):
    async def request_payment(self, amount_toman: int, description: str, callback_url: str) -> PaymentRequestResult: ...

    async def verify_payment(self, authority: str, amount_toman: int) -> GatewayVerificationResult: ...


class CheckoutObserver(Protocol):
    def on_transition(self, state: CheckoutState, **details: Any) -> None: ...


class LoggingCheckoutObserver:
    """Writes one structured log line per checkout transition."""

    _LEVELS = {
        CheckoutState.FAILED: logging.WARNING,
        CheckoutState.INVALID: logging.INFO,
        CheckoutState.REJECTED: logging.INFO,
    }

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logger

    def on_transition(self, state: CheckoutState, **details: Any) -> None:
        level = self._LEVELS.get(state, logging.INFO)
        self.log.log(level, "checkout.%s", state.value, extra={"extra": {"checkout_state": state.value, **details}})


@dataclass(frozen=True)
class CheckoutInitiation:
    authority: str
    redirect_url: str
    amount_toman: int


@dataclass
class CallbackOutcome:
    status: CheckoutState
    title: str
    message: str
    user_id: Optional[str] = None
    authority: Optional[str] = None
    credited_toman: Optional[int] = None
    balance_toman: Optional[int] = None
    ref_id: Optional[int] = None
    error: Optional[PaymentError] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is CheckoutState.VERIFIED


def normalize_amount(value: Any) -> int:
    """Coerce a requested amount to a whole number of Toman or raise ValidationError."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("amount must be a number", user_message="مبلغ نامعتبر است.")
    if isinstance(value, int):
        return value
    try:
        d = Decimal(str(value).strip())
    except Exception as e:
        raise ValidationError(f"amount is not numeric: {value!r}", user_message="مبلغ نامعتبر است.") from e
    if not d.is_finite():
        raise ValidationError("amount must be finite", user_message="مبلغ نامعتبر است.")
    if d != d.to_integral_value():
        raise ValidationError("amount must be a whole number of Toman", user_message="مبلغ باید عدد صحیح (تومان) باشد.")
    return int(d)


class CheckoutOrchestrator:
    def __init__(
        self,
        config: ZarinpalSettings,
        protocol: PaymentStateProtocol,
        gateway: PaymentGateway,
        ledger: BalanceLedger,
        observer: Optional[CheckoutObserver] = None,
    ) -> None:
        self.config = config
        self.protocol = protocol
        self.gateway = gateway
        self.ledger = ledger
        self.observer: CheckoutObserver = observer or LoggingCheckoutObserver()

    def _emit(self, state: CheckoutState, **details: Any) -> None:
        try:
            self.observer.on_transition(state, **details)
        except Exception:
            # Never let an observer break the payment flow
            logger.exception("checkout observer failed", extra={"extra": {"checkout_state": state.value}})

    def build_callback_url(self, state: str, signature: str) -> str:
        base = self.config.callback_base_url.rstrip("/")
        return f"{base}{CALLBACK_PATH}?{urlencode({'state': state, 'sig': signature})}"

    async def initiate(
        self,
        user_id: str,
        amount_toman: Any,
        description: Optional[str] = None,
        now_ms: Optional[int] = None,
    ) -> CheckoutInitiation:
        self._emit(CheckoutState.INITIATING, user_id=user_id, requested=str(amount_toman))
        try:
            amount = normalize_amount(amount_toman)
            if amount <= 0 or amount < self.config.min_topup_toman:
                raise ValidationError(
                    f"amount {amount} below minimum {self.config.min_topup_toman}",
                    user_message=f"حداقل مبلغ قابل شارژ {format_toman(self.config.min_topup_toman)} است.",
                )
        except ValidationError as e:
            self._emit(CheckoutState.INVALID, user_id=user_id, reason=str(e))
            raise

        signed = self.protocol.create_state(user_id, amount, now_ms)
        callback_url = self.build_callback_url(signed.state, signed.signature)
        desc = (description or f"شارژ حساب {format_toman(amount)}")[:255]

        result = await self.gateway.request_payment(amount, desc, callback_url)
        self._emit(
            CheckoutState.AWAITING_GATEWAY_REDIRECT,
            user_id=user_id,
            amount_toman=amount,
            authority=result.authority,
        )
        return CheckoutInitiation(authority=result.authority, redirect_url=result.redirect_url, amount_toman=amount)

    async def handle_callback(self, params: Mapping[str, str], now_ms: Optional[int] = None) -> CallbackOutcome:
        status = params.get("Status")
        authority = params.get("Authority")
        state = params.get("state")
        signature = params.get("sig")
        self._emit(CheckoutState.CALLBACK_RECEIVED, gateway_status=status, authority=authority)

        if not authority or not state or not signature:
            return self._rejected("تراکنش نامعتبر", "اطلاعات بازگشت از درگاه ناقص است.", authority=authority, reason="missing_params")

        if status != "OK":
            return self._rejected(
                "تراکنش ناموفق", "پرداخت توسط کاربر لغو شد یا تایید نشد.", authority=authority, reason="cancelled"
            )

        try:
            payload = self.protocol.verify_state(state, signature, now_ms)
        except StateError as e:
            return self._failed(e, authority=authority)
        except PaymentError as e:
            # ConfigurationError: the secret is missing on this instance
            logger.error("checkout callback cannot verify state: %s", e)
            return self._failed(e, authority=authority)

        try:
            verification = await self.gateway.verify_payment(authority, payload.amount_toman)
        except PaymentError as e:
            return self._failed(e, authority=authority, user_id=payload.user_id, hint=SUPPORT_HINT)

        paid_toman = to_major_units(verification.amount_rial)
        credited = paid_toman if paid_toman > 0 else payload.amount_toman
        metadata = {
            "gateway": GATEWAY_NAME,
            "authority": authority,
            "ref_id": verification.ref_id,
            "card_pan": verification.card_pan,
            "card_hash": verification.card_hash,
            "status": verification.status,
            "reported_amount_rial": verification.amount_rial,
        }
        try:
            await self.ledger.adjust_balance(
                user_id=payload.user_id,
                amount_toman=credited,
                type="topup",
                description="شارژ حساب از طریق زرین پال",
                reference=authority,
                metadata=metadata,
            )
            balance = await self.ledger.get_balance(payload.user_id)
        except Exception as e:
            logger.exception("checkout ledger credit failed", extra={"extra": {"authority": authority, "user_id": payload.user_id}})
            err = PaymentError(str(e), user_message="ثبت شارژ در کیف پول ناموفق بود.")
            return self._failed(err, authority=authority, user_id=payload.user_id, hint=SUPPORT_HINT)

        self._emit(
            CheckoutState.VERIFIED,
            user_id=payload.user_id,
            authority=authority,
            ref_id=verification.ref_id,
            credited_toman=credited,
            reported_amount_rial=verification.amount_rial,
            gateway_code=verification.status,
        )
        return CallbackOutcome(
            status=CheckoutState.VERIFIED,
            title="پرداخت موفق",
            message=f"مبلغ {format_toman(credited)} با موفقیت به کیف پول شما افزوده شد.",
            user_id=payload.user_id,
            authority=authority,
            credited_toman=credited,
            balance_toman=balance,
            ref_id=verification.ref_id,
            details=metadata,
        )

    def _rejected(self, title: str, message: str, *, authority: Optional[str], reason: str) -> CallbackOutcome:
        self._emit(CheckoutState.REJECTED, authority=authority, reason=reason)
        return CallbackOutcome(status=CheckoutState.REJECTED, title=title, message=message, authority=authority)

    def _failed(
        self,
        error: PaymentError,
        *,
        authority: Optional[str],
        user_id: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> CallbackOutcome:
        self._emit(
            CheckoutState.FAILED,
            authority=authority,
            user_id=user_id,
            error=error.__class__.__name__,
            reason=str(error),
        )
        message = error.user_message if not hint else f"{error.user_message}\n{hint}"
        return CallbackOutcome(
            status=CheckoutState.FAILED,
            title="تایید پرداخت ناموفق",
            message=message,
            user_id=user_id,
            authority=authority,
            error=error,
        )
