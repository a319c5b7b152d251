"""
Error taxonomy for the ZarinPal top-up flow.

Every error carries a short Persian ``user_message`` that is safe to show on
the callback page or in the bot. ``str(err)`` keeps the operator-facing detail.
"""

from __future__ import annotations

from typing import Optional


class PaymentError(Exception):
    user_message = "خطا در پردازش پرداخت"

    def __init__(self, message: str = "", *, user_message: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class ConfigurationError(PaymentError):
    user_message = "درگاه پرداخت پیکربندی نشده است."


class ValidationError(PaymentError):
    user_message = "درخواست نامعتبر است."


class StateError(PaymentError):
    user_message = "اطلاعات تراکنش نامعتبر است."


class MalformedState(StateError):
    user_message = "اطلاعات تراکنش قابل خواندن نیست."


class InvalidSignature(StateError):
    user_message = "امضای تراکنش نامعتبر است."


class Expired(StateError):
    user_message = "مهلت تراکنش به پایان رسیده است."


class GatewayError(PaymentError):
    """Failure reported by (or while talking to) the payment gateway."""

    def __init__(self, message: str = "", *, code: Optional[int] = None, http_status: Optional[int] = None) -> None:
        super().__init__(message, user_message=message or None)
        self.code = code
        self.http_status = http_status


class GatewayRequestFailed(GatewayError):
    user_message = "ایجاد درخواست پرداخت ناموفق بود."


class GatewayVerificationFailed(GatewayError):
    user_message = "تایید پرداخت ناموفق بود."
