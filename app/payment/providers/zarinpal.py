"""
ZarinPal v4 REST client.

- request_payment(amount_toman, description, callback_url) -> PaymentRequestResult
- verify_payment(authority, amount_toman) -> GatewayVerificationResult

Both calls speak the gateway's JSON envelope ``{"data": {...} | null, "errors": [...]}``.
Transport errors, non-2xx statuses and unparsable bodies are normalized into
GatewayRequestFailed / GatewayVerificationFailed so callers only handle one
failure type per operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type

import httpx

from app.config import ZarinpalSettings
from app.payment.errors import (
    ConfigurationError,
    GatewayError,
    GatewayRequestFailed,
    GatewayVerificationFailed,
)
from app.utils.money import to_minor_units

REQUEST_SUCCESS_CODES = {100}
# 101: already verified earlier for this authority
VERIFY_SUCCESS_CODES = {100, 101}


@dataclass(frozen=True)
class PaymentRequestResult:
    authority: str
    redirect_url: str


@dataclass(frozen=True)
class GatewayVerificationResult:
    status: int
    ref_id: int
    amount_rial: int
    card_pan: Optional[str] = None
    card_hash: Optional[str] = None


def _first_error_message(errors: Any) -> Optional[str]:
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, dict) and first.get("message"):
            return str(first["message"])
        return str(first)
    if isinstance(errors, dict) and errors.get("message"):
        # Some gateway versions return a single error object instead of a list
        return str(errors["message"])
    return None


def _has_errors(errors: Any) -> bool:
    if isinstance(errors, list):
        return len(errors) > 0
    if isinstance(errors, dict):
        return len(errors) > 0
    return False


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class ZarinpalClient:
    def __init__(
        self,
        config: ZarinpalSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        timeout = httpx.Timeout(config.timeout_seconds, connect=min(config.timeout_seconds, 10.0))
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "Accept": "application/json"}

    def _merchant_id(self) -> str:
        if not self.config.merchant_id:
            raise ConfigurationError("ZarinPal merchant id is not configured")
        return self.config.merchant_id

    async def _post(
        self,
        url: str,
        payload: Dict[str, Any],
        error_cls: Type[GatewayError],
        fallback_message: str,
    ) -> Tuple[httpx.Response, Optional[Dict[str, Any]], Any, Optional[str]]:
        """POST the payload and split the envelope into (response, data, errors, raw_body)."""
        try:
            resp = await self._client.post(url, json=payload, headers=self._headers())
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # a malformed base URL surfaces as InvalidURL or ValueError before any I/O
            raise error_cls(f"{fallback_message}: {e.__class__.__name__}: {e}") from e

        body: Any = None
        raw_body: Optional[str] = None
        try:
            body = resp.json()
        except ValueError:
            raw_body = resp.text
        if body is not None and not isinstance(body, dict):
            raw_body = resp.text
            body = None

        data = (body or {}).get("data")
        if not isinstance(data, dict):
            data = None
        errors = (body or {}).get("errors")
        return resp, data, errors, raw_body

    async def request_payment(self, amount_toman: int, description: str, callback_url: str) -> PaymentRequestResult:
        merchant_id = self._merchant_id()
        payload = {
            "merchant_id": merchant_id,
            "amount": to_minor_units(amount_toman),
            "callback_url": callback_url,
            "description": description,
        }
        resp, data, errors, raw_body = await self._post(
            self.config.request_endpoint, payload, GatewayRequestFailed, "Payment request failed"
        )
        code = data.get("code") if data else None
        authority = str(data.get("authority") or "") if data else ""
        if (
            not resp.is_success
            or data is None
            or not isinstance(code, int)
            or code not in REQUEST_SUCCESS_CODES
            or _has_errors(errors)
            or not authority
        ):
            message = (
                _first_error_message(errors)
                or (data or {}).get("message")
                or raw_body
                or "Payment request failed"
            )
            raise GatewayRequestFailed(str(message), code=code if isinstance(code, int) else None, http_status=resp.status_code)

        return PaymentRequestResult(authority=authority, redirect_url=self.build_redirect_url(authority))

    async def verify_payment(self, authority: str, amount_toman: int) -> GatewayVerificationResult:
        merchant_id = self._merchant_id()
        payload = {
            "merchant_id": merchant_id,
            "authority": authority,
            "amount": to_minor_units(amount_toman),
        }
        resp, data, errors, raw_body = await self._post(
            self.config.verify_endpoint, payload, GatewayVerificationFailed, "Payment verification failed"
        )
        code = data.get("code") if data else None
        if not resp.is_success or data is None or _has_errors(errors):
            message = (
                _first_error_message(errors)
                or (data or {}).get("message")
                or raw_body
                or "Payment verification failed"
            )
            raise GatewayVerificationFailed(str(message), code=code if isinstance(code, int) else None, http_status=resp.status_code)

        if code not in VERIFY_SUCCESS_CODES:
            message = data.get("message") or raw_body or "Payment was not successful"
            raise GatewayVerificationFailed(str(message), code=code if isinstance(code, int) else None, http_status=resp.status_code)

        return GatewayVerificationResult(
            status=int(code),
            ref_id=_as_int(data.get("ref_id")),
            amount_rial=_as_int(data.get("amount")),
            card_pan=data.get("card_pan") or data.get("card_mask") or None,
            card_hash=data.get("card_hash") or None,
        )

    def build_redirect_url(self, authority: str) -> str:
        url = f"{self.config.payment_base_url.rstrip('/')}/{authority}"
        if self.config.direct:
            url += "?direct=true"
        return url

    async def aclose(self) -> None:
        await self._client.aclose()
