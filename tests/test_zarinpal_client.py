from __future__ import annotations

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from app.config import ZarinpalSettings
from app.payment.errors import ConfigurationError, GatewayRequestFailed, GatewayVerificationFailed
from app.payment.providers.zarinpal import ZarinpalClient


def _client(settings: ZarinpalSettings, handler: Callable[[httpx.Request], httpx.Response]) -> ZarinpalClient:
    return ZarinpalClient(settings, transport=httpx.MockTransport(handler))


def _recorder(response: httpx.Response) -> tuple[List[Dict[str, Any]], Callable[[httpx.Request], httpx.Response]]:
    seen: List[Dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append({"url": str(request.url), "json": json.loads(request.content)})
        return response

    return seen, handler


@pytest.mark.asyncio
async def test_request_payment_converts_amount_and_builds_redirect(zp_settings: ZarinpalSettings) -> None:
    seen, handler = _recorder(httpx.Response(200, json={"data": {"code": 100, "message": "Success", "authority": "A1"}, "errors": []}))
    client = _client(zp_settings, handler)
    try:
        result = await client.request_payment(500000, "شارژ حساب", "https://app.example.test/cb?state=x&sig=y")
    finally:
        await client.aclose()

    assert result.authority == "A1"
    assert result.redirect_url == "https://www.zarinpal.test/pg/StartPay/A1"
    assert seen[0]["url"] == "https://api.zarinpal.test/pg/v4/payment/request.json"
    body = seen[0]["json"]
    assert body["amount"] == 5_000_000
    assert body["merchant_id"] == zp_settings.merchant_id
    assert body["callback_url"].endswith("state=x&sig=y")
    assert body["description"] == "شارژ حساب"


@pytest.mark.asyncio
async def test_request_payment_direct_flag(zp_settings: ZarinpalSettings) -> None:
    from dataclasses import replace

    _, handler = _recorder(httpx.Response(200, json={"data": {"code": 100, "authority": "A9"}, "errors": []}))
    client = _client(replace(zp_settings, direct=True), handler)
    try:
        result = await client.request_payment(1000, "d", "https://cb")
    finally:
        await client.aclose()
    assert result.redirect_url.endswith("/A9?direct=true")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, expected",
    [
        (httpx.Response(200, json={"data": {"code": -9, "message": "validation"}, "errors": []}), "validation"),
        (httpx.Response(200, json={"data": [], "errors": {"code": -10, "message": "Terminal is not valid"}}), "Terminal is not valid"),
        (httpx.Response(200, json={"data": {"code": 100, "authority": "A1"}, "errors": [{"message": "merchant suspended"}]}), "merchant suspended"),
        (httpx.Response(502, text="<html>Bad Gateway</html>"), "<html>Bad Gateway</html>"),
        (httpx.Response(500, json={"data": None, "errors": []}), "Payment request failed"),
    ],
)
async def test_request_payment_failures(zp_settings: ZarinpalSettings, response: httpx.Response, expected: str) -> None:
    _, handler = _recorder(response)
    client = _client(zp_settings, handler)
    try:
        with pytest.raises(GatewayRequestFailed) as exc:
            await client.request_payment(1000, "d", "https://cb")
    finally:
        await client.aclose()
    assert expected in str(exc.value)


@pytest.mark.asyncio
async def test_transport_error_is_normalized(zp_settings: ZarinpalSettings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(zp_settings, handler)
    try:
        with pytest.raises(GatewayRequestFailed) as req_exc:
            await client.request_payment(1000, "d", "https://cb")
        with pytest.raises(GatewayVerificationFailed) as ver_exc:
            await client.verify_payment("A1", 1000)
    finally:
        await client.aclose()
    assert "connection refused" in str(req_exc.value)
    assert "ConnectError" in str(ver_exc.value)


@pytest.mark.asyncio
async def test_malformed_api_base_url_is_normalized(zp_settings: ZarinpalSettings) -> None:
    from dataclasses import replace

    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(replace(zp_settings, api_base_url="http://[::1"), handler)
    try:
        with pytest.raises(GatewayRequestFailed):
            await client.request_payment(1000, "d", "https://cb")
        with pytest.raises(GatewayVerificationFailed):
            await client.verify_payment("A1", 1000)
    finally:
        await client.aclose()
    assert calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [100, 101])
async def test_verify_payment_success_codes(zp_settings: ZarinpalSettings, code: int) -> None:
    seen, handler = _recorder(
        httpx.Response(
            200,
            json={
                "data": {
                    "code": code,
                    "message": "Verified",
                    "ref_id": 201,
                    "card_pan": "502229******5995",
                    "card_hash": "1EBE3EBEBE35C7EC0F8D6EE4F2F859107A87822CA179BC9528767EA7B5489B69",
                    "amount": 5_000_000,
                },
                "errors": [],
            },
        )
    )
    client = _client(zp_settings, handler)
    try:
        result = await client.verify_payment("A1", 500000)
    finally:
        await client.aclose()

    assert seen[0]["url"].endswith("/verify.json")
    assert seen[0]["json"] == {"merchant_id": zp_settings.merchant_id, "authority": "A1", "amount": 5_000_000}
    assert result.status == code
    assert result.ref_id == 201
    assert result.amount_rial == 5_000_000
    assert result.card_pan == "502229******5995"


@pytest.mark.asyncio
async def test_verify_payment_tolerates_missing_card_fields(zp_settings: ZarinpalSettings) -> None:
    _, handler = _recorder(httpx.Response(200, json={"data": {"code": 101, "ref_id": 7, "card_mask": "6037**1234"}, "errors": []}))
    client = _client(zp_settings, handler)
    try:
        result = await client.verify_payment("A1", 1000)
    finally:
        await client.aclose()
    assert result.card_pan == "6037**1234"
    assert result.card_hash is None
    assert result.amount_rial == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, expected",
    [
        (httpx.Response(200, json={"data": {"code": -51, "message": "Session is not valid"}, "errors": []}), "Session is not valid"),
        (httpx.Response(200, json={"data": {"code": 102}, "errors": []}), "Payment was not successful"),
        (httpx.Response(200, json={"data": [], "errors": {"code": -50, "message": "Amount mismatch"}}), "Amount mismatch"),
        (httpx.Response(200, text="not json"), "not json"),
    ],
)
async def test_verify_payment_failures(zp_settings: ZarinpalSettings, response: httpx.Response, expected: str) -> None:
    _, handler = _recorder(response)
    client = _client(zp_settings, handler)
    try:
        with pytest.raises(GatewayVerificationFailed) as exc:
            await client.verify_payment("A1", 1000)
    finally:
        await client.aclose()
    assert expected in str(exc.value)


@pytest.mark.asyncio
async def test_missing_merchant_id_fails_before_network(zp_settings: ZarinpalSettings) -> None:
    from dataclasses import replace

    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(replace(zp_settings, merchant_id=""), handler)
    try:
        with pytest.raises(ConfigurationError):
            await client.request_payment(1000, "d", "https://cb")
    finally:
        await client.aclose()
    assert calls == []
