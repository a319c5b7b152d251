from __future__ import annotations

import logging

import pytest

from app.config import ZarinpalSettings


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in [
        "ZARINPAL_MERCHANT_ID",
        "ZARINPAL_API_BASE_URL",
        "ZARINPAL_PAYMENT_BASE_URL",
        "ZARINPAL_CALLBACK_SECRET",
        "ZARINPAL_CALLBACK_BASE_URL",
        "ZARINPAL_RESULT_REDIRECT",
        "ZARINPAL_MIN_TOPUP_TOMAN",
        "ZARINPAL_DIRECT",
        "ZARINPAL_TIMEOUT_SECONDS",
        "APP_URL",
    ]:
        monkeypatch.delenv(key, raising=False)
    zp = ZarinpalSettings.from_env()
    assert zp.request_endpoint == "https://sandbox.zarinpal.com/pg/v4/payment/request.json"
    assert zp.verify_endpoint == "https://sandbox.zarinpal.com/pg/v4/payment/verify.json"
    assert zp.min_topup_toman == 1000
    assert zp.direct is False
    assert zp.missing() == ["ZARINPAL_MERCHANT_ID", "ZARINPAL_CALLBACK_SECRET"]


def test_from_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_URL", "https://chat.example")
    monkeypatch.delenv("ZARINPAL_CALLBACK_BASE_URL", raising=False)
    monkeypatch.delenv("ZARINPAL_RESULT_REDIRECT", raising=False)
    monkeypatch.setenv("ZARINPAL_MERCHANT_ID", "m-1")
    monkeypatch.setenv("ZARINPAL_CALLBACK_SECRET", "s")
    monkeypatch.setenv("ZARINPAL_MIN_TOPUP_TOMAN", "5000")
    monkeypatch.setenv("ZARINPAL_DIRECT", "true")
    monkeypatch.setenv("ZARINPAL_TIMEOUT_SECONDS", "7.5")
    zp = ZarinpalSettings.from_env()
    assert zp.callback_base_url == "https://chat.example"
    assert zp.result_redirect_url == "https://chat.example"
    assert zp.min_topup_toman == 5000
    assert zp.direct is True
    assert zp.timeout_seconds == 7.5
    assert zp.missing() == []


def test_incomplete_config_warns_loudly(caplog: pytest.LogCaptureFixture) -> None:
    zp = ZarinpalSettings(merchant_id="", callback_secret="")
    with caplog.at_level(logging.WARNING):
        missing = zp.warn_if_incomplete(logging.getLogger("test.config"))
    assert missing == ["ZARINPAL_MERCHANT_ID", "ZARINPAL_CALLBACK_SECRET"]
    assert "ZARINPAL_CALLBACK_SECRET is not defined" in caplog.text


@pytest.mark.parametrize("raw", ["0", "-3", "nan", "abc"])
def test_non_positive_timeout_falls_back_to_default(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("ZARINPAL_TIMEOUT_SECONDS", raw)
    assert ZarinpalSettings.from_env().timeout_seconds == 15.0
