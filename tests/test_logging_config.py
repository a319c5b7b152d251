from __future__ import annotations

import json
import logging

import pytest

from app.logging_config import JsonFormatter, _sanitize_obj, _sanitize_str, setup_logging


def test_sanitize_authorization_bearer_masked() -> None:
    s = "Authorization: Bearer ABCDEFGHIJKLMNOP"
    out = _sanitize_str(s)
    assert "Bearer [REDACTED]" in out


def test_sanitize_callback_url_state_and_sig_masked() -> None:
    s = "https://app.example/api/billing/checkout/callback?state=dTE6NTAwMDAwOjE3&sig=abcdef0123&Status=OK"
    out = _sanitize_str(s)
    assert "state=[REDACTED]" in out
    assert "sig=[REDACTED]" in out
    assert "Status=OK" in out
    assert "dTE6NTAwMDAwOjE3" not in out


def test_sanitize_merchant_id_kv_masked() -> None:
    s = '{"merchant_id":"1344b5d4-0048-11e8-94db-005056a205be","amount":1000}'
    out = _sanitize_str(s)
    assert '"merchant_id":"[REDACTED]"' in out
    assert '"amount":1000' in out


def test_sanitize_nested_objects() -> None:
    obj = {
        "callback_url": "https://app/cb?state=TOKEN123&sig=SIG456",
        "nested": [
            {"card_hash": "1EBE3EBEBE35C7EC0F8D"},
            {"callback_secret": "super-secret"},
            {"authority": "A0000000000000000000000000000012345"},
        ],
    }
    out = _sanitize_obj(obj)
    assert out["nested"][0]["card_hash"].startswith("***")
    assert out["nested"][1]["callback_secret"] == "[REDACTED]"
    # authority is the support reference; it must stay readable
    assert out["nested"][2]["authority"] == "A0000000000000000000000000000012345"
    assert "TOKEN123" not in out["callback_url"] and "SIG456" not in out["callback_url"]


def test_json_formatter_flattens_extra() -> None:
    record = logging.LogRecord("app.payment.checkout", logging.INFO, __file__, 1, "checkout.%s", ("verified",), None)
    record.extra = {"authority": "A1", "sig": "deadbeefcafe"}
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "checkout.verified"
    assert payload["authority"] == "A1"
    assert payload["sig"] == "***cafe"


def test_httpx_logger_level_warning_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("LOG_TO_FILE", "0")
    setup_logging()
    logger = logging.getLogger("httpx")
    assert logger.level == logging.WARNING or logger.getEffectiveLevel() == logging.WARNING
