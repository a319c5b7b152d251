from __future__ import annotations

import pytest

import app.main as app_main
from app.config import Settings, ZarinpalSettings


def _patch_settings(monkeypatch: pytest.MonkeyPatch, **overrides) -> None:
    monkeypatch.setattr(app_main, "setup_logging", lambda: None)
    monkeypatch.setattr(app_main, "settings", Settings(**overrides))


def test_production_without_gateway_config_exits_1(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_settings(
        monkeypatch,
        app_env="production",
        telegram_bot_token="x",
        db_url="sqlite+aiosqlite:///:memory:",
        zarinpal=ZarinpalSettings(merchant_id="", callback_secret=""),
    )
    with pytest.raises(SystemExit) as exc:
        app_main.run()
    assert exc.value.code == 1


def test_missing_db_url_exits_1(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_settings(
        monkeypatch,
        app_env="development",
        telegram_bot_token="x",
        db_url="",
        zarinpal=ZarinpalSettings(merchant_id="m", callback_secret="s"),
    )
    with pytest.raises(SystemExit) as exc:
        app_main.run()
    assert exc.value.code == 1
