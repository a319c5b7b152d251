from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

try:
    # Optional: load .env in non-production environments
    from dotenv import load_dotenv  # type: ignore
    load_dotenv()
except Exception:
    pass


def _bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _int(val: str | None, default: int) -> int:
    try:
        return int(str(val).strip())
    except (TypeError, ValueError):
        return default


def _float(val: str | None, default: float) -> float:
    try:
        return float(str(val).strip())
    except (TypeError, ValueError):
        return default


def _positive_float(val: str | None, default: float) -> float:
    parsed = _float(val, default)
    # non-positive (and NaN) values fall back to the default
    return parsed if parsed > 0 else default


@dataclass(frozen=True)
class ZarinpalSettings:
    merchant_id: str = ""
    api_base_url: str = "https://sandbox.zarinpal.com/pg/v4/payment"
    payment_base_url: str = "https://sandbox.zarinpal.com/pg/StartPay"
    callback_secret: str = ""
    callback_base_url: str = "http://localhost:8080"
    result_redirect_url: str = "http://localhost:8080"
    min_topup_toman: int = 1000
    direct: bool = False
    timeout_seconds: float = 15.0

    @classmethod
    def from_env(cls) -> "ZarinpalSettings":
        app_url = os.getenv("APP_URL", "").strip()
        callback_base = os.getenv("ZARINPAL_CALLBACK_BASE_URL", "").strip() or app_url or cls.callback_base_url
        return cls(
            merchant_id=os.getenv("ZARINPAL_MERCHANT_ID", "").strip(),
            api_base_url=os.getenv("ZARINPAL_API_BASE_URL", "").strip() or cls.api_base_url,
            payment_base_url=os.getenv("ZARINPAL_PAYMENT_BASE_URL", "").strip() or cls.payment_base_url,
            callback_secret=os.getenv("ZARINPAL_CALLBACK_SECRET", ""),
            callback_base_url=callback_base,
            result_redirect_url=os.getenv("ZARINPAL_RESULT_REDIRECT", "").strip() or app_url or callback_base,
            min_topup_toman=_int(os.getenv("ZARINPAL_MIN_TOPUP_TOMAN"), cls.min_topup_toman),
            direct=_bool(os.getenv("ZARINPAL_DIRECT"), False),
            timeout_seconds=_positive_float(os.getenv("ZARINPAL_TIMEOUT_SECONDS"), cls.timeout_seconds),
        )

    @property
    def request_endpoint(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/request.json"

    @property
    def verify_endpoint(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/verify.json"

    def missing(self) -> List[str]:
        keys: List[str] = []
        if not self.merchant_id:
            keys.append("ZARINPAL_MERCHANT_ID")
        if not self.callback_secret:
            keys.append("ZARINPAL_CALLBACK_SECRET")
        return keys

    def warn_if_incomplete(self, logger: Optional[logging.Logger] = None) -> List[str]:
        log = logger or logging.getLogger(__name__)
        missing = self.missing()
        if "ZARINPAL_MERCHANT_ID" in missing:
            log.warning("ZARINPAL_MERCHANT_ID is not defined. Payment initiation will fail until it is set.")
        if "ZARINPAL_CALLBACK_SECRET" in missing:
            log.warning("ZARINPAL_CALLBACK_SECRET is not defined. Set it to a random string to secure the payment callback.")
        return missing


@dataclass
class Settings:
    app_env: str = os.getenv("APP_ENV", "production")
    tz: str = os.getenv("TZ", "UTC")

    telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    db_url: str = os.getenv("DB_URL", "")

    web_host: str = os.getenv("WEB_HOST", "0.0.0.0")
    web_port: int = _int(os.getenv("WEB_PORT"), 8080)

    zarinpal: ZarinpalSettings = field(default_factory=ZarinpalSettings.from_env)

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"


settings = Settings()
