from __future__ import annotations

import json
import logging
import logging.config
import os
import re
from typing import Any, Dict


# ================= Sensitive Data Masking ================= #
_BEARER_RE = re.compile(r"(Authorization\s*:\s*Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE)
# Signed payment state travelling in callback URLs: ...?state=<token>&sig=<hmac>
_STATE_QS_RE = re.compile(r"([?&](?:state|sig)=)([^&\s\"']+)", re.IGNORECASE)
# JSON-like merchant_id / callback secret pairs inside strings
_SECRET_KV_RE = re.compile(r"((?:merchant_id|callback_secret)\"?\s*[:=]\s*\"?)([A-Za-z0-9._-]+)", re.IGNORECASE)

_MASK_TAIL_KEYS = {"merchant_id", "card_hash", "sig", "signature"}
_REDACT_KEYS = {"callback_secret", "secret", "state"}
_URL_KEYS = {"url", "callback_url", "redirect_url", "authorization", "auth"}


def _mask_tail(val: str, keep: int = 4) -> str:
    if not isinstance(val, str):
        return val
    if len(val) <= keep:
        return "[REDACTED]"
    return "***" + val[-keep:]


def _sanitize_str(s: str) -> str:
    if not isinstance(s, str) or not s:
        return s
    # Mask Authorization Bearer tokens
    s = _BEARER_RE.sub(lambda m: m.group(1) + "[REDACTED]", s)
    # Mask signed state / signature query params in callback URLs
    s = _STATE_QS_RE.sub(lambda m: m.group(1) + "[REDACTED]", s)
    # Mask explicit merchant_id / secret kv pairs
    s = _SECRET_KV_RE.sub(lambda m: m.group(1) + "[REDACTED]", s)
    return s


def _sanitize_obj(obj: Any) -> Any:
    # Recursively sanitize dict/list/tuple and strings
    try:
        if isinstance(obj, dict):
            out: Dict[str, Any] = {}
            for k, v in obj.items():
                lk = str(k).lower()
                if lk in _REDACT_KEYS:
                    out[k] = "[REDACTED]" if v else v
                elif lk in _MASK_TAIL_KEYS:
                    out[k] = "[REDACTED]" if not isinstance(v, str) else _mask_tail(v)
                elif lk in _URL_KEYS:
                    out[k] = _sanitize_str(str(v))
                else:
                    out[k] = _sanitize_obj(v)
            return out
        if isinstance(obj, (list, tuple)):
            t = type(obj)
            return t(_sanitize_obj(v) for v in obj)
        if isinstance(obj, str):
            return _sanitize_str(obj)
    except Exception:
        return obj
    return obj


class SensitiveDataFilter(logging.Filter):
    """A logging filter that masks sensitive data in record message, args, and extra."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            # Sanitize message
            if isinstance(record.msg, str):
                record.msg = _sanitize_str(record.msg)
            # Sanitize args (format values)
            if record.args:
                if isinstance(record.args, tuple):
                    record.args = tuple(_sanitize_obj(a) for a in record.args)
                elif isinstance(record.args, dict):
                    record.args = _sanitize_obj(record.args)
            # Sanitize custom extra payload if present
            if hasattr(record, "extra") and isinstance(record.extra, dict):
                record.extra = _sanitize_obj(record.extra)
        except Exception:
            # Never break logging
            pass
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            # Flatten extra into the top-level payload
            payload.update(record.extra)
        # Final pass sanitization
        payload = _sanitize_obj(payload)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _bool(val: str | None, default: bool) -> bool:
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _file_writable(path: str) -> bool:
    try:
        log_dir = os.path.dirname(path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        with open(path, "a", encoding="utf-8"):
            pass
        return True
    except OSError:
        return False


def setup_logging() -> None:
    """Configure structured logging with payment-secret masking.

    ENV:
      - APP_ENV: production|staging|development (default: production)
      - LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO in prod, DEBUG otherwise)
      - LOG_FORMAT: json|text (default: json in prod, text otherwise)
      - LOG_TO_FILE: 1/0 (default: 1 if the log file is writable)
      - LOG_FILE_PATH: path to log file (default: ./logs/topup.log)
    """
    app_env = os.getenv("APP_ENV", "production").lower()
    production = app_env == "production"
    log_level = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    log_format = os.getenv("LOG_FORMAT", "json" if production else "text").lower()
    formatter = "json" if log_format == "json" else "plain"

    log_file_path = os.getenv("LOG_FILE_PATH", os.path.join(os.getcwd(), "logs", "topup.log"))
    env_log_to_file = os.getenv("LOG_TO_FILE")
    if env_log_to_file is None:
        log_to_file = _file_writable(log_file_path)
    else:
        log_to_file = _bool(env_log_to_file, False) and _file_writable(log_file_path)

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "stream": "ext://sys.stdout",
            "formatter": formatter,
            "filters": ["sensitive"],
        }
    }
    if log_to_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "filename": log_file_path,
            "maxBytes": 5 * 1024 * 1024,  # 5MB
            "backupCount": 3,
            "encoding": "utf-8",
            "delay": True,
            "formatter": formatter,
            "filters": ["sensitive"],
        }

    # Outbound gateway calls and access logs are noisy; keep them at WARNING in prod
    quiet_level = "WARNING" if production else "INFO"

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"sensitive": {"()": SensitiveDataFilter}},
        "formatters": {
            "json": {"()": JsonFormatter},
            "plain": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
        },
        "handlers": handlers,
        "root": {
            "level": log_level,
            "handlers": list(handlers.keys()),
        },
        "loggers": {
            "aiogram": {"level": log_level},
            "aiohttp.access": {"level": quiet_level},
            "httpx": {"level": quiet_level},
            "httpcore": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    }

    logging.config.dictConfig(config)

    logging.getLogger(__name__).info(
        "logging configured",
        extra={
            "extra": {
                "env": app_env,
                "level": log_level,
                "format": log_format,
                "to_file": log_to_file,
                "file": log_file_path if log_to_file else None,
            }
        },
    )
