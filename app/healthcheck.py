import asyncio
import os
import sys
from typing import List

import httpx
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

# Healthcheck: validate ENV (bot token, DB, ZarinPal merchant id + callback secret),
# DB connectivity (SELECT 1) and optional reachability of the ZarinPal API host.
#
# Skip the gateway probe with HEALTHCHECK_SKIP_GATEWAY=1 (e.g. offline staging).

REQUIRED_ENV = (
    "TELEGRAM_BOT_TOKEN",
    "DB_URL",
    "ZARINPAL_MERCHANT_ID",
    "ZARINPAL_CALLBACK_SECRET",
)


def missing_env() -> List[str]:
    return [key for key in REQUIRED_ENV if not (os.getenv(key) or "").strip()]


async def _check_db() -> bool:
    db_url = os.getenv("DB_URL", "")
    if not db_url:
        return False
    try:
        engine = create_async_engine(db_url, pool_pre_ping=True)
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        await engine.dispose()
        return True
    except Exception:
        return False


async def _check_gateway() -> bool:
    from app.config import ZarinpalSettings

    zp = ZarinpalSettings.from_env()
    try:
        timeout = httpx.Timeout(12.0, connect=6.0, read=6.0)
        async with httpx.AsyncClient(timeout=timeout) as client:
            # Any HTTP answer (even 4xx for an empty body) proves the API host is up
            resp = await client.post(zp.request_endpoint, json={}, headers={"Accept": "application/json"})
            return resp.status_code < 500
    except httpx.HTTPError:
        return False


def main() -> int:
    missing = missing_env()
    if missing:
        print("missing " + ",".join(missing), file=sys.stderr)
        return 1

    ok_db = asyncio.run(_check_db())
    if not ok_db:
        print("db not ready", file=sys.stderr)
        return 1

    skip_gw = (os.getenv("HEALTHCHECK_SKIP_GATEWAY", "0").strip().lower() in {"1", "true", "yes", "on"})
    if not skip_gw:
        ok_gw = asyncio.run(_check_gateway())
        if not ok_gw:
            print("zarinpal not reachable", file=sys.stderr)
            return 1

    print("ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
