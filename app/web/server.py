from __future__ import annotations

import html
import logging
from typing import Optional

from aiohttp import web

from app.payment.checkout import CALLBACK_PATH, CallbackOutcome, CheckoutOrchestrator, CheckoutState
from app.utils.money import format_toman

logger = logging.getLogger(__name__)

CHECKOUT_KEY: web.AppKey[CheckoutOrchestrator] = web.AppKey("checkout", CheckoutOrchestrator)
RESULT_URL_KEY: web.AppKey[str] = web.AppKey("result_redirect_url", str)

_STYLE = (
    "body{font-family:sans-serif;max-width:480px;margin:48px auto;padding:0 16px;color:#111;"
    "background:#fafafa;direction:rtl;text-align:right;}"
    ".card{background:#fff;border-radius:12px;box-shadow:0 10px 40px rgba(0,0,0,0.08);padding:24px;}"
    "h1{font-size:1.25rem;margin-bottom:16px;} p{margin:8px 0;}"
    "a.button{display:inline-block;margin-top:16px;padding:10px 18px;border-radius:8px;"
    "background:#111;color:#fff;text-decoration:none;}"
)


def _no_store() -> dict[str, str]:
    return {"Cache-Control": "no-store"}


def render_page(title: str, body_html: str, back_url: str) -> str:
    # body_html is built by render_outcome from escaped fragments only
    return (
        '<!DOCTYPE html><html lang="fa"><head><meta charset="utf-8" />'
        f"<title>{html.escape(title)}</title><style>{_STYLE}</style></head>"
        f'<body><div class="card"><h1>{html.escape(title)}</h1>{body_html}'
        f'<a class="button" href="{html.escape(back_url, quote=True)}">بازگشت به برنامه</a></div></body></html>'
    )


def render_outcome(outcome: CallbackOutcome, back_url: str) -> str:
    lines = [f"<p>{html.escape(line)}</p>" for line in outcome.message.splitlines() if line.strip()]
    if outcome.status is CheckoutState.VERIFIED:
        if outcome.ref_id is not None:
            lines.append(f"<p>کد پیگیری: <strong>{html.escape(str(outcome.ref_id))}</strong></p>")
        if outcome.balance_toman is not None:
            lines.append(f"<p>موجودی فعلی: <strong>{html.escape(format_toman(outcome.balance_toman))}</strong></p>")
    return render_page(outcome.title, "".join(lines), back_url)


async def checkout_callback(request: web.Request) -> web.Response:
    checkout = request.app[CHECKOUT_KEY]
    outcome = await checkout.handle_callback(request.query)
    body = render_outcome(outcome, request.app[RESULT_URL_KEY])
    return web.Response(text=body, content_type="text/html", charset="utf-8", headers=_no_store())


async def healthz(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"}, headers=_no_store())


def create_app(checkout: CheckoutOrchestrator, result_redirect_url: Optional[str] = None) -> web.Application:
    app = web.Application()
    app[CHECKOUT_KEY] = checkout
    app[RESULT_URL_KEY] = result_redirect_url or checkout.config.result_redirect_url
    app.router.add_get(CALLBACK_PATH, checkout_callback)
    app.router.add_get("/healthz", healthz)
    return app


async def start_site(app: web.Application, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=host, port=port)
    await site.start()
    logger.info("callback server listening", extra={"extra": {"host": host, "port": port, "path": CALLBACK_PATH}})
    return runner
