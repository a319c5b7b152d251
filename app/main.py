import asyncio
import logging

from aiogram import Bot, Dispatcher

from app.bot.handlers import wallet as wallet_handlers
from app.config import settings
from app.db.session import dispose_engine, get_session_maker
from app.logging_config import setup_logging
from app.payment.checkout import CheckoutOrchestrator, LoggingCheckoutObserver
from app.payment.providers.zarinpal import ZarinpalClient
from app.payment.state import PaymentStateProtocol
from app.services.wallet_ledger import SqlBalanceLedger
from app.web.server import create_app, start_site


def build_checkout(ledger: SqlBalanceLedger, client: ZarinpalClient) -> CheckoutOrchestrator:
    zp = settings.zarinpal
    return CheckoutOrchestrator(
        config=zp,
        protocol=PaymentStateProtocol.from_settings(zp),
        gateway=client,
        ledger=ledger,
        observer=LoggingCheckoutObserver(logging.getLogger("app.payment.checkout")),
    )


async def main() -> None:
    setup_logging()

    missing = settings.zarinpal.warn_if_incomplete()
    if missing and settings.is_production:
        logging.error("payment gateway not configured: %s", ", ".join(missing))
        raise SystemExit(1)

    if not settings.db_url:
        logging.error("DB_URL تنظیم نشده است. آن را در فایل .env قرار دهید.")
        raise SystemExit(1)

    token = settings.telegram_bot_token
    if not token:
        logging.error("TELEGRAM_BOT_TOKEN تنظیم نشده است. آن را در فایل .env قرار دهید.")
        raise SystemExit(1)

    ledger = SqlBalanceLedger(get_session_maker())
    client = ZarinpalClient(settings.zarinpal)
    checkout = build_checkout(ledger, client)

    runner = await start_site(create_app(checkout), settings.web_host, settings.web_port)

    bot = Bot(token=token)
    dp = Dispatcher()
    # Injected into handlers by parameter name
    dp["checkout"] = checkout
    dp["ledger"] = ledger
    dp.include_router(wallet_handlers.router)

    logging.info("Starting Telegram bot polling ...")
    await bot.delete_webhook(drop_pending_updates=True)
    try:
        await dp.start_polling(bot)
    finally:
        await bot.session.close()
        await runner.cleanup()
        await client.aclose()
        await dispose_engine()


def run() -> None:
    # SystemExit propagates so a refused start keeps its non-zero exit code
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
