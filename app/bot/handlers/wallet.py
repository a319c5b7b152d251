from __future__ import annotations

import logging
from typing import Optional

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.types import Message, InlineKeyboardMarkup, InlineKeyboardButton, ReplyKeyboardMarkup, KeyboardButton

from app.payment.checkout import CheckoutOrchestrator
from app.payment.errors import ConfigurationError, GatewayRequestFailed, ValidationError
from app.services.wallet_ledger import SqlBalanceLedger
from app.utils.money import format_toman

router = Router()
logger = logging.getLogger(__name__)

TOPUP_BUTTON = "💳 شارژ کیف پول"

# Helpers
_DIGIT_MAP = str.maketrans(
    {
        "۰": "0", "۱": "1", "۲": "2", "۳": "3", "۴": "4",
        "۵": "5", "۶": "6", "۷": "7", "۸": "8", "۹": "9",
        ",": "", "٬": "", " ": "", "\u200f": "", "\u200e": "",
        "٫": ".",
    }
)


def _normalize_amount(txt: Optional[str]) -> str:
    # Convert Persian digits to ASCII, remove thousands separators/spaces
    return (txt or "").strip().translate(_DIGIT_MAP)


def _pay_keyboard(redirect_url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[InlineKeyboardButton(text="🔗 پرداخت با زرین‌پال", url=redirect_url)]])


def _wallet_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(keyboard=[[KeyboardButton(text=TOPUP_BUTTON)]], resize_keyboard=True)


@router.message(Command("topup"))
async def topup_command(message: Message, command: CommandObject, checkout: CheckoutOrchestrator, ledger: SqlBalanceLedger) -> None:
    if not message.from_user:
        return
    raw = _normalize_amount(command.args)
    if not raw:
        await message.answer(
            f"فرمت: /topup <مبلغ به تومان>\nحداقل مبلغ: {format_toman(checkout.config.min_topup_toman)}"
        )
        return
    await _start_topup(message, raw, checkout, ledger)


@router.message(F.text == TOPUP_BUTTON)
async def topup_button(message: Message, checkout: CheckoutOrchestrator) -> None:
    await message.answer(
        f"🔢 مبلغ شارژ را به تومان با دستور زیر ارسال کنید:\n/topup 50000\nحداقل مبلغ: {format_toman(checkout.config.min_topup_toman)}"
    )


async def _start_topup(message: Message, raw_amount: str, checkout: CheckoutOrchestrator, ledger: SqlBalanceLedger) -> None:
    tg_id = message.from_user.id
    user_id = await ledger.get_or_create_user(tg_id)
    try:
        started = await checkout.initiate(user_id, raw_amount)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.user_message}")
        return
    except GatewayRequestFailed as e:
        logger.warning("wallet.topup_gateway_failed", extra={"extra": {"uid": tg_id, "err": str(e), "code": e.code}})
        await message.answer(f"❌ ایجاد لینک پرداخت ناموفق بود: {e.user_message}")
        return
    except ConfigurationError:
        logger.error("wallet.topup_not_configured", extra={"extra": {"uid": tg_id}})
        await message.answer("❌ درگاه پرداخت در حال حاضر در دسترس نیست.")
        return
    logger.info("wallet.topup_started", extra={"extra": {"uid": tg_id, "amount": started.amount_toman, "authority": started.authority}})
    await message.answer(
        f"💳 مبلغ {format_toman(started.amount_toman)}\nبرای تکمیل پرداخت روی دکمه زیر بزنید. این لینک تا ۳۰ دقیقه معتبر است.",
        reply_markup=_pay_keyboard(started.redirect_url),
    )


@router.message(Command("balance"))
async def balance_command(message: Message, ledger: SqlBalanceLedger) -> None:
    if not message.from_user:
        return
    user_id = await ledger.get_or_create_user(message.from_user.id)
    bal = await ledger.get_balance(user_id)
    await message.answer(f"👛 موجودی کیف پول: {format_toman(bal)}", reply_markup=_wallet_keyboard())
