from __future__ import annotations

import pytest

from app.config import ZarinpalSettings
from app.payment.state import PaymentStateProtocol, StateSigner

from tests.fakes import MERCHANT_ID, SECRET


@pytest.fixture
def zp_settings() -> ZarinpalSettings:
    return ZarinpalSettings(
        merchant_id=MERCHANT_ID,
        api_base_url="https://api.zarinpal.test/pg/v4/payment",
        payment_base_url="https://www.zarinpal.test/pg/StartPay",
        callback_secret=SECRET,
        callback_base_url="https://app.example.test",
        result_redirect_url="https://app.example.test/wallet",
        min_topup_toman=1000,
    )


@pytest.fixture
def protocol() -> PaymentStateProtocol:
    return PaymentStateProtocol(StateSigner(SECRET))
