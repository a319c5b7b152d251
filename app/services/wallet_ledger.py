from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import User, WalletTransaction

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    pass


class BalanceLedger(Protocol):
    async def get_balance(self, user_id: str) -> int: ...

    async def adjust_balance(
        self,
        *,
        user_id: str,
        amount_toman: int,
        type: str,
        description: str,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int: ...


class SqlBalanceLedger:
    """Wallet balances in Toman backed by the users / wallet_transactions tables.

    adjust_balance() is idempotent per ``reference``: a second call with the
    same reference (e.g. a replayed gateway callback) changes nothing and
    returns the current balance.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def get_or_create_user(self, telegram_id: int) -> str:
        async with self._session_maker() as session:
            user = await session.scalar(select(User).where(User.telegram_id == int(telegram_id)))
            if user:
                return user.id
            user = User(id=uuid.uuid4().hex, telegram_id=int(telegram_id), status="active", balance=0)
            session.add(user)
            try:
                await session.commit()
            except IntegrityError:
                # Concurrent /topup from the same account created it first
                await session.rollback()
                existing = await session.scalar(select(User.id).where(User.telegram_id == int(telegram_id)))
                if existing is None:
                    raise
                return existing
            logger.info("wallet.user_created", extra={"extra": {"user_id": user.id, "telegram_id": telegram_id}})
            return user.id

    async def get_balance(self, user_id: str) -> int:
        async with self._session_maker() as session:
            bal = await session.scalar(select(User.balance).where(User.id == user_id))
            if bal is None:
                raise LedgerError(f"user not found: {user_id}")
            return int(bal)

    async def adjust_balance(
        self,
        *,
        user_id: str,
        amount_toman: int,
        type: str,
        description: str,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        amount = int(amount_toman)
        async with self._session_maker() as session:
            if reference:
                dup = await session.scalar(select(WalletTransaction).where(WalletTransaction.reference == reference))
                if dup is not None:
                    logger.info("wallet.adjust_duplicate", extra={"extra": {"user_id": user_id, "reference": reference}})
                    return await self._balance(session, dup.user_id)

            current = await session.scalar(select(User.balance).where(User.id == user_id))
            if current is None:
                raise LedgerError(f"user not found: {user_id}")
            if int(current) + amount < 0:
                raise LedgerError(f"insufficient balance for {user_id}: {current} + {amount}")

            await session.execute(
                update(User).where(User.id == user_id).values(balance=User.balance + amount).execution_options(synchronize_session=False)
            )
            new_bal = await self._balance(session, user_id)
            session.add(
                WalletTransaction(
                    user_id=user_id,
                    amount=amount,
                    type=type,
                    description=description,
                    reference=reference,
                    meta=json.dumps(metadata, ensure_ascii=False, default=str) if metadata else None,
                    balance_after=new_bal,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                # Same reference committed by a concurrent callback; ours is rolled back
                await session.rollback()
                logger.info("wallet.adjust_duplicate_race", extra={"extra": {"user_id": user_id, "reference": reference}})
                return await self._balance(session, user_id)

        logger.info(
            "wallet.adjusted",
            extra={"extra": {"user_id": user_id, "amount": amount, "type": type, "reference": reference, "balance": new_bal}},
        )
        return new_bal

    @staticmethod
    async def _balance(session: AsyncSession, user_id: str) -> int:
        bal = await session.scalar(select(User.balance).where(User.id == user_id))
        return int(bal or 0)
