from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class User(Base):
    __tablename__ = "users"

    # Opaque id; it travels inside the signed payment state, so it never contains ':'
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    telegram_id: Mapped[Optional[int]] = mapped_column(BigInteger, unique=True, index=True, nullable=True)
    status: Mapped[str] = mapped_column(String(32), index=True, default="active")

    # Toman
    balance: Mapped[int] = mapped_column(BigInteger, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)

    amount: Mapped[int] = mapped_column(BigInteger)  # signed Toman
    type: Mapped[str] = mapped_column(String(32), index=True)  # topup|usage|adjustment
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Gateway authority for top-ups; unique so a replayed callback cannot credit twice
    reference: Mapped[Optional[str]] = mapped_column(String(191), unique=True, nullable=True)
    meta: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    balance_after: Mapped[int] = mapped_column(BigInteger)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
