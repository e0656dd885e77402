from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from campusverse.db.base_class import Base


class CreditAction(str, Enum):
    resume_generate = "resume_generate"
    ats_check = "ats_check"
    roadmap_generate = "roadmap_generate"
    credit_allocation = "credit_allocation"


class AICreditAccount(Base):
    __tablename__ = "ai_credit_accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, index=True, nullable=False)
    total_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reset: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    @property
    def remaining_credits(self) -> int:
        return int(self.total_credits or 0) - int(self.used_credits or 0)


class AICreditTransaction(Base):
    __tablename__ = "ai_credit_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("ai_credit_accounts.id"), index=True, nullable=False)
    action: Mapped[CreditAction] = mapped_column(
        SQLEnum(CreditAction, name="credit_action", native_enum=False), nullable=False
    )
    # Positive = consumed, negative = allocated
    credits_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
