"""Reward token model.

One row per reward credential issued from a partner pingback.  The pair
(source, source_session_id) is unique for all time: it is the authoritative
de-duplication key for retried or replayed pingbacks.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.database import Base


class RewardToken(Base):
    """Single-use, time-boxed credential redeemed by logic outside this service."""

    __tablename__ = "one_time_action_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)  # paymentwall
    source_session_id: Mapped[str] = mapped_column(String(255), nullable=False)  # partner ref
    action_type: Mapped[str] = mapped_column(String(50), default="any", nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # Naive UTC, both set from one clock reading at issuance.
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "source", "source_session_id", name="uq_one_time_action_tokens_source_ref"
        ),
        Index("ix_one_time_action_tokens_user_source_created", "user_id", "source", "created_at"),
    )

    def is_available(self, now: datetime) -> bool:
        """True if the token is unused and not yet expired at naive-UTC ``now``."""
        return not self.is_used and self.expires_at > now

    def __repr__(self) -> str:
        return (
            f"<RewardToken id={self.id!s:.8} user_id={self.user_id!s:.8} "
            f"source={self.source!r} ref={self.source_session_id!r} used={self.is_used}>"
        )
