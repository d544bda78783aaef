"""
DealFlow — Sync State Model

Singleton row (id = 1) holding the last successful sync time and the
seller's OAuth tokens.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import INTEGER, TIMESTAMP, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from dealflow.models.base import Base

SYNC_STATE_ID = 1


class SyncState(Base):
    __tablename__ = "sync_state"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, default=SYNC_STATE_ID)
    last_sync_time: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Completion time of the last sync run"
    )
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    token_type: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<SyncState last_sync_time={self.last_sync_time!r}>"
