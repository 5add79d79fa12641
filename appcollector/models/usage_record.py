"""UsageRecord model: one (batch, app, source) token usage observation."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..utils import now_utc
from .base import Base


class UsageRecord(Base):
    __tablename__ = "app_usage_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collect_batch_id: Mapped[int] = mapped_column(ForeignKey("collect_batch.id"), nullable=False, index=True)
    app_id: Mapped[int] = mapped_column(ForeignKey("apps.id"), nullable=False)
    model_id: Mapped[int] = mapped_column(ForeignKey("models.id"), nullable=False)
    # Exact integer as plain digits, or the raw listing text when unparseable
    tokens_used: Mapped[str] = mapped_column(Text, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, nullable=False)
