"""CollectBatch model: one execution of the collection pipeline."""

from datetime import datetime

from sqlalchemy import DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from ..utils import now_utc
from .base import Base


class CollectBatch(Base):
    __tablename__ = "collect_batch"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, nullable=False)
