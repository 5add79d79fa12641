"""SQLAlchemy models for the collector database."""

from .base import Base
from .source import Source
from .app import App
from .collect_batch import CollectBatch
from .usage_record import UsageRecord

__all__ = [
    "Base",
    "Source",
    "App",
    "CollectBatch",
    "UsageRecord",
]
