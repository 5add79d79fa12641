"""Declarative base for collector models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all collector SQLAlchemy models."""

    pass
