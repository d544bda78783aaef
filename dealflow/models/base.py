"""
SQLAlchemy 2.0 async DeclarativeBase for DealFlow.

All models inherit from this Base.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all DealFlow database models."""
    pass
