"""
SQLAlchemy 2.0 async DeclarativeBase for Card Comps.

All models inherit from this Base. Constraint and index names follow one
convention so alembic migrations name them the same way on every backend.
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all Card Comps database models."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
