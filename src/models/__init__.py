"""
Models package - export all SQLAlchemy models.
"""

from src.models.base import Base
from src.models.card_price import CardPriceRecord

__all__ = ["Base", "CardPriceRecord"]
