"""
Database models package initialization.

This module exports all database models for SQLAlchemy and Alembic auto-generation.
Models are imported here to ensure they are registered with the Base metadata
for proper migration generation and relationship resolution.
"""

from src.database.base import (
    Base,
    BaseModel,
    TimestampMixin,
    UUIDMixin,
)
from src.database.models.product import Product, ProductStatus, QualityGrade
from src.database.models.order import Order, OrderItem, TrackingEvent

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Product",
    "ProductStatus",
    "QualityGrade",
    "Order",
    "OrderItem",
    "TrackingEvent",
]
