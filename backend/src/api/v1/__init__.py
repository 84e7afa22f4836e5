"""
API v1 package initialization.

This module initializes the v1 API package for the AgroMarket order API.
"""

from src.api.v1.orders import router as orders_router

__all__ = ["orders_router"]
