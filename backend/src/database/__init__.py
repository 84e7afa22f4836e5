"""
Database package initialization.

This module serves as the entry point for the database package, providing
a clean namespace for database-related functionality.

The package follows a modular structure:
- base: Declarative base and shared column mixins
- connection: Async engine, session factory and health checks
- models: SQLAlchemy ORM models for products, orders and tracking
"""

# Import submodules explicitly when needed to avoid circular dependencies

__all__ = []
