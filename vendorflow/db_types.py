"""Database-agnostic type definitions for SQLAlchemy models.

Columns declared with these types work on both PostgreSQL (production) and
SQLite (local development and tests).
"""
from sqlalchemy import JSON, Numeric
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

# Use JSON instead of JSONB for cross-database compatibility
JSONType = JSON

# UUID type that works with both databases
UUIDType = PG_UUID

# Money and percentage columns
Money = Numeric(12, 2)
Rate = Numeric(5, 2)
