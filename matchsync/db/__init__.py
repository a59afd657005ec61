"""Database Infrastructure — async session factory and SQLAlchemy Base.

Invariants:
    - All sessions are async (AsyncSession)
    - Local (device) and remote tables share one metadata; each engine creates what it needs

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite for the on-device database (ADR: native async)
"""
