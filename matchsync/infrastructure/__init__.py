"""Infrastructure Layer — storage adapters, event bus, and cross-cutting concerns.

Invariants:
    - Infrastructure implements the Protocols declared in core/repository_protocols.py
    - All SQLAlchemy errors are mapped to MatchSyncError subclasses at this boundary

Design Decisions:
    - Adapters over raw engines: isolates error mapping from services (ADR: single responsibility)
"""
