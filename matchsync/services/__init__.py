"""Services Layer — action queue, retry executor, match engine, lifecycle, sync.

Invariants:
    - Services orchestrate IO around pure core functions
    - Services talk to storage only through core/repository_protocols.py

Design Decisions:
    - One service per component for locality (ADR: no god objects)
"""
