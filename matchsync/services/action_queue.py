"""Durable Action Queue — ordered, persisted user intents with a dead-letter side list.

Invariants:
    - enqueue() returns only after the action is durable (storage commit awaited)
    - drainable() is ascending seq; dead-lettered actions never appear in it
    - An action leaves the queue only via remove() (remote success) or
      move_to_dead_letter() (permanent failure / retry ceiling) — never dropped
    - load() never raises: unreadable storage degrades to an empty queue, undecodable
      records are quarantined as dead letters; both recorded in integrity_errors

Design Decisions:
    - Owned instance with injected storage + clock (ADR: no module-level queue state,
      deterministic tests without real timers or files)
    - In-memory mirror updated only after the storage call succeeds: memory never
      claims something the disk does not hold
    - asyncio.Lock around mutations: executor groups run concurrently on one queue
"""

import asyncio
import logging
import uuid
from dataclasses import replace

from matchsync.core.domain_types import ActionKind
from matchsync.core.errors import LocalPersistenceError, ValidationError
from matchsync.core.pending_action import DeadLetter, PendingAction, validate_payload
from matchsync.core.repository_protocols import Clock, QueueStorage
from matchsync.core.match_lifecycle import parse_timestamp

logger = logging.getLogger(__name__)


class ActionQueue:
    """FIFO of PendingActions backed by QueueStorage."""

    def __init__(self, storage: QueueStorage, clock: Clock):
        self._storage = storage
        self._clock = clock
        self._pending: list[PendingAction] = []
        self._dead: list[DeadLetter] = []
        self._lock = asyncio.Lock()
        self.integrity_errors: list[LocalPersistenceError] = []

    # ─── Startup ─────────────────────────────────────────────────

    async def load(self) -> None:
        """Restore queue state from storage; degrades to empty instead of raising."""
        try:
            records = await self._storage.load_pending()
        except Exception as e:
            self._record_integrity_error(
                LocalPersistenceError(f"pending queue unreadable: {e}", "load"),
            )
            self._pending = []
            return

        actions: list[PendingAction] = []
        for record in records:
            try:
                if record.get("corrupt"):
                    raise ValueError("payload is not valid JSON")
                actions.append(PendingAction.from_record(record))
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                await self._quarantine(record, e)
        self._pending = sorted(actions, key=lambda a: a.seq)

        try:
            dead_records = await self._storage.load_dead_letters()
        except Exception as e:
            self._record_integrity_error(
                LocalPersistenceError(f"dead letters unreadable: {e}", "load"),
            )
            dead_records = []
        self._dead = []
        for record in dead_records:
            try:
                self._dead.append(_dead_letter_from_record(record))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self._record_integrity_error(LocalPersistenceError(
                    f"undecodable dead letter {record.get('id')}: {e}", "decode",
                ))

        logger.info(
            f"Action queue loaded: {len(self._pending)} pending, {len(self._dead)} dead-lettered",
        )

    async def _quarantine(self, record: dict, error: Exception) -> None:
        """Move an undecodable record aside so it neither blocks nor disappears."""
        self._record_integrity_error(LocalPersistenceError(
            f"corrupt queue record {record.get('id')}: {error}", "decode",
        ))
        quarantined = dict(record)
        if record.get("corrupt"):
            quarantined["payload"] = record.get("raw_payload", "")
        try:
            await self._storage.move_to_dead_letter(
                quarantined, f"corrupt record: {error}", self._clock.now(),
            )
        except Exception as e:
            logger.error(f"Failed to quarantine corrupt record {record.get('id')}: {e}")

    def _record_integrity_error(self, error: LocalPersistenceError) -> None:
        self.integrity_errors.append(error)
        logger.error(error.message, extra={"error_code": error.code})

    # ─── Mutations ───────────────────────────────────────────────

    async def enqueue(self, kind: ActionKind, payload: dict) -> PendingAction:
        """Validate, persist, then append. Raises ValidationError or LocalPersistenceError."""
        validate_payload(kind, payload)
        action = PendingAction(
            id=str(uuid.uuid4()),
            kind=kind,
            payload=payload,
            enqueued_at=self._clock.now(),
        )
        async with self._lock:
            record = action.to_record()
            record["entity_key"] = action.entity_key
            seq = await self._storage.insert_pending(record)
            action = replace(action, seq=seq)
            self._pending.append(action)
        logger.info(
            f"Enqueued {kind.value}",
            extra={"action_id": action.id, "action_kind": kind.value},
        )
        return action

    async def remove(self, action_id: str) -> None:
        """Delete a remotely confirmed action."""
        async with self._lock:
            await self._storage.delete_pending(action_id)
            self._pending = [a for a in self._pending if a.id != action_id]

    async def record_failure(self, action_id: str, error: str) -> PendingAction:
        """Durably increment attempts; returns the updated action."""
        async with self._lock:
            current = self._find(action_id)
            updated = current.with_failure(error)
            await self._storage.update_pending(action_id, updated.attempts, error)
            self._pending = [updated if a.id == action_id else a for a in self._pending]
            return updated

    async def move_to_dead_letter(self, action_id: str, last_error: str) -> DeadLetter:
        """Remove from the active queue and retain separately for diagnostics."""
        async with self._lock:
            action = self._find(action_id)
            now = self._clock.now()
            await self._storage.move_to_dead_letter(action.to_record(), last_error, now)
            self._pending = [a for a in self._pending if a.id != action_id]
            dead = DeadLetter(action=action, last_error=last_error, dead_lettered_at=now)
            self._dead.append(dead)
        logger.warning(
            f"Dead-lettered {action.kind.value}: {last_error}",
            extra={"action_id": action.id, "action_kind": action.kind.value,
                   "attempt": action.attempts},
        )
        return dead

    # ─── Reads ───────────────────────────────────────────────────

    def drainable(self) -> list[PendingAction]:
        return list(self._pending)

    def dead_letters(self) -> list[DeadLetter]:
        return list(self._dead)

    def get(self, action_id: str) -> PendingAction | None:
        return next((a for a in self._pending if a.id == action_id), None)

    def __len__(self) -> int:
        return len(self._pending)

    def _find(self, action_id: str) -> PendingAction:
        action = self.get(action_id)
        if action is None:
            raise KeyError(f"action {action_id} not in queue")
        return action


def _dead_letter_from_record(record: dict) -> DeadLetter:
    """Dead letters may hold corrupt payloads: keep them as-is, best-effort kind."""
    try:
        kind = ActionKind(record["kind"])
    except ValueError:
        kind = record["kind"]
    payload = record.get("payload")
    action = PendingAction(
        id=record["id"],
        kind=kind,
        payload=payload if isinstance(payload, dict) else {"raw": payload},
        enqueued_at=parse_timestamp(record.get("enqueued_at")),
        seq=record.get("seq") or 0,
        attempts=record.get("attempts") or 0,
        last_error=record.get("last_error"),
    )
    dead_lettered_at = parse_timestamp(record.get("dead_lettered_at"))
    if dead_lettered_at is None:
        raise ValueError("dead_lettered_at is missing")
    return DeadLetter(
        action=action,
        last_error=record.get("last_error") or "",
        dead_lettered_at=dead_lettered_at,
    )
