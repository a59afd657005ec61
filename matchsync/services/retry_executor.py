"""Retry Executor — drains the action queue against the remote store.

Invariants:
    - Actions sharing an entity_key apply strictly in enqueue order; a failing action
      blocks the rest of its group for the remainder of the drain
    - Distinct entity groups run concurrently, at most `concurrency` at once
    - Retryable failure: attempts += 1 (durably), wait min(max, base * 2**attempts)
      with jitter, retry; attempts >= max_attempts -> dead-letter
    - PermanentError -> dead-letter immediately, no retry
    - ActionDeadLettered is published exactly once per dead-lettered action
    - drain() never raises: every outcome lands in the DrainReport

Design Decisions:
    - Retry loop shaped like the resilient remote client: classify, back off, retry,
      with the classification on the error class (retryable) instead of per-call branches
    - sleep and rng injected: tests drive backoff without real timers
    - Going offline mid-drain defers the group instead of burning its attempts
      against an unreachable store
    - One drain at a time (asyncio.Lock); a second caller waits and drains what remains
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from matchsync.core.backoff import backoff_delay_ms, should_dead_letter
from matchsync.core.errors import (
    ActionTimeoutError, ErrorContext, MatchSyncError, PermanentError,
    TransientRemoteError,
)
from matchsync.core.events import ActionDeadLettered, DrainCompleted
from matchsync.core.pending_action import PendingAction
from matchsync.infrastructure.event_bus import EventBus
from matchsync.services.action_appliers import ActionAppliers
from matchsync.services.action_queue import ActionQueue

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class DrainReport:
    applied: list[str] = field(default_factory=list)
    dead_lettered: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.dead_lettered) + len(self.deferred)

    def to_dict(self) -> dict:
        return {
            "applied": len(self.applied),
            "failed": self.failed,
            "applied_ids": list(self.applied),
            "dead_lettered_ids": list(self.dead_lettered),
            "deferred_ids": list(self.deferred),
        }


class RetryExecutor:
    """Applies queued actions with backoff and dead-letter isolation."""

    def __init__(
        self,
        queue: ActionQueue,
        appliers: ActionAppliers,
        events: EventBus,
        *,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 60_000,
        max_attempts: int = 5,
        jitter: float = 0.25,
        timeout_seconds: float = 15.0,
        concurrency: int = 4,
        is_online: Callable[[], bool] | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self._queue = queue
        self._appliers = appliers
        self._events = events
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._max_attempts = max_attempts
        self._jitter = jitter
        self._timeout_seconds = timeout_seconds
        self._semaphore = asyncio.Semaphore(concurrency)
        self._is_online = is_online or (lambda: True)
        self._sleep = sleep
        self._rng = rng
        self._drain_lock = asyncio.Lock()

    @property
    def draining(self) -> bool:
        return self._drain_lock.locked()

    async def drain(self) -> DrainReport:
        """Process every drainable action once through its retry policy."""
        async with self._drain_lock:
            report = DrainReport()
            groups = self._group_by_entity(self._queue.drainable())
            if groups:
                results = await asyncio.gather(
                    *(self._run_group(actions, report) for actions in groups.values()),
                    return_exceptions=True,
                )
                for result in results:
                    if isinstance(result, BaseException):
                        logger.error(f"Drain group crashed: {result}", exc_info=result)

            self._events.publish(DrainCompleted(len(report.applied), report.failed))
            logger.info(
                f"Drain finished: {len(report.applied)} applied, {report.failed} failed",
                extra={"applied": len(report.applied), "failed": report.failed},
            )
            return report

    @staticmethod
    def _group_by_entity(actions: list[PendingAction]) -> dict[str, list[PendingAction]]:
        groups: dict[str, list[PendingAction]] = {}
        for action in sorted(actions, key=lambda a: a.seq):
            groups.setdefault(action.entity_key, []).append(action)
        return groups

    async def _run_group(self, actions: list[PendingAction], report: DrainReport) -> None:
        async with self._semaphore:
            for index, action in enumerate(actions):
                outcome = await self._process(action)
                if outcome == "applied":
                    report.applied.append(action.id)
                elif outcome == "dead_lettered":
                    report.dead_lettered.append(action.id)
                else:
                    # Later actions on this entity wait for the blocked one
                    report.deferred.extend(a.id for a in actions[index:])
                    return

    async def _process(self, action: PendingAction) -> str:
        """Apply one action until success, dead-letter, or deferral."""
        while True:
            try:
                await self._apply_with_timeout(action)
            except PermanentError as e:
                await self._dead_letter(action, e)
                return "dead_lettered"
            except MatchSyncError as e:
                if not e.retryable:
                    await self._dead_letter(action, e)
                    return "dead_lettered"
                outcome, action = await self._after_transient(action, e)
                if outcome != "retry":
                    return outcome
                continue
            except Exception as e:
                logger.error(
                    f"Unexpected error applying {action.kind}: {e}",
                    exc_info=True, extra={"action_id": action.id},
                )
                wrapped = TransientRemoteError(str(e), "apply", _context(action))
                outcome, action = await self._after_transient(action, wrapped)
                if outcome != "retry":
                    return outcome
                continue

            await self._queue.remove(action.id)
            logger.info(
                f"Applied {action.kind.value}",
                extra={"action_id": action.id, "action_kind": action.kind.value,
                       "attempt": action.attempts + 1},
            )
            return "applied"

    async def _apply_with_timeout(self, action: PendingAction) -> None:
        try:
            await asyncio.wait_for(self._appliers.apply(action), self._timeout_seconds)
        except asyncio.TimeoutError:
            raise ActionTimeoutError(self._timeout_seconds, _context(action))

    async def _after_transient(
        self, action: PendingAction, error: MatchSyncError,
    ) -> tuple[str, PendingAction]:
        """Count the failure, then dead-letter, defer, or sleep before a retry."""
        action = await self._queue.record_failure(action.id, _describe(error))
        logger.warning(
            f"Attempt {action.attempts} of {action.kind.value} failed: {error.message}",
            extra={"action_id": action.id, "action_kind": action.kind.value,
                   "attempt": action.attempts, "error_code": error.code},
        )
        if should_dead_letter(action.attempts, self._max_attempts):
            await self._dead_letter(action, error)
            return "dead_lettered", action
        if not self._is_online():
            return "deferred", action

        delay_ms = backoff_delay_ms(
            action.attempts, self._base_delay_ms, self._max_delay_ms,
            self._jitter, self._rng,
        )
        await self._sleep(delay_ms / 1000)
        return "retry", action

    async def _dead_letter(self, action: PendingAction, error: MatchSyncError) -> None:
        await self._queue.move_to_dead_letter(action.id, _describe(error))
        self._events.publish(ActionDeadLettered(
            action_id=action.id,
            action_kind=action.kind.value,
            error_code=error.code,
            error=error.message,
            attempts=action.attempts,
        ))


def _context(action: PendingAction) -> ErrorContext:
    return ErrorContext(
        action_id=action.id, action_kind=action.kind.value, attempt=action.attempts,
    )


def _describe(error: MatchSyncError) -> str:
    return f"{error.code}: {error.message}"

