"""
Batch Job State Machine

Tracks one submitted Message Batch from creation to a terminal state:

    CREATED -> POLLING -> {COMPLETED, ERRORED, EXPIRED, CANCELED}

Jobs can legitimately run for hours (the provider window is 24h), so the
wait has a soft timeout: past it the operator is warned once and polling
continues. Only an explicitly configured hard limit ends the wait early.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..common.errors import BatchTimeoutError

logger = logging.getLogger("extractor.analyzer.batch")

# Anthropic processing_status values
STATUS_ENDED = "ended"


class BatchState(str, Enum):
    CREATED = "created"
    POLLING = "polling"
    COMPLETED = "completed"
    ERRORED = "errored"
    EXPIRED = "expired"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self not in (BatchState.CREATED, BatchState.POLLING)


class PollDecision(str, Enum):
    CONTINUE = "continue"
    WARN = "warn"  # one-time soft-timeout warning, then keep polling
    GIVE_UP = "give_up"


@dataclass
class PollPolicy:
    """When to keep waiting, warn, or stop waiting for a batch"""
    interval: float = 10.0
    soft_timeout: float = 3600.0
    max_wait: Optional[float] = None

    def decide(self, elapsed: float, warned: bool) -> PollDecision:
        if self.max_wait is not None and elapsed >= self.max_wait:
            return PollDecision.GIVE_UP
        if not warned and elapsed >= self.soft_timeout:
            return PollDecision.WARN
        return PollDecision.CONTINUE


@dataclass
class RequestCounts:
    processing: int = 0
    succeeded: int = 0
    errored: int = 0
    canceled: int = 0
    expired: int = 0

    @classmethod
    def from_batch(cls, batch: Any) -> "RequestCounts":
        counts = getattr(batch, "request_counts", None)
        return cls(
            processing=getattr(counts, "processing", 0) or 0,
            succeeded=getattr(counts, "succeeded", 0) or 0,
            errored=getattr(counts, "errored", 0) or 0,
            canceled=getattr(counts, "canceled", 0) or 0,
            expired=getattr(counts, "expired", 0) or 0,
        )

    @property
    def total(self) -> int:
        return self.processing + self.succeeded + self.errored + self.canceled + self.expired


def resolve_terminal_state(counts: RequestCounts) -> BatchState:
    """Map an ended batch to a terminal state.

    Any success means COMPLETED (per-item failures are reported separately);
    otherwise the most common failure kind names the state.
    """
    if counts.succeeded > 0:
        return BatchState.COMPLETED

    failures = {
        BatchState.ERRORED: counts.errored,
        BatchState.EXPIRED: counts.expired,
        BatchState.CANCELED: counts.canceled,
    }
    if not any(failures.values()):
        return BatchState.COMPLETED
    return max(failures, key=failures.get)


class BatchJob:
    """One submitted batch and its polling loop"""

    def __init__(
        self,
        batch_id: str,
        policy: PollPolicy,
        sleep: Callable[[float], Awaitable[None]],
        clock: Callable[[], float],
    ):
        self.batch_id = batch_id
        self.state = BatchState.CREATED
        self.counts = RequestCounts()
        self.warned = False
        self._policy = policy
        self._sleep = sleep
        self._clock = clock

    async def wait(self, retrieve: Callable[[str], Awaitable[Any]]) -> BatchState:
        """Poll until the provider reports the batch as ended"""
        started = self._clock()
        self.state = BatchState.POLLING

        batch = await retrieve(self.batch_id)
        while getattr(batch, "processing_status", None) != STATUS_ENDED:
            self.counts = RequestCounts.from_batch(batch)
            logger.info(
                "Batch %s %s: processing=%d succeeded=%d errored=%d canceled=%d expired=%d",
                self.batch_id, getattr(batch, "processing_status", "?"),
                self.counts.processing, self.counts.succeeded, self.counts.errored,
                self.counts.canceled, self.counts.expired,
            )

            elapsed = self._clock() - started
            decision = self._policy.decide(elapsed, self.warned)
            if decision == PollDecision.GIVE_UP:
                raise BatchTimeoutError(self.batch_id, elapsed)
            if decision == PollDecision.WARN:
                self.warned = True
                logger.warning(
                    "Batch %s has been running for %.0f minutes; still waiting "
                    "(batches can take up to 24 hours)",
                    self.batch_id, elapsed / 60,
                )

            await self._sleep(self._policy.interval)
            batch = await retrieve(self.batch_id)

        self.counts = RequestCounts.from_batch(batch)
        self.state = resolve_terminal_state(self.counts)
        logger.info(
            "Batch %s ended as %s (succeeded=%d, errored=%d)",
            self.batch_id, self.state.value, self.counts.succeeded, self.counts.errored,
        )
        return self.state
