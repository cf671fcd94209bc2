"""Client-side job status poller.

Re-fetches a set of jobs on a fixed interval until every job is done or
failed, the maximum lifetime elapses, or the poller is cancelled. Polling has
no ledger side effects.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from studio_ledger.config import settings
from studio_ledger.domain.enums import JobStatus
from studio_ledger.domain.state_machine import TERMINAL
from studio_ledger.logging import get_logger

logger = get_logger(__name__)

JobItem = Mapping[str, Any]
FetchFn = Callable[[], Awaitable[Sequence[JobItem]]]


class PollStopReason(StrEnum):
    """Why a poller stopped."""

    ALL_TERMINAL = "all_terminal"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PollResult:
    """Last observed state of the tracked jobs."""

    reason: PollStopReason
    items: list[JobItem] = field(default_factory=list)
    polls: int = 0


def all_terminal(items: Sequence[JobItem]) -> bool:
    """Whether every item has reached done or failed."""
    return all(JobStatus(item["status"]) in TERMINAL for item in items)


class JobStatusPoller:
    """Cancellable polling loop over a job status source.

    Args:
        fetch: Coroutine function returning the current job list. Each item is
            a mapping with at least a ``status`` key.
        interval: Seconds between fetches.
        max_duration: Seconds after which the poller gives up.
        on_update: Called with every fetched job list.
    """

    def __init__(
        self,
        fetch: FetchFn,
        interval: float | None = None,
        max_duration: float | None = None,
        on_update: Callable[[list[JobItem]], None] | None = None,
    ) -> None:
        self.fetch = fetch
        self.interval = interval if interval is not None else settings.poll_interval_seconds
        self.max_duration = (
            max_duration if max_duration is not None else settings.poller_max_duration_seconds
        )
        self.on_update = on_update
        self._cancelled = asyncio.Event()

    def cancel(self) -> None:
        """Stop polling at the next opportunity."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def run(self) -> PollResult:
        """Poll until a stop condition is met."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_duration
        items: list[JobItem] = []
        polls = 0

        while not self.cancelled:
            try:
                items = list(await self.fetch())
            except Exception as e:
                logger.warning("job_status_fetch_failed", error=str(e), polls=polls)
            else:
                polls += 1
                if self.on_update is not None:
                    self.on_update(items)
                if all_terminal(items):
                    logger.debug("job_status_polling_finished", polls=polls)
                    return PollResult(PollStopReason.ALL_TERMINAL, items, polls)

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info("job_status_polling_timed_out", polls=polls)
                return PollResult(PollStopReason.TIMED_OUT, items, polls)

            try:
                await asyncio.wait_for(self._cancelled.wait(), timeout=min(self.interval, remaining))
            except TimeoutError:
                pass

        return PollResult(PollStopReason.CANCELLED, items, polls)
