"""Stability monitor: decides when a copied file is durably synced.

A single "available" report from the cloud agent is not trusted: the agent
can briefly report a synced state before going back to uploading, or answer
from stale cached metadata.  The monitor therefore waits for
``stable_polls_required`` consecutive DONE observations, giving up once the
file's own elapsed time reaches ``timeout``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Callable

from syncmove.classifier import StatusMatcher, SyncState, classify
from syncmove.errors import ProbeError
from syncmove.logbook import POLL
from syncmove.probe import SyncStatusProbe
from syncmove.utils.path_helpers import format_elapsed

logger = logging.getLogger(__name__)


class StabilityOutcome(Enum):
    """Terminal result of one poll loop."""

    SUCCESS = auto()
    TIMED_OUT = auto()


@dataclass
class StabilityState:
    """Counter state for a single destination file."""

    poll_started_at: float
    consecutive_done: int = 0

    def observe(self, state: SyncState) -> int:
        """Advance on DONE, reset on anything else; return the new count."""
        if state is SyncState.DONE:
            self.consecutive_done += 1
        else:
            self.consecutive_done = 0
        return self.consecutive_done


@dataclass(frozen=True)
class PollObservation:
    """What a single poll tick saw; emitted to ``on_poll`` subscribers."""

    dest_path: Path
    raw_status: str
    state: SyncState
    stable_count: int
    stable_required: int
    file_elapsed: float
    run_elapsed: float
    error: str | None = None

    @property
    def is_blank(self) -> bool:
        return self.state is SyncState.BLANK

    @property
    def is_in_progress(self) -> bool:
        return self.state is SyncState.IN_PROGRESS

    @property
    def is_done(self) -> bool:
        return self.state is SyncState.DONE


class StabilityMonitor:
    """Runs the probe → classify → decide loop for one file at a time."""

    def __init__(
        self,
        probe: SyncStatusProbe,
        done_matcher: StatusMatcher,
        in_progress_matcher: StatusMatcher,
        stable_polls_required: int = 2,
        poll_interval: float = 5.0,
        timeout: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        run_started_at: float | None = None,
        on_poll: Callable[[PollObservation], None] | None = None,
    ) -> None:
        """Initialise the monitor.

        Args:
            probe: Oracle queried once per tick.
            done_matcher: Predicate recognising a fully-synced status.
            in_progress_matcher: Predicate recognising a syncing status.
            stable_polls_required: Consecutive DONE ticks needed for success.
            poll_interval: Seconds slept between ticks.
            timeout: Per-file budget, measured from the task's start.
            clock: Monotonic time source (injectable for tests).
            sleep: Blocking sleep (injectable for tests).
            run_started_at: Clock reading at process start; only used for the
                run-elapsed figure reported with each tick.
            on_poll: Called after every tick.
        """
        self._probe = probe
        self._done_matcher = done_matcher
        self._in_progress_matcher = in_progress_matcher
        self.stable_polls_required = stable_polls_required
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep
        self._run_started_at = clock() if run_started_at is None else run_started_at
        self.on_poll = on_poll

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def wait_until_synced(self, dest_path: Path, started_at: float) -> StabilityOutcome:
        """Poll *dest_path* until it is stably DONE or the timeout elapses.

        *started_at* is the clock reading when the file's transfer began; the
        timeout is measured from it, so time spent copying counts against the
        budget.  Timeout is evaluated only on tick boundaries.
        """
        stability = StabilityState(poll_started_at=self._clock())

        while True:
            raw_status, error = self._query(dest_path)
            state = classify(raw_status, self._done_matcher, self._in_progress_matcher)
            count = stability.observe(state)

            now = self._clock()
            observation = PollObservation(
                dest_path=dest_path,
                raw_status=raw_status,
                state=state,
                stable_count=count,
                stable_required=self.stable_polls_required,
                file_elapsed=now - started_at,
                run_elapsed=now - self._run_started_at,
                error=error,
            )
            self._report(observation)

            if count >= self.stable_polls_required:
                logger.info(
                    "Sync confirmed after %d consecutive checks: %s",
                    count,
                    dest_path,
                )
                return StabilityOutcome.SUCCESS

            if observation.file_elapsed >= self.timeout:
                logger.warning(
                    "Timed out after %s waiting for sync of %s (last status %r)",
                    format_elapsed(observation.file_elapsed),
                    dest_path,
                    raw_status,
                )
                return StabilityOutcome.TIMED_OUT

            self._sleep(self.poll_interval)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _query(self, dest_path: Path) -> tuple[str, str | None]:
        """Probe *dest_path*; a ProbeError reads as an empty status."""
        try:
            return self._probe.probe(dest_path), None
        except ProbeError as exc:
            return "", str(exc)

    def _report(self, obs: PollObservation) -> None:
        """Write the POLL record and notify the subscriber."""
        logger.log(
            POLL,
            "status=%r blank=%s in_progress=%s done=%s stable=%d/%d elapsed=%s path=%s%s",
            obs.raw_status,
            obs.is_blank,
            obs.is_in_progress,
            obs.is_done,
            obs.stable_count,
            obs.stable_required,
            format_elapsed(obs.run_elapsed),
            obs.dest_path,
            f" error={obs.error!r}" if obs.error else "",
        )
        if self.on_poll:
            try:
                self.on_poll(obs)
            except Exception:
                logger.exception("Exception in on_poll callback")
