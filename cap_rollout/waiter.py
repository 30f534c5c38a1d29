"""
Polling engine that waits for a target to reach a predicate.
"""
import logging
from typing import List, Optional, Tuple

from .adapters import ResourceQueryAdapter
from .conditions import describe_progress, evaluate_all
from .errors import AdapterError
from .kube_types import (
    CANCELLED,
    ResourceRef,
    ResourceSnapshot,
    WaitOutcome,
    WaitResult,
    WaitSpec,
)
from .timing import CancelToken, Clock, SystemClock

logger = logging.getLogger(__name__)

DEFAULT_MAX_ERROR_STREAK = 5


class Waiter:
    """
    Polls one target at a time until it is satisfied, the deadline passes,
    the cluster keeps failing, or the wait is cancelled.

    The deadline is wall-clock from the start of the wait. The only blocking
    point is the clock's sleep between polls, which a cancel token cuts short.
    Query failures are tolerated until ``max_error_streak`` of them happen in
    a row; a successful query resets the streak.
    """

    def __init__(self, adapter: ResourceQueryAdapter, clock: Optional[Clock] = None,
                 max_error_streak: int = DEFAULT_MAX_ERROR_STREAK):
        if max_error_streak < 1:
            raise ValueError("max_error_streak must be at least 1")
        self.adapter = adapter
        self.clock = clock or SystemClock()
        self.max_error_streak = max_error_streak

    def observe(self, spec: WaitSpec) -> Tuple[ResourceSnapshot, ...]:
        """Query the spec's target once."""
        target = spec.target
        if isinstance(target, ResourceRef):
            return tuple(self.adapter.query(target.scope, target.kind, name=target.name))
        snapshots: List[ResourceSnapshot] = []
        for kind in target.kinds:
            snapshots.extend(self.adapter.query(target.scope, kind, label_selector=target.label_selector))
        return tuple(snapshots)

    def wait(self, spec: WaitSpec, token: Optional[CancelToken] = None) -> WaitOutcome:
        """
        Wait for ``spec`` to be satisfied.

        Args:
            spec: What to wait for and for how long
            token: Optional cancellation token

        Returns:
            A terminal WaitOutcome; this method does not raise for timeouts,
            query failures or cancellation
        """
        start = self.clock.monotonic()
        deadline = start + spec.timeout_seconds
        polls = 0
        error_streak = 0
        last_snapshot: Optional[Tuple[ResourceSnapshot, ...]] = None
        last_error: Optional[AdapterError] = None

        def finish(result: WaitResult, reason: Optional[str] = None) -> WaitOutcome:
            return WaitOutcome(
                target=spec.target,
                result=result,
                elapsed_seconds=self.clock.monotonic() - start,
                last_snapshot=last_snapshot,
                reason=reason,
                polls=polls,
            )

        logger.info(f"⏳ Waiting up to {spec.timeout_seconds}s for {spec.target} ({spec.predicate.value})")

        while True:
            if token is not None and token.cancelled:
                logger.warning(f"⚠️ Wait for {spec.target} cancelled")
                return finish(WaitResult.ERROR, CANCELLED)

            polls += 1
            try:
                snapshots = self.observe(spec)
            except AdapterError as e:
                error_streak += 1
                last_error = e
                logger.warning(f"⚠️ {spec.target}: query failed ({error_streak}/{self.max_error_streak}): {e}")
                if error_streak >= self.max_error_streak:
                    logger.error(f"❌ Giving up on {spec.target} after {error_streak} failed queries")
                    return finish(WaitResult.ERROR, f"query failed {error_streak} times in a row: {e}")
            else:
                error_streak = 0
                last_snapshot = snapshots
                elapsed = self.clock.monotonic() - start
                if evaluate_all(snapshots, spec.predicate):
                    logger.info(f"✅ {spec.target} satisfied {spec.predicate.value} after {elapsed:.1f}s")
                    return finish(WaitResult.SATISFIED)
                logger.info(f"⏳ {spec.target}: {describe_progress(snapshots)} (elapsed {elapsed:.1f}s)")

            remaining = deadline - self.clock.monotonic()
            if remaining <= 0:
                break
            if self.clock.sleep(min(spec.poll_interval_seconds, remaining), token):
                logger.warning(f"⚠️ Wait for {spec.target} cancelled")
                return finish(WaitResult.ERROR, CANCELLED)

        if last_snapshot is None and last_error is not None:
            logger.error(f"❌ {spec.target}: no successful query before the deadline")
            return finish(WaitResult.ERROR, f"no successful query within {spec.timeout_seconds}s: {last_error}")

        logger.error(f"❌ Timed out after {spec.timeout_seconds}s waiting for {spec.target}")
        return finish(WaitResult.TIMED_OUT, f"not {spec.predicate.value} within {spec.timeout_seconds}s")
