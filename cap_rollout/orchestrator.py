"""
Rollout orchestration across ordered wait targets.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .kube_types import RolloutReport, WaitOutcome, WaitSpec, WaitTarget
from .timing import CancelToken
from .waiter import Waiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RolloutGroup:
    """A dependency chain: its waits always run one after another."""
    name: str
    specs: Tuple[WaitSpec, ...]


class RolloutOrchestrator:
    """
    Runs wait specs in order and aggregates their outcomes.

    With ``fail_fast`` the first TimedOut or Error outcome stops the chain and
    the remaining targets are reported as skipped. Independent groups may run
    in parallel, each in its own worker with its own Waiter.
    """

    def __init__(self, waiter_factory: Callable[[], Waiter], fail_fast: bool = True,
                 max_workers: int = 1, token: Optional[CancelToken] = None):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.waiter_factory = waiter_factory
        self.fail_fast = fail_fast
        self.max_workers = max_workers
        self.token = token or CancelToken()

    def cancel(self) -> None:
        self.token.cancel()

    def run(self, specs: Sequence[WaitSpec]) -> RolloutReport:
        """Wait for each spec in order, sequentially."""
        outcomes, skipped = self._run_chain("rollout", list(specs), self.waiter_factory())
        report = RolloutReport(outcomes=tuple(outcomes), skipped=tuple(skipped))
        self._log_report(report)
        return report

    def run_groups(self, groups: Sequence[RolloutGroup]) -> RolloutReport:
        """
        Run independent groups, each sequentially.

        Outcomes are reported in group order whatever order the groups
        finish in.
        """
        if self.max_workers == 1 or len(groups) <= 1:
            results = [self._run_chain(group.name, list(group.specs), self.waiter_factory())
                       for group in groups]
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(groups))) as pool:
                futures = [pool.submit(self._run_chain, group.name, list(group.specs), self.waiter_factory())
                           for group in groups]
                results = [future.result() for future in futures]

        outcomes: List[WaitOutcome] = []
        skipped: List[WaitTarget] = []
        for group_outcomes, group_skipped in results:
            outcomes.extend(group_outcomes)
            skipped.extend(group_skipped)
        report = RolloutReport(outcomes=tuple(outcomes), skipped=tuple(skipped))
        self._log_report(report)
        return report

    def _run_chain(self, name: str, specs: List[WaitSpec],
                   waiter: Waiter) -> Tuple[List[WaitOutcome], List[WaitTarget]]:
        outcomes: List[WaitOutcome] = []
        for index, spec in enumerate(specs):
            outcome = waiter.wait(spec, self.token)
            outcomes.append(outcome)
            if outcome.satisfied:
                continue
            if self.fail_fast or outcome.cancelled:
                skipped = [remaining.target for remaining in specs[index + 1:]]
                if skipped:
                    logger.warning(f"⚠️ {name}: stopping after {spec.target}, skipping {len(skipped)} target(s)")
                return outcomes, skipped
        return outcomes, []

    def _log_report(self, report: RolloutReport) -> None:
        if report.succeeded:
            logger.info(f"✅ Rollout complete: {len(report.outcomes)} target(s) satisfied")
            return
        for outcome in report.failures:
            logger.error(f"❌ {outcome.target}: {outcome.result.value} ({outcome.reason})")
