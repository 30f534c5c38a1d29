"""
Predicates over resource snapshots.
"""
from typing import Sequence

from .kube_types import Predicate, ResourceSnapshot


def evaluate(snapshot: ResourceSnapshot, predicate: Predicate) -> bool:
    """
    Check whether one snapshot satisfies a predicate.

    A snapshot whose desired count is unknown is never ready, so a
    transiently empty status cannot pass for a finished rollout.
    """
    if predicate is Predicate.ABSENT:
        return not snapshot.exists
    if predicate is Predicate.READY_COUNT_MATCHES_DESIRED:
        if not snapshot.exists or snapshot.desired_count is None:
            return False
        return snapshot.ready_count == snapshot.desired_count
    raise ValueError(f"Unknown predicate: {predicate!r}")


def evaluate_all(snapshots: Sequence[ResourceSnapshot], predicate: Predicate) -> bool:
    """
    Check a whole observation.

    Absent holds when nothing exists, including an empty observation.
    Readiness needs at least one resource and every resource ready.
    """
    if predicate is Predicate.ABSENT:
        return all(evaluate(snapshot, predicate) for snapshot in snapshots)
    if not snapshots:
        return False
    return all(evaluate(snapshot, predicate) for snapshot in snapshots)


def describe_progress(snapshots: Sequence[ResourceSnapshot]) -> str:
    present = [snapshot for snapshot in snapshots if snapshot.exists]
    if not present:
        return "no resources found"
    ready = sum(snapshot.ready_count or 0 for snapshot in present)
    if any(snapshot.desired_count is None for snapshot in present):
        desired = "?"
    else:
        desired = str(sum(snapshot.desired_count for snapshot in present))
    return f"{ready}/{desired} ready across {len(present)} resource(s)"
