"""
Type definitions for rollout waits.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .errors import AdapterError, ConfigError, WaitCancelledError, WaitTimeoutError

CANCELLED = "cancelled"


class ResourceKind(str, Enum):
    """Kubernetes kinds the waiter knows how to observe."""
    DAEMON_SET = "DaemonSet"
    DEPLOYMENT = "Deployment"
    REPLICA_SET = "ReplicaSet"
    STATEFUL_SET = "StatefulSet"
    POD = "Pod"
    NAMESPACE = "Namespace"


class Predicate(str, Enum):
    READY_COUNT_MATCHES_DESIRED = "ReadyCountMatchesDesired"
    ABSENT = "Absent"


class WaitResult(str, Enum):
    SATISFIED = "Satisfied"
    TIMED_OUT = "TimedOut"
    ERROR = "Error"


@dataclass(frozen=True)
class ResourceRef:
    """A single named resource in a namespace."""
    kind: ResourceKind
    name: str
    scope: str

    def __str__(self) -> str:
        return f"{self.kind.value}/{self.name} in {self.scope}"


@dataclass(frozen=True)
class ScopeSelector:
    """Every resource of the given kinds in a namespace."""
    scope: str
    kinds: Tuple[ResourceKind, ...]
    label_selector: Optional[str] = None

    def __str__(self) -> str:
        kinds = ",".join(kind.value for kind in self.kinds)
        selector = f" [{self.label_selector}]" if self.label_selector else ""
        return f"{kinds} in {self.scope}{selector}"


WaitTarget = Union[ResourceRef, ScopeSelector]


@dataclass(frozen=True)
class ResourceSnapshot:
    """Point-in-time observation of one resource."""
    ref: ResourceRef
    exists: bool = True
    desired_count: Optional[int] = None
    ready_count: Optional[int] = None
    status: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def absent(cls, ref: ResourceRef) -> "ResourceSnapshot":
        return cls(ref=ref, exists=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.ref.kind.value,
            "name": self.ref.name,
            "namespace": self.ref.scope,
            "exists": self.exists,
            "desired": self.desired_count,
            "ready": self.ready_count,
            "status": dict(self.status),
        }


@dataclass(frozen=True)
class WaitSpec:
    """
    One wait request.

    Validated on construction so a malformed request fails before the
    cluster is ever queried.
    """
    target: WaitTarget
    predicate: Predicate = Predicate.READY_COUNT_MATCHES_DESIRED
    timeout_seconds: float = 600
    poll_interval_seconds: float = 10

    def __post_init__(self):
        if not isinstance(self.target, (ResourceRef, ScopeSelector)):
            raise ConfigError(f"Unsupported wait target: {self.target!r}")
        if not self.target.scope:
            raise ConfigError("Wait target needs a namespace")
        if isinstance(self.target, ResourceRef) and not self.target.name:
            raise ConfigError(f"{self.target.kind.value} target in {self.target.scope} needs a name")
        if isinstance(self.target, ScopeSelector) and not self.target.kinds:
            raise ConfigError(f"Scope target in {self.target.scope} needs at least one kind")
        if not isinstance(self.predicate, Predicate):
            raise ConfigError(f"Unknown predicate: {self.predicate!r}")
        if isinstance(self.timeout_seconds, bool) or not isinstance(self.timeout_seconds, (int, float)):
            raise ConfigError(f"timeout_seconds must be a number, got {self.timeout_seconds!r}")
        if not math.isfinite(self.timeout_seconds):
            raise ConfigError(f"timeout_seconds must be finite, got {self.timeout_seconds}")
        if self.timeout_seconds < 0:
            raise ConfigError(f"timeout_seconds must not be negative, got {self.timeout_seconds}")
        if isinstance(self.poll_interval_seconds, bool) or not isinstance(self.poll_interval_seconds, (int, float)):
            raise ConfigError(f"poll_interval_seconds must be a number, got {self.poll_interval_seconds!r}")
        if not math.isfinite(self.poll_interval_seconds):
            raise ConfigError(f"poll_interval_seconds must be finite, got {self.poll_interval_seconds}")
        if self.poll_interval_seconds <= 0:
            raise ConfigError(f"poll_interval_seconds must be positive, got {self.poll_interval_seconds}")


@dataclass(frozen=True)
class WaitOutcome:
    """Terminal result of one wait."""
    target: WaitTarget
    result: WaitResult
    elapsed_seconds: float
    last_snapshot: Optional[Tuple[ResourceSnapshot, ...]] = None
    reason: Optional[str] = None
    polls: int = 0

    @property
    def satisfied(self) -> bool:
        return self.result is WaitResult.SATISFIED

    @property
    def cancelled(self) -> bool:
        return self.result is WaitResult.ERROR and self.reason == CANCELLED

    def raise_for_result(self) -> None:
        """Raise the matching error unless the wait was satisfied."""
        if self.satisfied:
            return
        message = f"{self.target}: {self.reason or self.result.value}"
        if self.result is WaitResult.TIMED_OUT:
            raise WaitTimeoutError(message, outcome=self)
        if self.cancelled:
            raise WaitCancelledError(message, outcome=self)
        raise AdapterError(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": str(self.target),
            "result": self.result.value,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "reason": self.reason,
            "polls": self.polls,
            "last_snapshot": None if self.last_snapshot is None
            else [snapshot.to_dict() for snapshot in self.last_snapshot],
        }


@dataclass(frozen=True)
class RolloutReport:
    """Ordered outcomes of a rollout plus the targets never started."""
    outcomes: Tuple[WaitOutcome, ...] = ()
    skipped: Tuple[WaitTarget, ...] = ()

    @property
    def status(self) -> WaitResult:
        for outcome in self.outcomes:
            if not outcome.satisfied:
                return outcome.result
        return WaitResult.SATISFIED

    @property
    def succeeded(self) -> bool:
        return self.status is WaitResult.SATISFIED

    @property
    def failures(self) -> Tuple[WaitOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.satisfied)

    @property
    def cancelled(self) -> bool:
        return any(outcome.cancelled for outcome in self.outcomes)

    def raise_for_status(self) -> None:
        for outcome in self.failures:
            outcome.raise_for_result()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "success": self.succeeded,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "failures": [str(outcome.target) for outcome in self.failures],
            "skipped": [str(target) for target in self.skipped],
        }
