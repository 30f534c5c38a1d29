"""
Rollout plans: YAML plan files and the built-in CAP plan.
"""
from pathlib import Path
from typing import List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .config import Settings
from .errors import ConfigError
from .kube_types import Predicate, ResourceKind, ResourceRef, ScopeSelector, WaitSpec
from .orchestrator import RolloutGroup

# Workloads CAP namespaces are made of.
CAP_WORKLOAD_KINDS = (ResourceKind.POD, ResourceKind.STATEFUL_SET, ResourceKind.DEPLOYMENT)


class TargetModel(BaseModel):
    namespace: str = Field(..., min_length=1, description="Target namespace")
    kind: Optional[ResourceKind] = Field(default=None, description="Kind of a single named target")
    name: Optional[str] = Field(default=None, description="Name of a single named target")
    kinds: List[ResourceKind] = Field(default_factory=list, description="Kinds to wait on across the namespace")
    label_selector: Optional[str] = Field(default=None)
    predicate: Predicate = Field(default=Predicate.READY_COUNT_MATCHES_DESIRED)
    timeout_seconds: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    poll_interval_seconds: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)

    @model_validator(mode="after")
    def _check_target(self):
        if self.name and self.kinds:
            raise ValueError("give either kind/name or kinds, not both")
        if self.name and self.kind is None:
            raise ValueError("a named target needs a kind")
        if not self.name and self.kind is not None and not self.kinds:
            self.kinds = [self.kind]
        if not self.name and not self.kinds:
            raise ValueError("a target needs kind/name or kinds")
        return self

    def to_wait_spec(self, settings: Settings) -> WaitSpec:
        if self.name:
            target: Union[ResourceRef, ScopeSelector] = ResourceRef(kind=self.kind, name=self.name, scope=self.namespace)
        else:
            target = ScopeSelector(scope=self.namespace, kinds=tuple(self.kinds), label_selector=self.label_selector)
        default_timeout = settings.DELETE_TIMEOUT_SECS if self.predicate is Predicate.ABSENT else settings.WAIT_TIMEOUT_SECS
        return WaitSpec(
            target=target,
            predicate=self.predicate,
            timeout_seconds=self.timeout_seconds if self.timeout_seconds is not None else default_timeout,
            poll_interval_seconds=self.poll_interval_seconds or settings.POLL_INTERVAL_SECS,
        )


class GroupModel(BaseModel):
    name: str = Field(..., min_length=1)
    targets: List[TargetModel] = Field(default_factory=list)


class RolloutPlanModel(BaseModel):
    fail_fast: Optional[bool] = Field(default=None, description="Defaults to FAIL_FAST")
    max_workers: Optional[int] = Field(default=None, ge=1, description="Defaults to MAX_WORKERS")
    groups: List[GroupModel] = Field(..., min_length=1)

    def to_groups(self, settings: Settings) -> List[RolloutGroup]:
        return [
            RolloutGroup(name=group.name, specs=tuple(target.to_wait_spec(settings) for target in group.targets))
            for group in self.groups
        ]


def parse_plan(data: object) -> RolloutPlanModel:
    try:
        return RolloutPlanModel.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid rollout plan: {e}") from e


def load_plan(path: Path) -> RolloutPlanModel:
    """
    Load a rollout plan from a YAML file.

    Raises:
        ConfigError: if the file is missing, not YAML, or not a valid plan
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read rollout plan {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Rollout plan {path} is not valid YAML: {e}") from e
    return parse_plan(data)


def cap_rollout_groups(namespaces: Sequence[str], settings: Settings) -> List[RolloutGroup]:
    """
    The CAP deployment order as one dependency chain.

    Each namespace must be Active and its workloads ready before the next
    namespace is waited on.
    """
    specs: List[WaitSpec] = []
    for namespace in namespaces:
        specs.append(WaitSpec(
            target=ResourceRef(kind=ResourceKind.NAMESPACE, name=namespace, scope=namespace),
            timeout_seconds=settings.WAIT_TIMEOUT_SECS,
            poll_interval_seconds=settings.POLL_INTERVAL_SECS,
        ))
        specs.append(WaitSpec(
            target=ScopeSelector(scope=namespace, kinds=CAP_WORKLOAD_KINDS),
            timeout_seconds=settings.WAIT_TIMEOUT_SECS,
            poll_interval_seconds=settings.POLL_INTERVAL_SECS,
        ))
    return [RolloutGroup(name="cap", specs=tuple(specs))]


def cap_teardown_groups(namespaces: Sequence[str], settings: Settings) -> List[RolloutGroup]:
    """Namespaces gone, in reverse deployment order."""
    specs = tuple(
        WaitSpec(
            target=ResourceRef(kind=ResourceKind.NAMESPACE, name=namespace, scope=namespace),
            predicate=Predicate.ABSENT,
            timeout_seconds=settings.DELETE_TIMEOUT_SECS,
            poll_interval_seconds=settings.POLL_INTERVAL_SECS,
        )
        for namespace in reversed(list(namespaces))
    )
    return [RolloutGroup(name="cap-teardown", specs=specs)]
