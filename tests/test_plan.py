from pathlib import Path

import pytest

from cap_rollout.config import Settings
from cap_rollout.errors import ConfigError
from cap_rollout.kube_types import Predicate, ResourceKind, ResourceRef, ScopeSelector
from cap_rollout.plan import (
    CAP_WORKLOAD_KINDS,
    cap_rollout_groups,
    cap_teardown_groups,
    load_plan,
    parse_plan,
)

PLAN_YAML = """\
fail_fast: false
max_workers: 2
groups:
  - name: uaa
    targets:
      - namespace: uaa
        kind: Namespace
        name: uaa
      - namespace: uaa
        kinds: [Pod, StatefulSet]
        label_selector: app.kubernetes.io/component=uaa
        timeout_seconds: 900
  - name: cleanup
    targets:
      - namespace: old-scf
        kind: Namespace
        name: old-scf
        predicate: Absent
"""


@pytest.fixture
def settings():
    return Settings(WAIT_TIMEOUT_SECS=600, DELETE_TIMEOUT_SECS=120, POLL_INTERVAL_SECS=5)


class TestLoadPlan:
    def test_loads_groups_and_targets(self, tmp_path: Path, settings):
        path = tmp_path / "plan.yaml"
        path.write_text(PLAN_YAML)

        plan = load_plan(path)
        groups = plan.to_groups(settings)

        assert plan.fail_fast is False
        assert plan.max_workers == 2
        assert [group.name for group in groups] == ["uaa", "cleanup"]

        namespace_wait, workload_wait = groups[0].specs
        assert namespace_wait.target == ResourceRef(kind=ResourceKind.NAMESPACE, name="uaa", scope="uaa")
        assert namespace_wait.timeout_seconds == 600
        assert namespace_wait.poll_interval_seconds == 5
        assert workload_wait.target == ScopeSelector(
            scope="uaa",
            kinds=(ResourceKind.POD, ResourceKind.STATEFUL_SET),
            label_selector="app.kubernetes.io/component=uaa",
        )
        assert workload_wait.timeout_seconds == 900

        (cleanup,) = groups[1].specs
        assert cleanup.predicate is Predicate.ABSENT
        assert cleanup.timeout_seconds == 120

    def test_kind_without_name_waits_on_the_whole_kind(self, settings):
        plan = parse_plan({"groups": [{"name": "g", "targets": [{"namespace": "scf", "kind": "Pod"}]}]})

        (wait_spec,) = plan.to_groups(settings)[0].specs

        assert wait_spec.target == ScopeSelector(scope="scf", kinds=(ResourceKind.POD,))

    @pytest.mark.parametrize(
        "target",
        [
            {"namespace": "scf"},
            {"namespace": "scf", "name": "api"},
            {"namespace": "scf", "kind": "Pod", "name": "api-0", "kinds": ["Pod"]},
            {"namespace": "scf", "kinds": ["CronJob"]},
            {"namespace": "", "kinds": ["Pod"]},
            {"namespace": "scf", "kinds": ["Pod"], "timeout_seconds": -1},
            {"namespace": "scf", "kinds": ["Pod"], "poll_interval_seconds": 0},
            {"namespace": "scf", "kinds": ["Pod"], "predicate": "Ready"},
            {"namespace": "scf", "kinds": ["Pod"], "timeout_seconds": float("inf")},
            {"namespace": "scf", "kinds": ["Pod"], "poll_interval_seconds": float("nan")},
        ],
    )
    def test_rejects_bad_targets(self, target):
        with pytest.raises(ConfigError):
            parse_plan({"groups": [{"name": "g", "targets": [target]}]})

    def test_rejects_plan_without_groups(self):
        with pytest.raises(ConfigError):
            parse_plan({"groups": []})
        with pytest.raises(ConfigError):
            parse_plan(None)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Cannot read"):
            load_plan(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "plan.yaml"
        path.write_text("groups: [unclosed\n")
        with pytest.raises(ConfigError, match="not valid YAML"):
            load_plan(path)


class TestCapPlans:
    def test_rollout_waits_namespace_by_namespace(self, settings):
        (group,) = cap_rollout_groups(["uaa", "scf", "stratos"], settings)

        targets = [wait_spec.target for wait_spec in group.specs]
        assert targets == [
            ResourceRef(kind=ResourceKind.NAMESPACE, name="uaa", scope="uaa"),
            ScopeSelector(scope="uaa", kinds=CAP_WORKLOAD_KINDS),
            ResourceRef(kind=ResourceKind.NAMESPACE, name="scf", scope="scf"),
            ScopeSelector(scope="scf", kinds=CAP_WORKLOAD_KINDS),
            ResourceRef(kind=ResourceKind.NAMESPACE, name="stratos", scope="stratos"),
            ScopeSelector(scope="stratos", kinds=CAP_WORKLOAD_KINDS),
        ]
        assert all(wait_spec.timeout_seconds == 600 for wait_spec in group.specs)

    def test_teardown_reverses_the_order(self, settings):
        (group,) = cap_teardown_groups(["uaa", "scf", "stratos"], settings)

        assert [wait_spec.target.name for wait_spec in group.specs] == ["stratos", "scf", "uaa"]
        assert all(wait_spec.predicate is Predicate.ABSENT for wait_spec in group.specs)
        assert all(wait_spec.timeout_seconds == 120 for wait_spec in group.specs)
