from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes.client.rest import ApiException
from urllib3.exceptions import ProtocolError

from cap_rollout.adapters import KubeQueryAdapter
from cap_rollout.errors import AdapterError
from cap_rollout.kube_client import KubeClient, to_snapshot
from cap_rollout.kube_types import ResourceKind


def meta(name, namespace="scf", generation=None, deletion_timestamp=None):
    return SimpleNamespace(name=name, namespace=namespace, generation=generation,
                           deletion_timestamp=deletion_timestamp)


def deployment(name, replicas, ready, generation=1, observed=1):
    return SimpleNamespace(
        metadata=meta(name, generation=generation),
        spec=SimpleNamespace(replicas=replicas),
        status=SimpleNamespace(ready_replicas=ready, updated_replicas=ready, available_replicas=ready,
                               observed_generation=observed),
    )


def pod(name, phase, ready_flags):
    return SimpleNamespace(
        metadata=meta(name),
        spec=SimpleNamespace(containers=[object() for _ in ready_flags], node_name="node-1"),
        status=SimpleNamespace(phase=phase,
                               container_statuses=[SimpleNamespace(ready=flag) for flag in ready_flags]),
    )


@pytest.fixture
def apis():
    return MagicMock(), MagicMock()


@pytest.fixture
def kube(apis):
    core, apps = apis
    return KubeClient(in_cluster=False, request_timeout=15, core_api=core, apps_api=apps)


class TestToSnapshot:
    def test_deployment_counts(self):
        snapshot = to_snapshot(ResourceKind.DEPLOYMENT, deployment("api", 3, 2), "scf")
        assert (snapshot.desired_count, snapshot.ready_count) == (3, 2)
        assert snapshot.exists
        assert snapshot.ref.name == "api"
        assert snapshot.status["updated_replicas"] == 2

    def test_missing_ready_replicas_counts_as_zero(self):
        snapshot = to_snapshot(ResourceKind.STATEFUL_SET, deployment("api", 0, None), "scf")
        assert (snapshot.desired_count, snapshot.ready_count) == (0, 0)

    def test_stale_generation_hides_desired_count(self):
        snapshot = to_snapshot(ResourceKind.DEPLOYMENT, deployment("api", 3, 3, generation=4, observed=3), "scf")
        assert snapshot.desired_count is None

    def test_daemon_set_counts(self):
        obj = SimpleNamespace(
            metadata=meta("fluentd", generation=1),
            spec=SimpleNamespace(),
            status=SimpleNamespace(desired_number_scheduled=4, number_ready=3, updated_number_scheduled=4,
                                   number_available=3, observed_generation=1),
        )
        snapshot = to_snapshot(ResourceKind.DAEMON_SET, obj, "scf")
        assert (snapshot.desired_count, snapshot.ready_count) == (4, 3)

    def test_pod_counts_ready_containers(self):
        snapshot = to_snapshot(ResourceKind.POD, pod("api-0", "Running", [True, False]), "scf")
        assert (snapshot.desired_count, snapshot.ready_count) == (2, 1)
        assert snapshot.status["phase"] == "Running"

    def test_completed_pod_counts_as_ready(self):
        snapshot = to_snapshot(ResourceKind.POD, pod("post-deploy-setup", "Succeeded", [False]), "scf")
        assert snapshot.ready_count == snapshot.desired_count == 1

    @pytest.mark.parametrize("phase, ready", [("Active", 1), ("Terminating", 0)])
    def test_namespace_phase(self, phase, ready):
        obj = SimpleNamespace(metadata=meta("scf", namespace=None), status=SimpleNamespace(phase=phase))
        snapshot = to_snapshot(ResourceKind.NAMESPACE, obj, "scf")
        assert (snapshot.desired_count, snapshot.ready_count) == (1, ready)
        assert snapshot.ref.scope == "scf"

    def test_terminating_flag(self):
        obj = pod("api-0", "Running", [True])
        obj.metadata.deletion_timestamp = "2026-10-18T00:00:00Z"
        assert to_snapshot(ResourceKind.POD, obj, "scf").status["terminating"] is True


class TestKubeClient:
    def test_list_uses_namespace_selector_and_timeout(self, kube, apis):
        _, apps = apis
        apps.list_namespaced_deployment.return_value = SimpleNamespace(items=[deployment("api", 1, 1)])

        snapshots = kube.list_snapshots(ResourceKind.DEPLOYMENT, "scf", label_selector="app=api")

        apps.list_namespaced_deployment.assert_called_once_with(
            namespace="scf", label_selector="app=api", _request_timeout=15)
        assert [s.ref.name for s in snapshots] == ["api"]

    def test_list_namespace_filters_by_name(self, kube, apis):
        core, _ = apis
        core.list_namespace.return_value = SimpleNamespace(items=[])

        assert kube.list_snapshots(ResourceKind.NAMESPACE, "uaa") == []
        core.list_namespace.assert_called_once_with(field_selector="metadata.name=uaa", _request_timeout=15)

    def test_read_pod(self, kube, apis):
        core, _ = apis
        core.read_namespaced_pod_status.return_value = pod("api-0", "Running", [True])

        snapshot = kube.read_snapshot(ResourceKind.POD, "api-0", "scf")

        core.read_namespaced_pod_status.assert_called_once_with(name="api-0", namespace="scf", _request_timeout=15)
        assert snapshot.ready_count == 1

    def test_loads_kubeconfig_context(self, monkeypatch):
        loaded = {}
        monkeypatch.setattr("cap_rollout.kube_client.config.load_kube_config",
                            lambda **kwargs: loaded.update(kwargs))
        monkeypatch.setattr("cap_rollout.kube_client.client.CoreV1Api", MagicMock)
        monkeypatch.setattr("cap_rollout.kube_client.client.AppsV1Api", MagicMock)

        KubeClient(in_cluster=False, context="cap-dev")

        assert loaded == {"context": "cap-dev"}


class TestKubeQueryAdapter:
    def test_named_query_returns_one_snapshot(self, kube, apis):
        _, apps = apis
        apps.read_namespaced_stateful_set_status.return_value = deployment("database", 1, 1)

        snapshots = KubeQueryAdapter(kube).query("scf", ResourceKind.STATEFUL_SET, name="database")

        assert len(snapshots) == 1
        assert snapshots[0].ref.kind is ResourceKind.STATEFUL_SET

    def test_not_found_is_absent(self, kube, apis):
        _, apps = apis
        apps.read_namespaced_deployment_status.side_effect = ApiException(status=404, reason="Not Found")

        assert KubeQueryAdapter(kube).query("scf", ResourceKind.DEPLOYMENT, name="api") == []

    def test_server_error_is_adapter_error(self, kube, apis):
        core, _ = apis
        core.list_namespaced_pod.side_effect = ApiException(status=500, reason="Internal Server Error")

        with pytest.raises(AdapterError, match="500"):
            KubeQueryAdapter(kube).query("scf", ResourceKind.POD)

    def test_transport_error_is_adapter_error(self, kube, apis):
        core, _ = apis
        core.list_namespaced_pod.side_effect = ProtocolError("connection reset")

        with pytest.raises(AdapterError, match="unreachable"):
            KubeQueryAdapter(kube).query("scf", ResourceKind.POD)
