from __future__ import annotations

import json
import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import typer

from .adapters import KubeQueryAdapter, ResourceQueryAdapter
from .config import Settings, configure_logging, settings
from .errors import AdapterError, ConfigError
from .kube_client import KubeClient
from .kube_types import Predicate, ResourceKind, ResourceRef, RolloutReport, WaitResult, WaitSpec
from .orchestrator import RolloutGroup, RolloutOrchestrator
from .plan import cap_rollout_groups, cap_teardown_groups, load_plan
from .timing import CancelToken
from .waiter import Waiter

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TIMED_OUT = 1
EXIT_USAGE = 2
EXIT_ERROR = 3
EXIT_CANCELLED = 130

app = typer.Typer(help="Wait for CAP workloads to roll out or be torn down.")


def build_adapter(app_settings: Settings) -> ResourceQueryAdapter:
    kube_client = KubeClient(
        in_cluster=app_settings.K8S_IN_CLUSTER,
        context=app_settings.K8S_CONTEXT,
        request_timeout=app_settings.REQUEST_TIMEOUT_SECS,
    )
    return KubeQueryAdapter(kube_client)


def exit_code_for(report: RolloutReport) -> int:
    if report.cancelled:
        return EXIT_CANCELLED
    status = report.status
    if status is WaitResult.SATISFIED:
        return EXIT_OK
    if status is WaitResult.TIMED_OUT:
        return EXIT_TIMED_OUT
    return EXIT_ERROR


def _settings_with(timeout: Optional[float], interval: Optional[float], context: Optional[str]) -> Settings:
    updates: Dict[str, Any] = {}
    if timeout is not None:
        updates["WAIT_TIMEOUT_SECS"] = timeout
        updates["DELETE_TIMEOUT_SECS"] = timeout
    if interval is not None:
        updates["POLL_INTERVAL_SECS"] = interval
    if context is not None:
        updates["K8S_CONTEXT"] = context
    return settings.model_copy(update=updates)


@contextmanager
def _cancel_on_signal(token: CancelToken) -> Iterator[None]:
    """Turn SIGINT/SIGTERM into a cooperative cancel for the running waits."""
    def handler(signum, frame):
        logger.warning(f"⚠️ Received signal {signum}, cancelling waits")
        token.cancel()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def _run(groups: List[RolloutGroup], app_settings: Settings, fail_fast: bool, jobs: int, as_json: bool) -> None:
    try:
        adapter = build_adapter(app_settings)
    except Exception as e:
        typer.echo(f"Kubernetes client unavailable: {e}", err=True)
        raise typer.Exit(code=EXIT_ERROR)

    token = CancelToken()
    orchestrator = RolloutOrchestrator(
        waiter_factory=lambda: Waiter(adapter, max_error_streak=app_settings.MAX_ERROR_STREAK),
        fail_fast=fail_fast,
        max_workers=jobs,
        token=token,
    )
    with _cancel_on_signal(token):
        report = orchestrator.run_groups(groups)

    _print_report(report, as_json)
    raise typer.Exit(code=exit_code_for(report))


def _print_report(report: RolloutReport, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
        return
    for outcome in report.outcomes:
        line = f"{outcome.result.value:<10} {outcome.target} ({outcome.elapsed_seconds:.1f}s)"
        if outcome.reason:
            line += f": {outcome.reason}"
        typer.echo(line)
    for target in report.skipped:
        typer.echo(f"{'Skipped':<10} {target}")
    typer.echo(f"Rollout status: {report.status.value}")


@app.command("wait-rollout")
def wait_rollout(
    plan: Optional[Path] = typer.Option(
        None,
        "--plan",
        "-p",
        help="YAML rollout plan. Defaults to the CAP namespaces.",
    ),
    namespace: Optional[List[str]] = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Namespace to wait on, in order (repeatable). Defaults to CAP_NAMESPACES. Not with --plan.",
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", min=0, help="Seconds per target."),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Seconds between polls."),
    fail_fast: Optional[bool] = typer.Option(
        None,
        "--fail-fast/--run-all",
        help="Stop at the first failed target, or wait on every target and aggregate.",
    ),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Independent groups waited on in parallel."),
    context: Optional[str] = typer.Option(None, "--context", help="Kubernetes context."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """Wait for workloads to become ready."""
    configure_logging(settings.LOG_LEVEL)
    if plan is not None and namespace:
        typer.echo("--plan and --namespace cannot be combined; list the namespaces in the plan", err=True)
        raise typer.Exit(code=EXIT_USAGE)
    try:
        app_settings = _settings_with(timeout, interval, context)
        if plan is not None:
            plan_model = load_plan(plan)
            groups = plan_model.to_groups(app_settings)
            plan_fail_fast, plan_workers = plan_model.fail_fast, plan_model.max_workers
        else:
            groups = cap_rollout_groups(namespace or app_settings.CAP_NAMESPACES, app_settings)
            plan_fail_fast, plan_workers = None, None
    except ConfigError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=EXIT_USAGE)

    if fail_fast is None:
        fail_fast = plan_fail_fast if plan_fail_fast is not None else app_settings.FAIL_FAST
    workers = jobs or plan_workers or app_settings.MAX_WORKERS
    _run(groups, app_settings, fail_fast, workers, as_json)


@app.command("wait-deletion")
def wait_deletion(
    kind: ResourceKind = typer.Option(..., "--kind", "-k", help="Kind of the resource."),
    name: str = typer.Option(..., "--name", help="Name of the resource."),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Namespace; defaults to the name for namespaces."),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", min=0, help="Seconds to wait."),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Seconds between polls."),
    context: Optional[str] = typer.Option(None, "--context", help="Kubernetes context."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """Wait for a resource to be deleted."""
    configure_logging(settings.LOG_LEVEL)
    scope = namespace or (name if kind is ResourceKind.NAMESPACE else None)
    if not scope:
        typer.echo("--namespace is required for namespaced kinds", err=True)
        raise typer.Exit(code=EXIT_USAGE)
    try:
        app_settings = _settings_with(timeout, interval, context)
        spec = WaitSpec(
            target=ResourceRef(kind=kind, name=name, scope=scope),
            predicate=Predicate.ABSENT,
            timeout_seconds=app_settings.DELETE_TIMEOUT_SECS,
            poll_interval_seconds=app_settings.POLL_INTERVAL_SECS,
        )
    except ConfigError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=EXIT_USAGE)
    _run([RolloutGroup(name="deletion", specs=(spec,))], app_settings, True, 1, as_json)


@app.command("wait-teardown")
def wait_teardown(
    namespace: Optional[List[str]] = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Namespace in deployment order (repeatable). Defaults to CAP_NAMESPACES.",
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", min=0, help="Seconds per namespace."),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Seconds between polls."),
    context: Optional[str] = typer.Option(None, "--context", help="Kubernetes context."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """Wait for the CAP namespaces to be gone, last deployed first."""
    configure_logging(settings.LOG_LEVEL)
    try:
        app_settings = _settings_with(timeout, interval, context)
        groups = cap_teardown_groups(namespace or app_settings.CAP_NAMESPACES, app_settings)
    except ConfigError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=EXIT_USAGE)
    _run(groups, app_settings, True, 1, as_json)


@app.command()
def status(
    namespace: str = typer.Option(..., "--namespace", "-n", help="Namespace to inspect."),
    kind: ResourceKind = typer.Option(ResourceKind.POD, "--kind", "-k", help="Kind to list."),
    context: Optional[str] = typer.Option(None, "--context", help="Kubernetes context."),
) -> None:
    """Print the current ready/desired counts once."""
    configure_logging(settings.LOG_LEVEL)
    app_settings = _settings_with(None, None, context)
    try:
        snapshots = build_adapter(app_settings).query(namespace, kind)
    except AdapterError as e:
        typer.echo(f"Query failed: {e}", err=True)
        raise typer.Exit(code=EXIT_ERROR)
    except Exception as e:
        typer.echo(f"Kubernetes client unavailable: {e}", err=True)
        raise typer.Exit(code=EXIT_ERROR)

    if not snapshots:
        typer.echo(f"No {kind.value} found in {namespace}")
        return
    for snapshot in snapshots:
        desired = "?" if snapshot.desired_count is None else snapshot.desired_count
        typer.echo(f"{snapshot.ref.name:<50} {snapshot.ready_count}/{desired}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", help="Port; defaults to HTTP_PORT."),
) -> None:
    """Run the HTTP service."""
    from .fastapi_app import serve as run_server

    run_server(host=host, port=port)


if __name__ == "__main__":
    app()
