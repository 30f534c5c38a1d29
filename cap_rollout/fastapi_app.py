# fastapi_app.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from .adapters import KubeQueryAdapter, ResourceQueryAdapter
from .config import Settings, configure_logging, settings
from .errors import AdapterError, ConfigError
from .kube_client import KubeClient
from .kube_types import Predicate, ResourceKind, ResourceRef, WaitSpec
from .orchestrator import RolloutOrchestrator
from .plan import TargetModel
from .waiter import Waiter

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# FastAPI app
# -----------------------------------------------------------------------------
app = FastAPI(title="CAP Rollout Waiter", version="1.0.0")

_adapter: Optional[ResourceQueryAdapter] = None

# -----------------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------------
class RolloutRequest(BaseModel):
    targets: List[TargetModel] = Field(..., min_length=1, description="Targets, waited on in order")
    fail_fast: Optional[bool] = Field(default=None, description="Defaults to FAIL_FAST")


class DeletionRequest(BaseModel):
    kind: ResourceKind = Field(..., description="Kind of the deleted resource")
    name: str = Field(..., min_length=1)
    namespace: str = Field(..., min_length=1)
    timeout_seconds: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    poll_interval_seconds: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)

# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------
def get_settings() -> Settings:
    return settings


def get_adapter() -> ResourceQueryAdapter:
    """Kubernetes-backed adapter, created on first use."""
    global _adapter
    if _adapter is None:
        try:
            kube_client = KubeClient(
                in_cluster=settings.K8S_IN_CLUSTER,
                context=settings.K8S_CONTEXT,
                request_timeout=settings.REQUEST_TIMEOUT_SECS,
            )
        except Exception as e:
            logger.warning(f"⚠️ Kubernetes client initialization failed: {e}")
            raise HTTPException(503, f"Kubernetes client unavailable: {e}")
        _adapter = KubeQueryAdapter(kube_client)
    return _adapter


def _check_wait_budget(specs: List[WaitSpec], app_settings: Settings) -> None:
    """HTTP waits hold a worker thread, so their timeouts are capped."""
    for spec in specs:
        if spec.timeout_seconds > app_settings.HTTP_MAX_WAIT_SECS:
            raise HTTPException(
                422,
                f"timeout_seconds {spec.timeout_seconds} for {spec.target} exceeds "
                f"HTTP_MAX_WAIT_SECS ({app_settings.HTTP_MAX_WAIT_SECS})",
            )


def _orchestrator(adapter: ResourceQueryAdapter, app_settings: Settings,
                  fail_fast: Optional[bool]) -> RolloutOrchestrator:
    return RolloutOrchestrator(
        waiter_factory=lambda: Waiter(adapter, max_error_streak=app_settings.MAX_ERROR_STREAK),
        fail_fast=app_settings.FAIL_FAST if fail_fast is None else fail_fast,
    )

# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/api/health")
async def api_health():
    return {"status": "healthy"}


@app.post("/api/rollout/wait")
def wait_rollout(body: RolloutRequest,
                 adapter: ResourceQueryAdapter = Depends(get_adapter),
                 app_settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """Wait for targets in order and report every outcome."""
    try:
        specs = [target.to_wait_spec(app_settings) for target in body.targets]
    except ConfigError as e:
        raise HTTPException(422, str(e))
    _check_wait_budget(specs, app_settings)

    logger.info(f"🚀 Waiting for rollout of {len(specs)} target(s)")
    report = _orchestrator(adapter, app_settings, body.fail_fast).run(specs)
    return report.to_dict()


@app.post("/api/deletion/wait")
def wait_deletion(body: DeletionRequest,
                  adapter: ResourceQueryAdapter = Depends(get_adapter),
                  app_settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """Wait for one resource to disappear."""
    try:
        spec = WaitSpec(
            target=ResourceRef(kind=body.kind, name=body.name, scope=body.namespace),
            predicate=Predicate.ABSENT,
            timeout_seconds=body.timeout_seconds if body.timeout_seconds is not None
            else app_settings.DELETE_TIMEOUT_SECS,
            poll_interval_seconds=body.poll_interval_seconds or app_settings.POLL_INTERVAL_SECS,
        )
    except ConfigError as e:
        raise HTTPException(422, str(e))
    _check_wait_budget([spec], app_settings)

    report = _orchestrator(adapter, app_settings, True).run([spec])
    return report.to_dict()


@app.get("/api/status/{namespace}")
def namespace_status(namespace: str, kind: ResourceKind = Query(ResourceKind.POD),
                     adapter: ResourceQueryAdapter = Depends(get_adapter)) -> List[Dict[str, Any]]:
    """Current snapshots of one kind in a namespace."""
    try:
        snapshots = adapter.query(namespace, kind)
    except AdapterError as e:
        logger.error(f"❌ Error querying {kind.value} in {namespace}: {e}")
        raise HTTPException(502, str(e))
    logger.info(f"✅ Retrieved {len(snapshots)} {kind.value} snapshots from namespace {namespace}")
    return [snapshot.to_dict() for snapshot in snapshots]


def serve(host: str = "0.0.0.0", port: Optional[int] = None) -> None:
    import uvicorn

    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(app, host=host, port=port or settings.HTTP_PORT)


if __name__ == "__main__":
    serve()
