# fastapi_app.py
from __future__ import annotations

import io
import logging
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from rollout_check.config import settings
from rollout_check.exceptions import DeploymentsFailedError, ResourceDiscoveryError
from rollout_check.kube_client import KubeClient
from rollout_check.labeller import Labeller
from rollout_check.status_check import StatusChecker

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

# Try to initialize Kubernetes client, but don't fail if it's not available
try:
    kube_client = KubeClient(
        namespace=settings.K8S_NAMESPACE,
        in_cluster=settings.K8S_IN_CLUSTER,
        context=settings.K8S_CONTEXT,
        kubectl=settings.KUBECTL_BINARY,
        kubectl_timeout_s=settings.KUBECTL_TIMEOUT_SECS,
    )
except Exception as e:
    logger.warning(f"⚠️ Kubernetes client initialization failed: {e}. Status checks will not work.")
    kube_client = None

# -----------------------------------------------------------------------------
# FastAPI app + CORS
# -----------------------------------------------------------------------------
app = FastAPI(title="Rollout Status Check", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------------
class StatusCheckRequest(BaseModel):
    run_id: str = Field(..., description="Run id the deployments are labelled with")
    namespace: str = Field(default=settings.K8S_NAMESPACE, description="Target namespace")
    deadline_secs: Optional[int] = Field(default=None, ge=1, description="Default per-deployment deadline")
    poll_period_ms: Optional[int] = Field(default=None, ge=1, description="Interval between polls")


class StatusCheckResponse(BaseModel):
    success: bool
    status_code: int
    status_name: str
    message: str
    output: str

# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.post("/api/status-check", response_model=StatusCheckResponse)
async def api_status_check(body: StatusCheckRequest):
    """Wait for the deployments of a run to stabilize and return the verdict."""
    if kube_client is None:
        raise HTTPException(status_code=503, detail="Kubernetes client not available")

    deadline = timedelta(seconds=body.deadline_secs) if body.deadline_secs else None
    checker = StatusChecker(
        kube_client,
        Labeller(run_id=body.run_id),
        deadline=deadline,
        poll_period_ms=body.poll_period_ms,
        namespaces=[body.namespace],
    )
    out = io.StringIO()

    logger.info(f"🚀 Status check for run {body.run_id} in namespace {body.namespace}")
    try:
        code = await checker.check(out)
    except ResourceDiscoveryError as e:
        logger.error(f"❌ {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except DeploymentsFailedError as e:
        return StatusCheckResponse(
            success=False,
            status_code=int(e.status_code),
            status_name=e.status_code.name,
            message=str(e),
            output=out.getvalue(),
        )

    return StatusCheckResponse(
        success=True,
        status_code=int(code),
        status_name=code.name,
        message="deployments stabilized",
        output=out.getvalue(),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.HTTP_PORT)
