"""Health check and metrics endpoints."""

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from zion import __version__
from zion.adapters.crm import LeadForwarder
from zion.api.deps import get_forwarder, get_llm, get_store
from zion.errors import ZionError
from zion.schemas.common import HealthResponse
from zion.services.kv_store import KVStore
from zion.services.llm import LLMClient

router = APIRouter(tags=["health"])

# Prometheus metrics
INTAKE_REQUESTS = Counter("intake_requests_total", "Intake submissions by outcome", ["outcome"])
INTAKE_DURATION = Histogram("intake_duration_seconds", "Intake pipeline duration")
PROPOSAL_FETCHES = Counter("proposal_fetches_total", "Proposal lookups", ["found"])
DIALOGUE_TURNS = Counter("dialogue_turns_total", "Dialogue turns by resulting stage", ["stage"])
ERRORS = Counter("errors_total", "Total errors", ["type"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: KVStore = Depends(get_store),
    llm: LLMClient = Depends(get_llm),
    forwarder: LeadForwarder = Depends(get_forwarder),
):
    """Health check endpoint."""
    try:
        kv_status = "ok" if await store.ping() else "error"
    except ZionError:
        kv_status = "error"

    llm_status = "configured" if llm.is_configured else "missing"
    crm_status = "configured" if forwarder.is_configured else "missing"
    overall = "healthy" if kv_status == "ok" and llm_status == crm_status == "configured" else "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        kv=kv_status,
        kv_backend=store.backend,
        llm=llm_status,
        crm=crm_status,
    )


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
