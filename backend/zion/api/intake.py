"""Lead intake and proposal lookup endpoints."""

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError as PydanticValidationError

from zion.api.deps import get_intake_service, read_json_body
from zion.api.health import ERRORS, INTAKE_DURATION, INTAKE_REQUESTS, PROPOSAL_FETCHES
from zion.errors import ProposalNotFound, ValidationError, ZionError
from zion.schemas.common import OkResponse
from zion.schemas.intake import IntakePayload, IntakeResponse, ProposalFetchResponse
from zion.services.intake import IntakeService

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["intake"])


def parse_intake(body: dict) -> IntakePayload:
    try:
        return IntakePayload.model_validate(body)
    except PydanticValidationError as e:
        field = ".".join(str(part) for part in e.errors()[0]["loc"]) or "body"
        raise ValidationError(f"Invalid field: {field}")


@router.options("/intake", response_model=OkResponse)
@router.options("/proposal", response_model=OkResponse)
async def intake_options():
    return OkResponse()


@router.post("/intake", response_model=IntakeResponse)
async def submit_intake(
    body: dict = Depends(read_json_body),
    service: IntakeService = Depends(get_intake_service),
):
    """Forward a lead to the CRM, generate its proposal and store it."""
    try:
        payload = parse_intake(body)
        with INTAKE_DURATION.time():
            result = await service.submit(payload)
    except ZionError as e:
        INTAKE_REQUESTS.labels(outcome=type(e).__name__).inc()
        ERRORS.labels(type="intake").inc()
        raise

    INTAKE_REQUESTS.labels(outcome="ok" if result.stored else "ok_unstored").inc()
    logger.info("intake_accepted", pid=result.pid, stored=result.stored)
    return IntakeResponse(
        pid=result.pid,
        id=result.pid,
        redirect_url=result.redirect_url,
        stored=result.stored,
    )


@router.get("/proposal", response_model=ProposalFetchResponse)
async def fetch_proposal(
    pid: str | None = Query(None),
    id: str | None = Query(None),
    service: IntakeService = Depends(get_intake_service),
):
    """Return a stored intake + proposal record by id."""
    record = await service.fetch(pid or id or "")
    PROPOSAL_FETCHES.labels(found=str(record is not None).lower()).inc()
    if record is None:
        raise ProposalNotFound("Proposal not found (expired or invalid pid)")
    return ProposalFetchResponse(record=record)
