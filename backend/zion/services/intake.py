"""Intake workflow.

Pipeline:
1. Validate (email required)
2. Allocate a proposal id
3. Forward the lead to the CRM webhook (hard gate: failure aborts)
4. Generate the proposal document
5. Persist ``{pid, created_at, intake, proposal}`` under a pid not already
   in the store (best effort)

Failures after step 2 leave a diagnostic record under ``proposal_fail:{pid}``
for operators. A lead already forwarded to the CRM is never rolled back.
"""

import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

import structlog

from zion.adapters.crm import LeadForwarder
from zion.config import Settings, settings as default_settings
from zion.errors import ProposalGenerationFailed, ValidationError, ZionError
from zion.schemas.intake import IntakePayload
from zion.services.kv_store import KVStore, failure_key, proposal_key
from zion.services.proposal import ProposalGenerator

logger = structlog.get_logger()

PID_ATTEMPTS = 5


def new_pid() -> str:
    """Short opaque id: 48 random bits as uppercase hex."""
    return secrets.token_hex(6).upper()


def summary_path(pid: str) -> str:
    return f"/summary?pid={quote(pid)}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class IntakeResult:
    pid: str
    redirect_url: str
    stored: bool
    record: dict


class IntakeService:
    def __init__(
        self,
        forwarder: LeadForwarder,
        generator: ProposalGenerator,
        store: KVStore,
        config: Settings | None = None,
    ):
        config = config or default_settings
        self.forwarder = forwarder
        self.generator = generator
        self.store = store
        self.ttl_seconds = config.proposal_ttl_seconds
        self.failure_ttl_seconds = config.failure_ttl_seconds

    async def submit(self, payload: IntakePayload) -> IntakeResult:
        if not payload.email.strip():
            raise ValidationError("Missing email")

        pid = new_pid()
        start_time = time.time()
        log = logger.bind(pid=pid)

        try:
            await self.forwarder.forward(payload)
            proposal, _raw = await self.generator.generate(payload)
        except ZionError as e:
            log.error("intake_failed", error=e.message, error_type=type(e).__name__)
            await self._record_failure(pid, payload, e)
            raise

        record = {
            "pid": pid,
            "created_at": utc_now_iso(),
            "intake": payload.record(),
            "proposal": proposal,
        }
        stored = await self._persist_record(record)
        pid = record["pid"]

        log.info("intake_completed", stored=stored, final_pid=pid, duration=round(time.time() - start_time, 3))
        return IntakeResult(pid=pid, redirect_url=summary_path(pid), stored=stored, record=record)

    async def fetch(self, pid: str) -> dict | None:
        pid = (pid or "").strip()
        if not pid:
            raise ValidationError("Missing pid")
        return await self.store.get(proposal_key(pid))

    async def _persist_record(self, record: dict) -> bool:
        """Write the record under a pid nobody holds yet.

        The write is ``SET NX``; when the key is taken a fresh pid is drawn
        and ``record["pid"]`` is updated in place.
        """
        for _ in range(PID_ATTEMPTS):
            key = proposal_key(record["pid"])
            try:
                if await self.store.put(key, record, self.ttl_seconds, only_new=True):
                    return True
            except ZionError as e:
                logger.error("kv_persist_failed", key=key, error=e.message)
                return False
            logger.warning("pid_collision", pid=record["pid"])
            record["pid"] = new_pid()
        logger.error("kv_persist_failed", error="no free pid", attempts=PID_ATTEMPTS)
        return False

    async def _persist(self, key: str, document: dict, ttl: int) -> bool:
        try:
            await self.store.put(key, document, ttl)
            return True
        except ZionError as e:
            logger.error("kv_persist_failed", key=key, error=e.message)
            return False

    async def _record_failure(self, pid: str, payload: IntakePayload, error: ZionError) -> None:
        failure = {
            "pid": pid,
            "created_at": utc_now_iso(),
            "intake": payload.record(),
            "error": error.message,
            "error_type": type(error).__name__,
            "raw1": None,
            "raw2": None,
            "problems": [],
        }
        if isinstance(error, ProposalGenerationFailed):
            failure.update(raw1=error.raw1, raw2=error.raw2, problems=error.problems)
        elif getattr(error, "body", None):
            failure["upstream_body"] = error.body
        await self._persist(failure_key(pid), failure, self.failure_ttl_seconds)
