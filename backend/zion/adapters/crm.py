"""CRM adapter - inbound-webhook lead forwarding (GoHighLevel style)."""

import httpx
import structlog

from zion.config import Settings, settings as default_settings
from zion.errors import WebhookNotConfigured, WebhookRejected
from zion.schemas.intake import IntakePayload

logger = structlog.get_logger()

DEFAULT_INTENT = "Zion Activation"
DEFAULT_SOURCE = "Zion On-Page Intelligence"
FIELD_LIMIT = 500
SUMMARY_LIMIT = 4000

COPIED_FIELDS = [
    "phone", "business_name", "website", "industry",
    "primary_goal", "budget_range", "timeline", "bottleneck", "page_url",
]


def clean_text(value, limit: int = FIELD_LIMIT) -> str:
    if value is None:
        return ""
    return str(value).strip()[:limit]


def split_name(full_name: str) -> tuple[str, str]:
    parts = clean_text(full_name).split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def build_crm_payload(intake: IntakePayload) -> dict:
    """Flatten an intake into the field names the CRM workflow maps."""
    first_name, last_name = split_name(intake.full_name)
    payload = {
        "first_name": first_name,
        "last_name": last_name,
        "email": clean_text(intake.email),
    }
    for field in COPIED_FIELDS:
        payload[field] = clean_text(getattr(intake, field))
    payload["intent"] = clean_text(intake.intent) or DEFAULT_INTENT
    payload["source"] = clean_text(intake.source) or DEFAULT_SOURCE
    payload["conversation_summary"] = clean_text(intake.conversation_summary, SUMMARY_LIMIT)
    return payload


class LeadForwarder:
    """POSTs intakes to the configured CRM webhook. Failures raise."""

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "LeadForwarder":
        config = config or default_settings
        return cls(config.crm_webhook_url, timeout=config.http_timeout_seconds)

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    async def forward(self, intake: IntakePayload) -> dict:
        if not self._webhook_url:
            raise WebhookNotConfigured("CRM webhook URL missing")

        payload = build_crm_payload(intake)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("crm_webhook_failed", error=str(e))
            raise WebhookRejected("CRM webhook request failed", body=str(e)) from e

        if not resp.is_success:
            body = resp.text[:300]
            logger.error("crm_webhook_rejected", status=resp.status_code, body=body)
            raise WebhookRejected(f"CRM webhook failed: HTTP {resp.status_code}", status=resp.status_code, body=body)

        logger.info("crm_webhook_sent", status=resp.status_code, email=payload["email"])
        return payload
