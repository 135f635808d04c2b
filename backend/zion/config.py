"""Application configuration from environment variables."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Zion Intake"
    debug: bool = False
    api_prefix: str = "/api"
    cors_origins: list[str] = ["*"]

    # Text generation (Anthropic)
    anthropic_api_key: str = Field(
        "", validation_alias=AliasChoices("ZION_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY")
    )
    model: str = "claude-sonnet-4-20250514"
    llm_timeout_seconds: float = 60.0
    proposal_temperature: float = 0.2
    proposal_max_tokens: int = 1400

    # CRM webhook (GoHighLevel inbound webhook or any JSON receiver)
    crm_webhook_url: str = Field(
        "", validation_alias=AliasChoices("ZION_CRM_WEBHOOK_URL", "GHL_WEBHOOK_URL")
    )

    # Key-value store: REST pipeline endpoint first, plain Redis second
    kv_rest_api_url: str = Field(
        "", validation_alias=AliasChoices("ZION_KV_REST_API_URL", "KV_REST_API_URL")
    )
    kv_rest_api_token: str = Field(
        "", validation_alias=AliasChoices("ZION_KV_REST_API_TOKEN", "KV_REST_API_TOKEN")
    )
    redis_url: str = ""
    proposal_ttl_seconds: int = Field(1800, gt=0)  # 604800 keeps proposals for a week
    failure_ttl_seconds: int = Field(1800, gt=0)

    # Outbound HTTP
    http_timeout_seconds: float = 15.0

    # Qualification dialogue
    dialogue_max_questions: int = Field(3, ge=1)
    dialogue_max_inputs: int = Field(10, ge=1)
    dialogue_llm_ack: bool = False
    dialogue_ack_max_tokens: int = 120

    model_config = {"env_file": ".env", "env_prefix": "ZION_", "populate_by_name": True}


settings = Settings()
