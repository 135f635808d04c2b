"""Text-generation client and prompt template loading."""

import time
from pathlib import Path

import anthropic
import structlog

from zion.config import Settings, settings as default_settings
from zion.errors import UpstreamConfigurationError, UpstreamRequestFailure

logger = structlog.get_logger()

# Packaged templates first, then a mounted override directory
_PROMPTS_CANDIDATES = [
    Path(__file__).parent.parent / "prompts",
    Path("/prompts"),
]
PROMPTS_DIR = next((p for p in _PROMPTS_CANDIDATES if p.exists()), _PROMPTS_CANDIDATES[0])


def load_prompt_template(template_id: str) -> str:
    """Load a prompt template by ID (filename without extension)."""
    path = PROMPTS_DIR / f"{template_id}.txt"
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {template_id} (searched {PROMPTS_DIR})")
    return path.read_text(encoding="utf-8")


def render_prompt(template_id: str, **template_vars) -> str:
    return load_prompt_template(template_id).format(**template_vars).strip()


class LLMClient:
    """Thin wrapper over the Anthropic Messages API.

    The SDK's own retries are disabled: callers decide whether a second call
    is worth making (the proposal repair pass is the only one).
    """

    def __init__(self, config: Settings | None = None, client: anthropic.AsyncAnthropic | None = None):
        config = config or default_settings
        self.model = config.model
        self._api_key = config.anthropic_api_key
        self._timeout = config.llm_timeout_seconds
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self._client or self._api_key)

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            if not self._api_key:
                raise UpstreamConfigurationError("ANTHROPIC_API_KEY missing")
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key, timeout=self._timeout, max_retries=0,
            )
        return self._client

    async def complete(
        self,
        prompt: str,
        task_type: str,
        system_prompt: str = "",
        temperature: float = 0.2,
        max_tokens: int = 1024,
        prefill: str = "",
    ) -> dict:
        """Run one completion.

        ``prefill`` seeds the assistant turn (``"{"`` forces a JSON object) and
        is prepended to the returned content.

        Returns dict with: content, model, input_tokens, output_tokens, tokens, duration
        """
        client = self._get_client()

        messages = [{"role": "user", "content": prompt}]
        if prefill:
            messages.append({"role": "assistant", "content": prefill})
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        start = time.time()
        try:
            response = await client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error("llm_call_failed", task_type=task_type, model=self.model, error=str(e))
            raise UpstreamRequestFailure("Text generation request failed") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens
        duration = round(time.time() - start, 3)
        logger.info(
            "llm_call_completed",
            task_type=task_type, model=self.model,
            input_tokens=input_tokens, output_tokens=output_tokens, duration=duration,
        )
        return {
            "content": (prefill + text).strip(),
            "model": self.model,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "tokens": input_tokens + output_tokens,
            "duration": duration,
        }
