"""Key-value persistence for proposal records.

Two backends speak the same small contract (``put`` / ``get`` / ``ping``):

* ``RestKVStore`` talks to an Upstash / Vercel KV style REST endpoint. Commands
  are POSTed to ``{url}/pipeline`` as an array of command arrays and the reply
  is an array of ``{"result": ...}`` or ``{"error": ...}`` objects.
* ``RedisKVStore`` talks to Redis directly, for local development and
  self-hosted deployments.

Every call is a fresh round trip. Values are JSON objects; anything that does
not decode back to an object reads as "not found".
"""

import json

import httpx
import redis.asyncio as redis_asyncio
import structlog
from redis.exceptions import RedisError

from zion.config import Settings, settings as default_settings
from zion.errors import StoreRequestFailed, StoreUnavailable

logger = structlog.get_logger()


def decode_document(raw) -> dict | None:
    """Decode a stored value; anything but a JSON object is treated as absent."""
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("kv_value_not_json", length=len(raw))
        return None
    return value if isinstance(value, dict) else None


class KVStore:
    """Common interface for the store backends."""

    backend = "none"

    async def put(self, key: str, document: dict, ttl: int, only_new: bool = False) -> bool:
        """Store ``document`` under ``key`` with expiry.

        With ``only_new`` the write is skipped when the key already exists
        (``SET ... NX``). Returns whether the value was written.
        """
        raise NotImplementedError

    async def get(self, key: str) -> dict | None:
        raise NotImplementedError

    async def ping(self) -> bool:
        raise NotImplementedError


class RestKVStore(KVStore):
    backend = "rest"

    def __init__(
        self,
        url: str | None,
        token: str | None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = (url or "").rstrip("/")
        self._token = token or ""
        self._timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._url and self._token)

    async def pipeline(self, commands: list[list[str]]) -> list:
        """Run a batch of commands and return the per-command results."""
        if not self.is_configured:
            raise StoreUnavailable("KV store not configured (KV_REST_API_URL / KV_REST_API_TOKEN)")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self._url}/pipeline",
                    headers={
                        "Authorization": f"Bearer {self._token}",
                        "Content-Type": "application/json",
                    },
                    json=commands,
                )
        except httpx.HTTPError as e:
            logger.error("kv_pipeline_transport_failed", error=str(e))
            raise StoreRequestFailed(f"KV pipeline failed: {e}") from e

        if resp.status_code >= 400:
            logger.error("kv_pipeline_rejected", status=resp.status_code, body=resp.text[:300])
            raise StoreRequestFailed(f"KV pipeline failed: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise StoreRequestFailed("KV pipeline returned a non-JSON reply") from e
        if not isinstance(data, list):
            raise StoreRequestFailed("KV pipeline returned an unexpected reply")

        errors = [item["error"] for item in data if isinstance(item, dict) and item.get("error")]
        if errors:
            logger.error("kv_command_failed", errors=errors)
            raise StoreRequestFailed(f"KV command failed: {errors[0]}")
        return [item.get("result") if isinstance(item, dict) else None for item in data]

    async def put(self, key: str, document: dict, ttl: int, only_new: bool = False) -> bool:
        value = json.dumps(document, ensure_ascii=False)
        command = ["SET", key, value, "EX", str(int(ttl))]
        if only_new:
            command.append("NX")
        results = await self.pipeline([command])
        written = bool(results) and results[0] == "OK"
        logger.info("kv_set", key=key, ttl=ttl, size=len(value), written=written)
        return written

    async def get(self, key: str) -> dict | None:
        results = await self.pipeline([["GET", key]])
        return decode_document(results[0] if results else None)

    async def ping(self) -> bool:
        results = await self.pipeline([["PING"]])
        return bool(results) and str(results[0]).upper() == "PONG"


class RedisKVStore(KVStore):
    backend = "redis"

    def __init__(self, url: str, timeout: float = 15.0, client=None):
        if not url and client is None:
            raise StoreUnavailable("Redis URL not configured")
        self.r = client or redis_asyncio.from_url(
            url, decode_responses=True, socket_timeout=timeout
        )

    async def put(self, key: str, document: dict, ttl: int, only_new: bool = False) -> bool:
        value = json.dumps(document, ensure_ascii=False)
        try:
            written = bool(await self.r.set(key, value, ex=int(ttl), nx=only_new))
        except RedisError as e:
            logger.error("redis_set_failed", key=key, error=str(e))
            raise StoreRequestFailed(f"Redis SET failed: {e}") from e
        logger.info("kv_set", key=key, ttl=ttl, size=len(value), written=written)
        return written

    async def get(self, key: str) -> dict | None:
        try:
            raw = await self.r.get(key)
        except RedisError as e:
            logger.error("redis_get_failed", key=key, error=str(e))
            raise StoreRequestFailed(f"Redis GET failed: {e}") from e
        return decode_document(raw)

    async def ping(self) -> bool:
        try:
            return bool(await self.r.ping())
        except RedisError as e:
            raise StoreRequestFailed(f"Redis PING failed: {e}") from e


def proposal_key(pid: str) -> str:
    return f"proposal:{pid}"


def failure_key(pid: str) -> str:
    return f"proposal_fail:{pid}"


def create_store(config: Settings | None = None) -> KVStore:
    """Pick the store backend from configuration.

    The REST endpoint wins when both are set. With neither configured a
    ``RestKVStore`` is still returned so that each call raises
    ``StoreUnavailable`` at the point of use.
    """
    config = config or default_settings
    if config.kv_rest_api_url and config.kv_rest_api_token:
        return RestKVStore(config.kv_rest_api_url, config.kv_rest_api_token, timeout=config.http_timeout_seconds)
    if config.redis_url:
        return RedisKVStore(config.redis_url, timeout=config.http_timeout_seconds)
    return RestKVStore(None, None, timeout=config.http_timeout_seconds)
