import httpx
from flowcore.config import settings
from flowcore.core.logging import get_logger

logger = get_logger("integrations.http")

async def _log_response(response: httpx.Response):
    request = response.request
    logger.debug(f"HTTP {request.method} {request.url} -> {response.status_code}")

class HttpClient:
    """Process-wide AsyncClient shared by the HTTP request nodes."""

    _client: httpx.AsyncClient | None = None

    @classmethod
    async def get_client(cls) -> httpx.AsyncClient:
        if cls._client is None or cls._client.is_closed:
            logger.info("Opening shared HTTP client")
            cls._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.HTTP_TIMEOUT),
                limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
                headers={"User-Agent": f"{settings.PROJECT_NAME}/{settings.APP_VERSION}"},
                follow_redirects=True,
                event_hooks={"response": [_log_response]},
            )
        return cls._client

    @classmethod
    async def close_client(cls):
        # Safe to call when no client was ever opened
        if cls._client is not None and not cls._client.is_closed:
            logger.info("Closing shared HTTP client")
            await cls._client.aclose()
        cls._client = None

async def get_http_client() -> httpx.AsyncClient:
    return await HttpClient.get_client()
