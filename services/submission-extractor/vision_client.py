"""HTTP client for the vision description proxy.

Uses httpx with configurable timeouts and tenacity for retry with
exponential backoff on 503 and connection errors.
"""

import base64
import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import settings
from models import AIConfig

logger = logging.getLogger(__name__)

VISION_MAX_TOKENS = 480
VISION_TEMPERATURE = 0.2


class VisionServiceUnavailable(Exception):
    """Vision proxy is temporarily unavailable (retryable — 503, connection error, timeout)."""


class VisionServiceError(Exception):
    """Vision proxy or provider returned a non-retryable error."""


class VisionClient:
    """Async HTTP client for the vision proxy with retry and backoff."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: int | None = None,
        connect_timeout: int | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        retry_backoff: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        base_url = (base_url or settings.VISION_SERVICE_URL).rstrip("/")
        self._retry_attempts = retry_attempts if retry_attempts is not None else settings.VISION_RETRY_ATTEMPTS
        self._retry_delay = retry_delay if retry_delay is not None else settings.VISION_RETRY_DELAY
        self._retry_backoff = retry_backoff if retry_backoff is not None else settings.VISION_RETRY_BACKOFF

        read_timeout = timeout if timeout is not None else settings.VISION_TIMEOUT_SECONDS
        conn_timeout = connect_timeout if connect_timeout is not None else settings.VISION_CONNECT_TIMEOUT

        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(
                connect=float(conn_timeout),
                read=float(read_timeout),
                write=30.0,
                pool=30.0,
            ),
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def describe(
        self,
        image_bytes: bytes,
        mime_type: str,
        config: AIConfig,
        prompt: str,
    ) -> str:
        """Ask the vision model for a short description of an image.

        Raises VisionServiceUnavailable (after retries) or VisionServiceError.
        """
        payload = {
            "platform": config.platform,
            "api_key": config.api_key,
            "model": config.text_model,
            "prompt": prompt,
            "mime_type": mime_type or "image/jpeg",
            "image_base64": base64.b64encode(image_bytes).decode(),
            "max_tokens": VISION_MAX_TOKENS,
            "temperature": VISION_TEMPERATURE,
        }

        return await self._describe_with_retry(payload)

    async def _describe_with_retry(self, payload: dict) -> str:
        """Retry wrapper — configured dynamically based on settings."""

        @retry(
            retry=retry_if_exception_type(VisionServiceUnavailable),
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(
                multiplier=self._retry_delay,
                exp_base=self._retry_backoff,
                max=30,
            ),
            reraise=True,
            before_sleep=lambda state: logger.warning(
                "Vision proxy unavailable, retrying in %.1fs (attempt %d/%d)",
                state.next_action.sleep,  # type: ignore[union-attr]
                state.attempt_number,
                self._retry_attempts,
            ),
        )
        async def _do_describe() -> str:
            return await self._send_describe(payload)

        return await _do_describe()

    async def _send_describe(self, payload: dict) -> str:
        """Send a single description request to the vision proxy."""
        try:
            resp = await self._client.post(settings.VISION_ANALYZE_PATH, json=payload)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            logger.warning("Vision proxy connection failed: %s", e)
            raise VisionServiceUnavailable(f"Cannot connect to vision proxy: {e}") from e
        except httpx.TimeoutException as e:
            logger.warning("Vision proxy timeout: %s", e)
            raise VisionServiceUnavailable(f"Vision proxy timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error("Vision proxy HTTP error: %s", e)
            raise VisionServiceError(f"Vision proxy HTTP error: {e}") from e

        data = _json_body(resp)

        if resp.status_code == 503:
            detail = data.get("error") or "Service unavailable"
            logger.warning("Vision proxy returned 503: %s", detail)
            raise VisionServiceUnavailable(detail)

        if resp.status_code != 200:
            detail = data.get("error") or f"HTTP {resp.status_code}"
            logger.error("Vision proxy error %d: %s", resp.status_code, detail)
            raise VisionServiceError(detail)

        if data.get("error"):
            raise VisionServiceError(data["error"])

        summary = (data.get("summary") or "").strip()
        if not summary:
            raise VisionServiceError("Vision proxy returned an empty summary")
        return summary


def _json_body(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
