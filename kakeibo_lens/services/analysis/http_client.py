"""
HTTP Analysis Client

Calls the ledger analysis endpoint:

    POST {base_url}/api/analyze-kakeibo
    {"image": "<base64 JPEG>"}

The endpoint answers with ``{"entries": [...], "confidence": n}`` or an
error status with ``{"error": ..., "details": ...}``.

Connection-level failures are retried with backoff. Error statuses and
malformed bodies are not: the server already got the image, and asking
again rarely changes its answer.
"""

import base64
from typing import Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kakeibo_lens.config import get_settings
from kakeibo_lens.models.ledger import AnalysisResult
from kakeibo_lens.services.analysis.base import (
    AnalysisServiceInterface,
    AnalysisTransportError,
    parse_analysis_response,
)


logger = structlog.get_logger(__name__)

ANALYZE_PATH = "/api/analyze-kakeibo"


class HttpAnalysisService(AnalysisServiceInterface):
    """
    Analysis service backed by the app's HTTP endpoint.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings().analysis
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._timeout = timeout_seconds or settings.timeout_seconds
        self._max_retries = max_retries or settings.max_retries
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}{ANALYZE_PATH}"

    async def _post(self, payload: dict) -> httpx.Response:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                async with httpx.AsyncClient(
                    timeout=self._timeout,
                    transport=self._transport,
                ) as client:
                    return await client.post(self.endpoint, json=payload)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.reason_phrase or f"HTTP {response.status_code}"
        if isinstance(body, dict) and body.get("error"):
            details = body.get("details")
            return f"{body['error']}: {details}" if details else str(body["error"])
        return response.reason_phrase or f"HTTP {response.status_code}"

    async def analyze(self, image_bytes: bytes) -> AnalysisResult:
        payload = {"image": base64.b64encode(image_bytes).decode("ascii")}

        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            logger.warning("analysis_request_failed", endpoint=self.endpoint, error=str(e))
            raise AnalysisTransportError(f"Analysis request failed: {e}")

        if response.is_error:
            message = self._error_message(response)
            logger.warning(
                "analysis_error_status",
                endpoint=self.endpoint,
                status_code=response.status_code,
            )
            raise AnalysisTransportError(
                f"Analysis failed ({response.status_code}): {message}",
                status_code=response.status_code,
            )

        return parse_analysis_response(response.text)
