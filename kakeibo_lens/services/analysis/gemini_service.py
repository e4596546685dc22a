"""
Gemini Vision Analysis

Sends the ledger photo straight to a Gemini model together with the
fixed extraction prompt, for setups without the HTTP endpoint.

Low temperature keeps the extraction stable between retries of the
same page.
"""

from typing import Optional

import google.generativeai as genai
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
    ANALYSIS_PROMPT,
    AnalysisParseError,
    AnalysisServiceInterface,
    AnalysisTransportError,
    parse_analysis_response,
)


logger = structlog.get_logger(__name__)


class GeminiVisionService(AnalysisServiceInterface):
    """Analysis service that calls Gemini directly."""

    def __init__(
        self,
        model: Optional[genai.GenerativeModel] = None,
        max_retries: Optional[int] = None,
        mime_type: str = "image/jpeg",
    ):
        self._model = model
        self._max_retries = max_retries or get_settings().analysis.max_retries
        self._mime_type = mime_type

    def _get_model(self) -> genai.GenerativeModel:
        """Configure Google Generative AI on first use."""
        if self._model is None:
            settings = get_settings().gemini
            genai.configure(api_key=settings.api_key)
            self._model = genai.GenerativeModel(
                model_name=settings.model_name,
                generation_config={
                    "temperature": settings.temperature,
                    "max_output_tokens": settings.max_tokens,
                },
            )
        return self._model

    async def _generate(self, image_bytes: bytes):
        model = self._get_model()
        content = [
            ANALYSIS_PROMPT,
            {"mime_type": self._mime_type, "data": image_bytes},
        ]
        try:
            return await model.generate_content_async(content)
        except Exception as e:
            raise AnalysisTransportError(f"Gemini request failed: {e}")

    async def analyze(self, image_bytes: bytes) -> AnalysisResult:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(AnalysisTransportError),
            reraise=True,
        ):
            with attempt:
                response = await self._generate(image_bytes)

        try:
            text = response.text
        except ValueError as e:
            # Raised when the candidate was blocked or has no text part
            logger.warning("gemini_response_without_text", error=str(e))
            raise AnalysisParseError(f"Gemini returned no text: {e}")

        return parse_analysis_response(text)
