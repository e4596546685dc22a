"""Ledger image analysis services."""

from kakeibo_lens.services.analysis.base import (
    ANALYSIS_PROMPT,
    AnalysisError,
    AnalysisParseError,
    AnalysisServiceInterface,
    AnalysisTransportError,
    EmptyAnalysisError,
    extract_json_text,
    parse_analysis_payload,
    parse_analysis_response,
)
from kakeibo_lens.services.analysis.gemini_service import GeminiVisionService
from kakeibo_lens.services.analysis.http_client import HttpAnalysisService

__all__ = [
    "ANALYSIS_PROMPT",
    "AnalysisError",
    "AnalysisParseError",
    "AnalysisServiceInterface",
    "AnalysisTransportError",
    "EmptyAnalysisError",
    "GeminiVisionService",
    "HttpAnalysisService",
    "extract_json_text",
    "parse_analysis_payload",
    "parse_analysis_response",
]
