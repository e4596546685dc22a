"""
Ledger Image Analysis - shared contract

DESIGN DECISION: The vision model is an external collaborator. We only
own the boundary:
1. What we send (one image, one fixed extraction prompt)
2. How we read the answer (JSON, possibly wrapped in a ```json fence)
3. How failures surface (transport vs. parse errors)

Everything returned here is PROPOSED data. Nothing is persisted by this
layer; the ingestion flow validates each line first.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import ValidationError

from kakeibo_lens.models.ledger import AnalysisResult


class AnalysisError(Exception):
    """Base exception for analysis errors."""
    pass


class AnalysisTransportError(AnalysisError):
    """The analysis service could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AnalysisParseError(AnalysisError):
    """The service answered, but the answer is not a usable result."""
    pass


class EmptyAnalysisError(AnalysisError):
    """The image was analyzed and no line items were found."""
    pass


ANALYSIS_PROMPT = """
あなたは手書き家計簿の画像を解析するAIアシスタントです。
画像から以下の情報を抽出し、JSON形式で返してください。

抽出する情報:
- 日付（YYYY-MM-DD形式）
- 項目名（摘要）
- 金額（数値のみ、カンマなし）
- カテゴリ（食費、日用品、交通費、娯楽、医療費、教育費、光熱費、通信費、その他のいずれか）

JSON形式の例:
{
  "entries": [
    {
      "date": "2026-01-04",
      "itemName": "スーパーで買い物",
      "amount": 3500,
      "suggestedCategory": "食費"
    },
    {
      "date": "2026-01-04",
      "itemName": "電車代",
      "amount": 500,
      "suggestedCategory": "交通費"
    }
  ],
  "confidence": 0.85
}

注意事項:
- 日付が不明な場合は、今日の日付を使用してください
- 金額が不明確な場合は、最も可能性の高い数値を推測してください
- カテゴリが不明な場合は「その他」を使用してください
- 複数の項目がある場合は、すべて抽出してください
- 信頼度（confidence）は0から1の間の数値で、解析の確実性を表します

画像を解析して、JSON形式で結果を返してください。
"""

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def extract_json_text(text: str) -> str:
    """Return the body of the first fenced block, or the text itself."""
    match = _FENCE_PATTERN.search(text)
    if match:
        return match.group(1)
    return text.strip()


def parse_analysis_payload(data: Any) -> AnalysisResult:
    """
    Validate an already-decoded response body.

    Raises:
        AnalysisParseError: If the shape doesn't match the result schema
    """
    if not isinstance(data, dict):
        raise AnalysisParseError(
            f"Expected a JSON object, got {type(data).__name__}"
        )
    if "entries" not in data:
        raise AnalysisParseError("Response has no 'entries' field")
    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        raise AnalysisParseError(f"Response does not match schema: {e}")


def parse_analysis_response(text: str) -> AnalysisResult:
    """
    Parse raw model/endpoint text into an AnalysisResult.

    Raises:
        AnalysisParseError: On empty text, invalid JSON or schema mismatch
    """
    if not text or not text.strip():
        raise AnalysisParseError("Empty response")

    try:
        data = json.loads(extract_json_text(text))
    except json.JSONDecodeError as e:
        raise AnalysisParseError(f"Response is not valid JSON: {e}")

    return parse_analysis_payload(data)


class AnalysisServiceInterface(ABC):
    """
    Abstract interface for ledger image analysis.

    Implementations make exactly one logical request per call (transport
    retries aside) and never persist anything.
    """

    @abstractmethod
    async def analyze(self, image_bytes: bytes) -> AnalysisResult:
        """
        Extract candidate line items from a ledger photo.

        Raises:
            AnalysisTransportError: If the service is unreachable or errors
            AnalysisParseError: If the answer can't be parsed
        """
        pass
