"""Summarization gateway backed by a DashScope text-generation model.

The gateway sends the finished transcript together with a fixed instruction
asking for a short, kana-only bullet list, and turns whatever comes back into
a typed outcome. It never retries and never raises.
"""

from __future__ import annotations

import os
from typing import Any, List

from loguru import logger

from config import DEFAULT_SUMMARY_MODEL
from errors import (
    API_KEY_MISSING_MESSAGE,
    EMPTY_SUMMARY_TEXT,
    ERROR_MESSAGES,
    MissingApiKeyError,
    SummarizationServiceError,
)
from interfaces import SummarizationClient
from models import ErrorKind, SummarizationOutcome, SummaryFailure, SummarySuccess

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

KANA_SUMMARY_INSTRUCTION = """\
あなたは、こどもやお年寄りにもわかりやすいように、お話をまとめるガイドです。
入力された文章を以下のルールでまとめてください：
1. ひらがな、カタカナ、数字（0-9）、一部の記号（・、！？）のみを使用すること。漢字は絶対に使わない。
2. 箇条書き（・ではじまる）で3つ程度にまとめること。
3. 句読点やスペースを適度に入れ、一目で内容がわかるようにすること。
4. 各行は短く、力強く書くこと。
"""


def split_summary_lines(text: str) -> List[str]:
    """Split a response into its non-blank lines, keeping their order and content."""
    return [line for line in text.splitlines() if line.strip()]


class DashscopeSummarizationClient:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_SUMMARY_MODEL,
        temperature: float = 0.7,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature

    def generate(self, input: str, instruction: str) -> str:
        if dashscope is None:
            raise SummarizationServiceError("dashscope is not installed")

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise MissingApiKeyError("No API key configured")

        try:
            response = dashscope.Generation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": instruction},
                    {"role": "user", "content": input},
                ],
                result_format="message",
                temperature=self._temperature,
            )
        except Exception as exc:
            raise SummarizationServiceError(str(exc)) from exc

        if response is None:
            raise SummarizationServiceError("empty response")
        status = _field(response, "status_code")
        if status is not None and int(status) != 200:
            code = _field(response, "code") or ""
            message = _field(response, "message") or ""
            raise SummarizationServiceError(f"{status} {code}: {message}".strip())
        return self._extract_text(response)

    def _extract_text(self, response: Any) -> str:
        """Pull the generated text from a dashscope response dict."""
        output = _field(response, "output") or {}
        choices = _field(output, "choices") or []
        if choices:
            message = _field(choices[0], "message") or {}
            content = _field(message, "content")
            if isinstance(content, list):
                return "".join(str(_field(part, "text") or "") for part in content)
            return str(content or "")
        return str(_field(output, "text") or "")


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class SummarizationGateway:
    def __init__(
        self,
        client: SummarizationClient,
        instruction: str = KANA_SUMMARY_INSTRUCTION,
    ) -> None:
        self._client = client
        self._instruction = instruction

    def summarize(self, text: str) -> SummarizationOutcome:
        try:
            raw = self._client.generate(text, self._instruction)
        except MissingApiKeyError as exc:
            logger.error("Summarization unavailable: {}", exc)
            return SummaryFailure(ErrorKind.SUMMARIZATION_FAILED, API_KEY_MISSING_MESSAGE)
        except Exception as exc:
            logger.error("Summarization failed: {}", exc)
            return SummaryFailure(
                ErrorKind.SUMMARIZATION_FAILED,
                ERROR_MESSAGES[ErrorKind.SUMMARIZATION_FAILED],
            )

        lines = split_summary_lines(raw or "")
        if not lines:
            logger.warning("Summarization returned no text")
            lines = [EMPTY_SUMMARY_TEXT]
        return SummarySuccess(lines=lines)
