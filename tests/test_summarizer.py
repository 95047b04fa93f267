"""Tests for the summarization gateway and the DashScope client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from errors import (
    API_KEY_MISSING_MESSAGE,
    EMPTY_SUMMARY_TEXT,
    ERROR_MESSAGES,
    MissingApiKeyError,
    SummarizationServiceError,
)
from fakes import FakeSummarizationClient
from models import ErrorKind, SummaryFailure, SummarySuccess
from summarizer import (
    KANA_SUMMARY_INSTRUCTION,
    DashscopeSummarizationClient,
    SummarizationGateway,
    split_summary_lines,
)


# ---------------------------------------------------------------
# Line splitting
# ---------------------------------------------------------------

def test_split_drops_blank_lines_and_keeps_order() -> None:
    text = "・てんきが　いいです\n\n・さんぽしました\n   \n・たのしかった\n"

    assert split_summary_lines(text) == [
        "・てんきが　いいです",
        "・さんぽしました",
        "・たのしかった",
    ]


def test_split_keeps_line_content_unmodified() -> None:
    assert split_summary_lines("  ・まえに スペース\r\n") == ["  ・まえに スペース"]


# ---------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------

def test_gateway_success_sends_text_with_kana_instruction() -> None:
    client = FakeSummarizationClient(response="・はれ\n\n・さんぽ")
    gateway = SummarizationGateway(client)

    outcome = gateway.summarize("晴れたので散歩した")

    assert outcome == SummarySuccess(lines=["・はれ", "・さんぽ"])
    assert client.calls == [("晴れたので散歩した", KANA_SUMMARY_INSTRUCTION)]


def test_gateway_empty_response_uses_fallback_line() -> None:
    gateway = SummarizationGateway(FakeSummarizationClient(response="\n \n"))

    assert gateway.summarize("なにか") == SummarySuccess(lines=[EMPTY_SUMMARY_TEXT])


def test_gateway_failure_does_not_raise() -> None:
    client = FakeSummarizationClient(error=SummarizationServiceError("500 InternalError"))
    gateway = SummarizationGateway(client)

    outcome = gateway.summarize("なにか")

    assert outcome == SummaryFailure(
        ErrorKind.SUMMARIZATION_FAILED,
        ERROR_MESSAGES[ErrorKind.SUMMARIZATION_FAILED],
    )
    assert len(client.calls) == 1


def test_gateway_missing_key_names_the_key() -> None:
    gateway = SummarizationGateway(FakeSummarizationClient(error=MissingApiKeyError("no key")))

    outcome = gateway.summarize("なにか")

    assert isinstance(outcome, SummaryFailure)
    assert outcome.message == API_KEY_MISSING_MESSAGE


# ---------------------------------------------------------------
# DashScope client
# ---------------------------------------------------------------

def _ok_response(content: str) -> dict:
    return {
        "status_code": 200,
        "output": {"choices": [{"message": {"role": "assistant", "content": content}}]},
    }


@patch("summarizer.dashscope")
def test_client_calls_generation_with_system_instruction(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _ok_response("・こんにちは")

    client = DashscopeSummarizationClient(api_key="test-key", model="qwen-plus")
    text = client.generate("こんにちは", "ひらがなで")

    assert text == "・こんにちは"
    kwargs = mock_ds.Generation.call.call_args.kwargs
    assert kwargs["api_key"] == "test-key"
    assert kwargs["model"] == "qwen-plus"
    assert kwargs["result_format"] == "message"
    assert kwargs["temperature"] == 0.7
    assert kwargs["messages"] == [
        {"role": "system", "content": "ひらがなで"},
        {"role": "user", "content": "こんにちは"},
    ]


@patch("summarizer.dashscope")
def test_client_reads_legacy_text_output(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = {"status_code": 200, "output": {"text": "・むかし"}}

    client = DashscopeSummarizationClient(api_key="test-key")

    assert client.generate("x", "y") == "・むかし"


@patch("summarizer.dashscope")
def test_client_non_ok_status_raises(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = {
        "status_code": 401,
        "code": "InvalidApiKey",
        "message": "Invalid API-key provided.",
    }

    client = DashscopeSummarizationClient(api_key="bad-key")
    with pytest.raises(SummarizationServiceError, match="InvalidApiKey"):
        client.generate("x", "y")


@patch("summarizer.dashscope")
def test_client_transport_error_is_wrapped(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.side_effect = ConnectionError("connection reset")

    client = DashscopeSummarizationClient(api_key="test-key")
    with pytest.raises(SummarizationServiceError, match="connection reset"):
        client.generate("x", "y")


@patch("summarizer.dashscope", MagicMock())
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_client_without_api_key_raises_missing_key() -> None:
    client = DashscopeSummarizationClient(api_key="")

    with pytest.raises(MissingApiKeyError):
        client.generate("x", "y")


@patch("summarizer.dashscope", None)
def test_client_without_dashscope_raises() -> None:
    client = DashscopeSummarizationClient(api_key="test-key")

    with pytest.raises(SummarizationServiceError, match="not installed"):
        client.generate("x", "y")
