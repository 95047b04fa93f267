"""Shared error codes, exceptions and user-facing messages."""

from __future__ import annotations

from models import ErrorKind

# Capture error codes, named after the browser speech API conditions.
NO_SPEECH = "no-speech"
NOT_ALLOWED = "not-allowed"
SERVICE_NOT_ALLOWED = "service-not-allowed"
AUDIO_CAPTURE = "audio-capture"
NETWORK = "network"
SERVICE_ERROR = "service-error"

BENIGN_CAPTURE_ERRORS = frozenset({NO_SPEECH})
PERMISSION_CAPTURE_ERRORS = frozenset({NOT_ALLOWED, SERVICE_NOT_ALLOWED})

EMPTY_SUMMARY_TEXT = "うまく まとめられませんでした。"

ERROR_MESSAGES = {
    ErrorKind.UNSUPPORTED_ENVIRONMENT: (
        "お使いの環境は音声認識に対応していません。マイクと音声認識サービスを確認してください。"
    ),
    ErrorKind.CAPTURE_FAILED: "音声認識中にエラーがおきました。",
    ErrorKind.SUMMARIZATION_FAILED: "AIのまとめに しっぱいしました。もういちど おねがいします。",
}

PERMISSION_DENIED_MESSAGE = "マイクの使用が許可されていません。設定を確認してください。"
API_KEY_MISSING_MESSAGE = "API_KEYが設定されていません。DASHSCOPE_API_KEY を確認してください。"


class CaptureUnavailableError(RuntimeError):
    """No transcription capability exists in this environment."""


class CaptureStartError(RuntimeError):
    """The capture stream could not be started."""


class SummarizationServiceError(RuntimeError):
    """The summarization service failed or returned an unusable response."""


class MissingApiKeyError(SummarizationServiceError):
    """No API key is configured for the summarization service."""


def is_benign_capture_error(code: str) -> bool:
    return code in BENIGN_CAPTURE_ERRORS


def capture_error_message(code: str) -> str:
    if code in PERMISSION_CAPTURE_ERRORS:
        return PERMISSION_DENIED_MESSAGE
    if not code:
        return ERROR_MESSAGES[ErrorKind.CAPTURE_FAILED]
    return f"マイクエラー: {code}"
