"""Protocol interfaces used by the session state machine and its collaborators."""

from __future__ import annotations

from typing import Callable, Protocol

from models import ResultBatch

ResultsCallback = Callable[[ResultBatch], None]
EndCallback = Callable[[], None]
CaptureErrorCallback = Callable[[str], None]


class CaptureHandle(Protocol):
    def on_results(self, callback: ResultsCallback) -> None: ...

    def on_end(self, callback: EndCallback) -> None: ...

    def on_error(self, callback: CaptureErrorCallback) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class CaptureCapability(Protocol):
    def supported(self) -> bool: ...

    def create_session(
        self, locale: str, interim_results: bool, continuous: bool
    ) -> CaptureHandle: ...


class SummarizationClient(Protocol):
    def generate(self, input: str, instruction: str) -> str: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_locale(self) -> str: ...

    def get_asr_model(self) -> str: ...

    def get_summary_model(self) -> str: ...

    def get_log_level(self) -> str: ...
