"""Streaming speech recognition through DashScope realtime ASR.

Microphone frames from ``SoundDeviceRecorder`` are pumped into a
``dashscope.audio.asr.Recognition`` session. Every sentence event the
service sends back updates a growing result list, and each delivery to the
controller carries the slice of that list starting at the sentence still in
progress, so interim text always arrives as a full replacement.
"""

from __future__ import annotations

import threading
from queue import Empty, Queue
from typing import Any, Callable, List, Optional

from loguru import logger

from config import DEFAULT_ASR_MODEL, DEFAULT_LOCALE
from errors import (
    AUDIO_CAPTURE,
    NETWORK,
    NOT_ALLOWED,
    SERVICE_ERROR,
    CaptureUnavailableError,
)
from interfaces import CaptureErrorCallback, EndCallback, ResultsCallback
from models import AudioFrame, Fragment, ResultBatch
from recorder import SoundDeviceRecorder, has_input_device

try:
    import dashscope
    from dashscope.audio.asr import Recognition, RecognitionCallback
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    Recognition = None  # type: ignore
    RecognitionCallback = object  # type: ignore

RecorderFactory = Callable[..., SoundDeviceRecorder]


def _is_sentence_end(sentence: dict) -> bool:
    if "sentence_end" in sentence:
        return bool(sentence["sentence_end"])
    return sentence.get("end_time") is not None


def _to_capture_error(message: str) -> str:
    """Map an SDK/network failure message to a capture error code."""
    low = message.lower()
    if "401" in low or "403" in low or "auth" in low or "api key" in low or "permission" in low:
        return NOT_ALLOWED
    if "timeout" in low or "network" in low or "connection" in low:
        return NETWORK
    return SERVICE_ERROR


class _RecognitionBridge(RecognitionCallback):
    def __init__(self, handle: "DashscopeCaptureHandle") -> None:
        super().__init__()
        self._handle = handle

    def on_open(self) -> None:
        logger.debug("Recognition stream opened")

    def on_event(self, result: Any) -> None:
        self._handle._handle_sentence(result.get_sentence())

    def on_error(self, result: Any) -> None:
        message = str(getattr(result, "message", "") or result)
        self._handle._handle_failure(_to_capture_error(message), message)

    def on_complete(self) -> None:
        self._handle._handle_closed()

    def on_close(self) -> None:
        self._handle._handle_closed()


class DashscopeCaptureHandle:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_ASR_MODEL,
        language: str = "ja",
        interim_results: bool = True,
        continuous: bool = True,
        sample_rate: int = 16000,
        queue_maxsize: int = 50,
        recorder_factory: RecorderFactory = SoundDeviceRecorder,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._interim_results = interim_results
        self._continuous = continuous
        self._sample_rate = sample_rate
        self._recorder_factory = recorder_factory

        self._on_results: Optional[ResultsCallback] = None
        self._on_end: Optional[EndCallback] = None
        self._on_error: Optional[CaptureErrorCallback] = None

        self._lock = threading.Lock()
        self._audio_queue: Queue[AudioFrame | None] = Queue(maxsize=queue_maxsize)
        self._results: List[Fragment] = []
        self._open_index = 0
        self._finished = False
        self._stop_requested = False
        self._recognition: Any = None
        self._recorder: Optional[SoundDeviceRecorder] = None
        self._thread: Optional[threading.Thread] = None

    def on_results(self, callback: ResultsCallback) -> None:
        self._on_results = callback

    def on_end(self, callback: EndCallback) -> None:
        self._on_end = callback

    def on_error(self, callback: CaptureErrorCallback) -> None:
        self._on_error = callback

    def start(self) -> None:
        if Recognition is None:
            raise CaptureUnavailableError("dashscope is not installed")
        if self._api_key:
            dashscope.api_key = self._api_key

        self._recognition = Recognition(
            model=self._model,
            callback=_RecognitionBridge(self),
            format="pcm",
            sample_rate=self._sample_rate,
            language_hints=[self._language],
        )
        self._recognition.start()

        self._recorder = self._recorder_factory(sample_rate=self._sample_rate)
        try:
            self._recorder.start(self._audio_queue)
        except Exception:
            # the failed start is reported by raising, not as a stream end
            with self._lock:
                self._finished = True
            self._safe_stop_recognition()
            raise

        self._thread = threading.Thread(target=self._pump, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        with self._lock:
            recorder = self._recorder
            if recorder is None or self._stop_requested:
                return
            self._stop_requested = True
        recorder.stop()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _pump(self) -> None:
        """Forward audio frames until the sentinel, then close the recognition."""
        while True:
            if not self._finished and self._recorder is not None and self._recorder.overrun:
                self._handle_failure(
                    AUDIO_CAPTURE, f"{self._recorder.dropped_chunks} audio chunks dropped"
                )
            try:
                frame = self._audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:
                break
            if self._finished:
                continue
            try:
                self._recognition.send_audio_frame(frame.pcm16_bytes)
            except Exception as exc:
                self._handle_failure(_to_capture_error(str(exc)), str(exc))

        self._safe_stop_recognition()
        self._handle_closed()

    def _handle_sentence(self, sentence: Any) -> None:
        if not isinstance(sentence, dict):
            return
        text = str(sentence.get("text", ""))
        is_final = _is_sentence_end(sentence)

        with self._lock:
            if self._finished:
                return
            index = self._open_index
            fragment = Fragment(text=text, is_final=is_final)
            if index < len(self._results):
                self._results[index] = fragment
            else:
                self._results.append(fragment)
            if is_final:
                self._open_index += 1
            batch = ResultBatch(fragments=list(self._results[index:]), start_index=index)

        if is_final or self._interim_results:
            if self._on_results:
                self._on_results(batch)
        if is_final and not self._continuous:
            self.stop()

    def _handle_failure(self, code: str, message: str) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
        logger.warning("Recognition failed ({}): {}", code, message)
        if self._on_error:
            self._on_error(code)
        self.stop()

    def _handle_closed(self) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
        if self._on_end:
            self._on_end()
        self.stop()

    def _safe_stop_recognition(self) -> None:
        if self._recognition is None:
            return
        try:
            self._recognition.stop()
        except Exception as exc:
            logger.debug("Recognition stop: {}", exc)


class DashscopeCaptureCapability:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_ASR_MODEL,
        sample_rate: int = 16000,
        recorder_factory: RecorderFactory = SoundDeviceRecorder,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._sample_rate = sample_rate
        self._recorder_factory = recorder_factory

    def supported(self) -> bool:
        return Recognition is not None and has_input_device()

    def create_session(
        self,
        locale: str = DEFAULT_LOCALE,
        interim_results: bool = True,
        continuous: bool = True,
    ) -> DashscopeCaptureHandle:
        return DashscopeCaptureHandle(
            api_key=self._api_key,
            model=self._model,
            language=locale.split("-")[0].lower(),
            interim_results=interim_results,
            continuous=continuous,
            sample_rate=self._sample_rate,
            recorder_factory=self._recorder_factory,
        )
