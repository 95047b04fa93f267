"""Capture session lifecycle around one streaming transcription handle."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from loguru import logger

from config import DEFAULT_LOCALE
from errors import CaptureStartError, CaptureUnavailableError, is_benign_capture_error
from interfaces import CaptureCapability, CaptureHandle
from models import EventKind, ResultBatch, SessionEvent, TranscriptSnapshot
from transcript import TranscriptAccumulator

EventSink = Callable[[SessionEvent], None]


class CaptureSessionController:
    """Owns the single active capture handle.

    Every callback registered on a handle is bound to the generation it was
    started under; callbacks from an older generation, or arriving after the
    stream already ended, are dropped.
    """

    def __init__(
        self,
        capability: CaptureCapability,
        accumulator: Optional[TranscriptAccumulator] = None,
        locale: str = DEFAULT_LOCALE,
        interim_results: bool = True,
        continuous: bool = True,
        stop_timeout_s: Optional[float] = 3.0,
    ) -> None:
        self._capability = capability
        self._accumulator = accumulator or TranscriptAccumulator()
        self._locale = locale
        self._interim_results = interim_results
        self._continuous = continuous
        self._stop_timeout_s = stop_timeout_s
        self._sink: Optional[EventSink] = None

        self._lock = threading.Lock()
        self._handle: Optional[CaptureHandle] = None
        self._generation = 0
        self._ended = True
        self._starting = False
        self._stop_timer: Optional[threading.Timer] = None

    def bind(self, sink: EventSink) -> None:
        self._sink = sink

    def supported(self) -> bool:
        return self._capability.supported()

    def snapshot(self) -> TranscriptSnapshot:
        with self._lock:
            return self._accumulator.snapshot()

    @property
    def active(self) -> bool:
        return not self._ended

    def start(self, generation: int) -> None:
        if not self._capability.supported():
            raise CaptureUnavailableError("no transcription capability available")

        with self._lock:
            self._cancel_stop_timer()
            self._generation = generation
            self._ended = False
            self._starting = True
            self._accumulator.reset()
            handle = self._capability.create_session(
                self._locale,
                interim_results=self._interim_results,
                continuous=self._continuous,
            )
            handle.on_results(lambda batch: self._handle_results(generation, batch))
            handle.on_end(lambda: self._handle_end(generation))
            handle.on_error(lambda code: self._handle_error(generation, code))
            self._handle = handle

        logger.info("Starting capture session #{} ({})", generation, self._locale)
        try:
            handle.start()
        except Exception as exc:
            with self._lock:
                if self._generation == generation:
                    self._starting = False
                    self._ended = True
                    self._handle = None
            if isinstance(exc, CaptureUnavailableError):
                raise
            raise CaptureStartError(f"start failed: {exc}") from exc
        with self._lock:
            if self._generation == generation:
                self._starting = False

    def stop(self) -> None:
        """Ask the stream to end; the phase changes once the end signal arrives."""
        with self._lock:
            handle = self._handle
            if handle is None or self._ended:
                return
            if self._stop_timeout_s is not None and self._stop_timer is None:
                self._stop_timer = threading.Timer(
                    self._stop_timeout_s, self._handle_stop_timeout, args=(self._generation,)
                )
                self._stop_timer.daemon = True
                self._stop_timer.start()
        self._safe_stop(handle)

    def cancel(self) -> None:
        """Tear down the stream without reporting its end."""
        with self._lock:
            handle = self._handle
            self._handle = None
            self._ended = True
            self._cancel_stop_timer()
            self._accumulator.discard_pending()
        if handle is not None:
            self._safe_stop(handle)

    def reset(self) -> None:
        """Cancel any stream and forget the transcript."""
        self.cancel()
        with self._lock:
            self._accumulator.reset()

    def _handle_results(self, generation: int, batch: ResultBatch) -> None:
        with self._lock:
            if self._is_stale(generation):
                logger.debug("Dropping results from stale capture #{}", generation)
                return
            self._accumulator.apply_fragments(batch.fragments)
        self._emit(SessionEvent(kind=EventKind.TRANSCRIPT_UPDATED, generation=generation))

    def _handle_end(self, generation: int) -> None:
        with self._lock:
            if self._is_stale(generation):
                logger.debug("Ignoring end of stale capture #{}", generation)
                return
            if self._starting:
                logger.debug("Ignoring end of capture #{} before its start returned", generation)
                return
            self._ended = True
            self._handle = None
            self._cancel_stop_timer()
            text = self._accumulator.combined()
            self._accumulator.discard_pending()
        logger.info("Capture session #{} ended", generation)
        self._emit(SessionEvent(kind=EventKind.STREAM_ENDED, generation=generation, text=text))

    def _handle_stop_timeout(self, generation: int) -> None:
        logger.warning("Capture #{} did not end within {}s of stop", generation, self._stop_timeout_s)
        self._handle_end(generation)

    def _handle_error(self, generation: int, code: str) -> None:
        with self._lock:
            if self._is_stale(generation):
                logger.debug("Ignoring error {!r} from stale capture #{}", code, generation)
                return
            if is_benign_capture_error(code):
                logger.debug("Capture #{} reported {!r}, waiting for stream end", generation, code)
                return
            handle = self._handle
            self._handle = None
            self._ended = True
            self._cancel_stop_timer()
        logger.warning("Capture #{} failed: {}", generation, code)
        if handle is not None:
            self._safe_stop(handle)
        self._emit(SessionEvent(kind=EventKind.CAPTURE_ERROR, generation=generation, code=code))

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation or self._ended

    def _cancel_stop_timer(self) -> None:
        if self._stop_timer is not None:
            self._stop_timer.cancel()
            self._stop_timer = None

    def _emit(self, event: SessionEvent) -> None:
        if self._sink:
            self._sink(event)

    def _safe_stop(self, handle: CaptureHandle) -> None:
        try:
            handle.stop()
        except Exception as exc:
            logger.warning("Stopping capture handle failed: {}", exc)
