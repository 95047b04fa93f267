"""Microphone recorder feeding PCM16 frames to the recognizer."""

from __future__ import annotations

import threading
import time
from queue import Empty, Full, Queue
from typing import Any

from loguru import logger

from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore


def has_input_device() -> bool:
    """True when sounddevice is usable and a default input device exists."""
    if sd is None or np is None:
        return False
    try:
        sd.query_devices(kind="input")
    except Exception as exc:
        logger.debug("No input device: {}", exc)
        return False
    return True


class SoundDeviceRecorder:
    """Pushes microphone blocks into a bounded queue for the recognition pump.

    Blocks that do not fit are counted rather than queued; once
    ``max_dropped_chunks`` is reached the recorder reports ``overrun`` and
    the consumer treats the capture as failed. ``stop`` always leaves a
    ``None`` sentinel in the queue, evicting the oldest frame if it must.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        max_dropped_chunks: int = 20,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.max_dropped_chunks = max_dropped_chunks
        self.dropped_chunks = 0
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._frames: Queue[AudioFrame | None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def overrun(self) -> bool:
        return self.dropped_chunks >= self.max_dropped_chunks

    def start(self, frames: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._frames = frames
            self.dropped_chunks = 0
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=int(self.sample_rate * self.chunk_ms / 1000),
                callback=self._on_block,
            )
            self._stream.start()
            self._running = True
            logger.debug("Microphone opened at {} Hz", self.sample_rate)

    def stop(self) -> None:
        """Close the stream and leave the end-of-audio sentinel for the consumer."""
        with self._lock:
            stream, self._stream = self._stream, None
            self._running = False
            if stream is not None:
                stream.stop()
                stream.close()
                if self.dropped_chunks:
                    logger.warning("Dropped {} audio chunks", self.dropped_chunks)
            self._put_sentinel()

    def _on_block(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Input stream status: {}", status)
        if not self._running or self._frames is None or np is None:
            return
        frame = AudioFrame(
            pcm16_bytes=np.asarray(indata, dtype=np.int16).tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._frames.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _put_sentinel(self) -> None:
        if self._frames is None:
            return
        while True:
            try:
                self._frames.put_nowait(None)
                return
            except Full:
                try:
                    self._frames.get_nowait()
                except Empty:
                    pass
