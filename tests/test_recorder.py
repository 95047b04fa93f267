"""Tests for SoundDeviceRecorder and input device detection."""

from __future__ import annotations

from queue import Queue
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from models import AudioFrame
from recorder import SoundDeviceRecorder, has_input_device


def _block(n_samples: int = 1600) -> np.ndarray:
    """One sounddevice-style input block of silence."""
    return np.zeros((n_samples, 1), dtype=np.int16)


# ---------------------------------------------------------------
# Device detection
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_has_input_device_true_when_default_input_exists(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.return_value = {"name": "Built-in Microphone"}

    assert has_input_device() is True
    mock_sd.query_devices.assert_called_once_with(kind="input")


@patch("recorder.sd")
def test_has_input_device_false_when_query_fails(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.side_effect = RuntimeError("Error querying device -1")

    assert has_input_device() is False


@patch("recorder.sd", None)
def test_has_input_device_false_without_sounddevice() -> None:
    assert has_input_device() is False


# ---------------------------------------------------------------
# Start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_opens_int16_stream_with_chunked_blocks(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder(sample_rate=16000, chunk_ms=50)
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)

    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["samplerate"] == 16000
    assert kwargs["dtype"] == "int16"
    assert kwargs["blocksize"] == 800
    mock_stream.start.assert_called_once()
    assert recorder.running is True

    recorder.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert recorder.running is False
    assert q.get_nowait() is None


@patch("recorder.sd")
def test_second_start_does_not_open_another_stream(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.start(q)

    assert mock_sd.InputStream.call_count == 1
    recorder.stop()


@patch("recorder.sd")
def test_stop_without_running_stream_still_unblocks_consumer(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.stop()
    recorder.stop()

    assert q.get_nowait() is None
    assert q.get_nowait() is None


def test_start_raises_without_sounddevice(monkeypatch: pytest.MonkeyPatch) -> None:
    import recorder as rec_mod

    monkeypatch.setattr(rec_mod, "sd", None)

    recorder = SoundDeviceRecorder()
    with pytest.raises(RuntimeError, match="sounddevice is not installed"):
        recorder.start(Queue())


# ---------------------------------------------------------------
# Audio callback
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_pushes_pcm16_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(sample_rate=16000, channels=1, chunk_ms=100)
    q: Queue[AudioFrame | None] = Queue(maxsize=50)
    recorder.start(q)

    recorder._on_block(_block(1600), frames=1600, time_info=None, status=None)

    frame = q.get_nowait()
    assert isinstance(frame, AudioFrame)
    assert frame.sample_rate == 16000
    assert len(frame.pcm16_bytes) == 1600 * 2
    recorder.stop()


@patch("recorder.sd")
def test_full_queue_counts_dropped_chunks(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    recorder.start(q)

    recorder._on_block(_block(), frames=1600, time_info=None, status=None)
    recorder._on_block(_block(), frames=1600, time_info=None, status=None)

    assert recorder.dropped_chunks == 1
    assert recorder.overrun is False
    recorder.stop()


@patch("recorder.sd")
def test_sustained_drops_report_overrun(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(max_dropped_chunks=3)
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    recorder.start(q)

    for _ in range(4):
        recorder._on_block(_block(), frames=1600, time_info=None, status=None)

    assert recorder.dropped_chunks == 3
    assert recorder.overrun is True
    recorder.stop()


@patch("recorder.sd")
def test_stop_with_full_queue_still_leaves_sentinel(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue(maxsize=2)
    recorder.start(q)
    for _ in range(2):
        recorder._on_block(_block(), frames=1600, time_info=None, status=None)
    assert q.full()

    recorder.stop()

    items = [q.get_nowait() for _ in range(q.qsize())]
    assert items[-1] is None
    assert isinstance(items[0], AudioFrame)


@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.stop()
    q.get_nowait()

    recorder._on_block(_block(), frames=1600, time_info=None, status=None)
    assert q.empty()
