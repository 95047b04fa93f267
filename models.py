"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


class SessionPhase(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    PROCESSING = "PROCESSING"
    RESULT = "RESULT"
    ERROR = "ERROR"


class ErrorKind(str, Enum):
    UNSUPPORTED_ENVIRONMENT = "UNSUPPORTED_ENVIRONMENT"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    SUMMARIZATION_FAILED = "SUMMARIZATION_FAILED"


class EventKind(str, Enum):
    START_REQUESTED = "start_requested"
    STOP_REQUESTED = "stop_requested"
    RESET_REQUESTED = "reset_requested"
    TRANSCRIPT_UPDATED = "transcript_updated"
    STREAM_ENDED = "stream_ended"
    CAPTURE_ERROR = "capture_error"
    SUMMARIZE_RESOLVED = "summarize_resolved"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class Fragment:
    text: str
    is_final: bool = False


@dataclass
class ResultBatch:
    """One delivery from the capture stream.

    ``start_index`` points into the engine's growing result list; only
    results from that index on are new or changed in this delivery.
    """

    fragments: List[Fragment] = field(default_factory=list)
    start_index: int = 0


@dataclass(frozen=True)
class TranscriptSnapshot:
    finalized: str = ""
    pending: str = ""

    @property
    def combined(self) -> str:
        return self.finalized + self.pending


@dataclass(frozen=True)
class SummarySuccess:
    lines: List[str]


@dataclass(frozen=True)
class SummaryFailure:
    kind: ErrorKind
    message: str


SummarizationOutcome = Union[SummarySuccess, SummaryFailure]


@dataclass(frozen=True)
class SessionError:
    kind: ErrorKind
    message: str


@dataclass
class SessionEvent:
    kind: EventKind
    generation: int = 0
    text: str = ""
    code: str = ""
    message: str = ""
    outcome: Optional[SummarizationOutcome] = None
