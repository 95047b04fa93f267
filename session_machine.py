"""State-machine based session orchestration.

All phase decisions live in the transition table built in
``SessionStateMachine.__init__``. Commands from the observer, callbacks from
the capture stream and the summarization result all arrive as
``SessionEvent`` values through ``dispatch``, which runs one handler at a
time under a re-entrant lock.

Each session gets a new generation number. Capture and summarization events
carry the generation they belong to, so anything that arrives for a session
that has since been reset or replaced is discarded.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from capture_controller import CaptureSessionController
from errors import (
    ERROR_MESSAGES,
    CaptureUnavailableError,
    capture_error_message,
    is_benign_capture_error,
)
from models import (
    ErrorKind,
    EventKind,
    SessionError,
    SessionEvent,
    SessionPhase,
    SummarizationOutcome,
    SummaryFailure,
    SummarySuccess,
    TranscriptSnapshot,
)
from summarizer import SummarizationGateway

StateCallback = Callable[[SessionPhase, SessionPhase], None]
TranscriptCallback = Callable[[TranscriptSnapshot], None]
ResultCallback = Callable[[List[str]], None]
ErrorCallback = Callable[[SessionError], None]
Runner = Callable[[Callable[[], None]], None]
Handler = Callable[[SessionEvent], None]

_GENERATION_STAMPED = frozenset(
    {
        EventKind.TRANSCRIPT_UPDATED,
        EventKind.STREAM_ENDED,
        EventKind.CAPTURE_ERROR,
        EventKind.SUMMARIZE_RESOLVED,
    }
)


def run_in_thread(task: Callable[[], None]) -> None:
    threading.Thread(target=task, daemon=True).start()


class SessionStateMachine:
    def __init__(
        self,
        capture: CaptureSessionController,
        gateway: SummarizationGateway,
        runner: Runner = run_in_thread,
        on_state_change: Optional[StateCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._capture = capture
        self._gateway = gateway
        self._runner = runner
        self._on_state_change = on_state_change
        self._on_transcript = on_transcript
        self._on_result = on_result
        self._on_error = on_error

        self._lock = threading.RLock()
        self._phase = SessionPhase.IDLE
        self._generation = 0
        self._source_text = ""
        self._result_lines: List[str] = []
        self._error: Optional[SessionError] = None

        idle, listening, processing = SessionPhase.IDLE, SessionPhase.LISTENING, SessionPhase.PROCESSING
        self._handlers: Dict[Tuple[SessionPhase, EventKind], Handler] = {
            (idle, EventKind.START_REQUESTED): self._handle_start,
            (listening, EventKind.STOP_REQUESTED): self._handle_stop,
            (listening, EventKind.TRANSCRIPT_UPDATED): self._handle_transcript_updated,
            (listening, EventKind.STREAM_ENDED): self._handle_stream_ended,
            (listening, EventKind.CAPTURE_ERROR): self._handle_capture_error,
            (processing, EventKind.SUMMARIZE_RESOLVED): self._handle_summarize_resolved,
        }
        for phase in (listening, processing, SessionPhase.RESULT, SessionPhase.ERROR):
            self._handlers[(phase, EventKind.RESET_REQUESTED)] = self._handle_reset

        capture.bind(self.dispatch)

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def transcript(self) -> TranscriptSnapshot:
        return self._capture.snapshot()

    @property
    def source_text(self) -> str:
        """Text that was sent for summarization in the current session."""
        return self._source_text

    @property
    def result_lines(self) -> List[str]:
        if self._phase != SessionPhase.RESULT:
            return []
        return list(self._result_lines)

    @property
    def error(self) -> Optional[SessionError]:
        if self._phase != SessionPhase.ERROR:
            return None
        return self._error

    def start(self) -> None:
        self.dispatch(SessionEvent(kind=EventKind.START_REQUESTED))

    def stop(self) -> None:
        self.dispatch(SessionEvent(kind=EventKind.STOP_REQUESTED))

    def reset(self) -> None:
        self.dispatch(SessionEvent(kind=EventKind.RESET_REQUESTED))

    def dispatch(self, event: SessionEvent) -> None:
        with self._lock:
            if event.kind in _GENERATION_STAMPED and event.generation != self._generation:
                logger.debug(
                    "Discarding {} from session #{} (current #{})",
                    event.kind.value,
                    event.generation,
                    self._generation,
                )
                return
            handler = self._handlers.get((self._phase, event.kind))
            if handler is None:
                logger.debug("Ignoring {} while {}", event.kind.value, self._phase.value)
                return
            handler(event)

    def _handle_start(self, event: SessionEvent) -> None:
        self._generation += 1
        self._source_text = ""
        self._result_lines = []
        self._error = None
        generation = self._generation

        if not self._capture.supported():
            self._fail(
                ErrorKind.UNSUPPORTED_ENVIRONMENT,
                ERROR_MESSAGES[ErrorKind.UNSUPPORTED_ENVIRONMENT],
            )
            return

        self._transition(SessionPhase.LISTENING)
        try:
            self._capture.start(generation)
        except CaptureUnavailableError as exc:
            logger.error("Capture unavailable: {}", exc)
            self._fail_start(
                generation,
                ErrorKind.UNSUPPORTED_ENVIRONMENT,
                ERROR_MESSAGES[ErrorKind.UNSUPPORTED_ENVIRONMENT],
            )
        except Exception as exc:
            logger.error("Capture failed to start: {}", exc)
            self._fail_start(
                generation,
                ErrorKind.CAPTURE_FAILED,
                ERROR_MESSAGES[ErrorKind.CAPTURE_FAILED],
            )

    def _handle_stop(self, event: SessionEvent) -> None:
        self._capture.stop()

    def _handle_transcript_updated(self, event: SessionEvent) -> None:
        if self._on_transcript:
            self._on_transcript(self._capture.snapshot())

    def _handle_stream_ended(self, event: SessionEvent) -> None:
        text = event.text.strip()
        if not text:
            logger.info("Session #{} ended without speech", self._generation)
            self._transition(SessionPhase.IDLE)
            return

        self._source_text = text
        self._transition(SessionPhase.PROCESSING)
        generation = self._generation
        self._runner(lambda: self._summarize(generation, text))

    def _handle_capture_error(self, event: SessionEvent) -> None:
        if is_benign_capture_error(event.code):
            return
        self._fail(ErrorKind.CAPTURE_FAILED, capture_error_message(event.code))

    def _handle_summarize_resolved(self, event: SessionEvent) -> None:
        outcome = event.outcome
        if isinstance(outcome, SummarySuccess):
            self._result_lines = list(outcome.lines)
            self._transition(SessionPhase.RESULT)
            if self._on_result:
                self._on_result(list(self._result_lines))
            return
        if isinstance(outcome, SummaryFailure):
            self._fail(outcome.kind, outcome.message)
            return
        self._fail(
            ErrorKind.SUMMARIZATION_FAILED,
            ERROR_MESSAGES[ErrorKind.SUMMARIZATION_FAILED],
        )

    def _handle_reset(self, event: SessionEvent) -> None:
        self._generation += 1
        self._capture.reset()
        self._source_text = ""
        self._result_lines = []
        self._error = None
        self._transition(SessionPhase.IDLE)

    def _summarize(self, generation: int, text: str) -> None:
        try:
            outcome: SummarizationOutcome = self._gateway.summarize(text)
        except Exception as exc:
            logger.error("Summarization gateway raised: {}", exc)
            outcome = SummaryFailure(
                ErrorKind.SUMMARIZATION_FAILED,
                ERROR_MESSAGES[ErrorKind.SUMMARIZATION_FAILED],
            )
        self.dispatch(
            SessionEvent(
                kind=EventKind.SUMMARIZE_RESOLVED,
                generation=generation,
                outcome=outcome,
            )
        )

    def _fail_start(self, generation: int, kind: ErrorKind, message: str) -> None:
        # capture.start may already have delivered events for this session
        if self._generation != generation or self._phase != SessionPhase.LISTENING:
            return
        self._fail(kind, message)

    def _fail(self, kind: ErrorKind, message: str) -> None:
        if self._capture.active:
            self._capture.cancel()
        self._error = SessionError(kind=kind, message=message)
        self._transition(SessionPhase.ERROR)
        if self._on_error:
            self._on_error(self._error)

    def _transition(self, to_phase: SessionPhase) -> None:
        from_phase = self._phase
        if from_phase == to_phase:
            return
        self._phase = to_phase
        logger.info("Session #{}: {} -> {}", self._generation, from_phase.value, to_phase.value)
        if self._on_state_change:
            self._on_state_change(from_phase, to_phase)
