"""Application entrypoint."""

from __future__ import annotations

import argparse
import sys
import threading
from typing import List, Optional, Sequence

from loguru import logger

from capture_controller import CaptureSessionController
from config import JsonConfigStore
from hotkey import PushToTalkHotkey
from interfaces import ConfigStore
from models import SessionError, SessionPhase, TranscriptSnapshot
from recognizer import DashscopeCaptureCapability
from session_machine import SessionStateMachine
from summarizer import DashscopeSummarizationClient, SummarizationGateway

PHASE_LABELS = {
    SessionPhase.IDLE: "じゅんび OK",
    SessionPhase.LISTENING: "🎙️ きいています...",
    SessionPhase.PROCESSING: "✨ まとめています...",
    SessionPhase.RESULT: "できました",
    SessionPhase.ERROR: "⚠️ エラー",
}


def build_machine(config_store: ConfigStore, **callbacks) -> SessionStateMachine:
    api_key = config_store.get_api_key()
    capture = CaptureSessionController(
        DashscopeCaptureCapability(api_key=api_key, model=config_store.get_asr_model()),
        locale=config_store.get_locale(),
    )
    gateway = SummarizationGateway(
        DashscopeSummarizationClient(api_key=api_key, model=config_store.get_summary_model())
    )
    return SessionStateMachine(capture, gateway, **callbacks)


class App:
    def __init__(self, config_store: Optional[ConfigStore] = None) -> None:
        self.config_store = config_store or JsonConfigStore()
        logger.remove()
        logger.add(sys.stderr, level=self.config_store.get_log_level())

        self.machine = build_machine(
            self.config_store,
            on_state_change=self._on_state_change,
            on_transcript=self._on_transcript,
            on_result=self._on_result,
            on_error=self._on_error,
        )
        self.hotkey = PushToTalkHotkey(hotkey_name=self.config_store.get_hotkey())
        self._quit = threading.Event()

    # ------------------------------------------------------------------
    # Observer callbacks
    # ------------------------------------------------------------------

    def _on_state_change(self, from_phase: SessionPhase, to_phase: SessionPhase) -> None:
        print(PHASE_LABELS[to_phase], flush=True)

    def _on_transcript(self, snapshot: TranscriptSnapshot) -> None:
        print(f"  {snapshot.finalized}{snapshot.pending}", flush=True)

    def _on_result(self, lines: List[str]) -> None:
        for line in lines:
            print(f"  {line}", flush=True)

    def _on_error(self, error: SessionError) -> None:
        print(f"  {error.message}", flush=True)

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_hotkey_press(self) -> None:
        if self.machine.phase in (SessionPhase.RESULT, SessionPhase.ERROR):
            self.machine.reset()
        self.machine.start()

    def _on_hotkey_release(self) -> None:
        self.machine.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(
                on_press=self._on_hotkey_press,
                on_release=self._on_hotkey_release,
            )
        except Exception as exc:
            logger.error("Hotkey disabled: {}", exc)
            return 1
        try:
            while not self._quit.wait(0.5):
                pass
        except KeyboardInterrupt:
            pass
        self.quit()
        return 0

    def quit(self) -> None:
        self.hotkey.stop()
        self.machine.reset()
        self._quit.set()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="kana-memo",
        description="Hold the hotkey, speak, and get a short kana-only summary.",
    )
    parser.add_argument("--set-api-key", metavar="KEY", help="save the DashScope API key and exit")
    parser.add_argument("--set-hotkey", metavar="NAME", help="save the hotkey (pynput format, e.g. Key.alt_l) and exit")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    config_store = JsonConfigStore()
    if args.set_api_key is not None or args.set_hotkey is not None:
        if args.set_api_key is not None:
            config_store.set_api_key(args.set_api_key)
        if args.set_hotkey:
            config_store.set_hotkey(args.set_hotkey)
        print("Saved.")
        return 0
    return App(config_store).run()


if __name__ == "__main__":
    raise SystemExit(main())
