"""Push-to-talk global hotkey based on pynput."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from loguru import logger

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore


def key_matches(key: object, hotkey_name: str) -> bool:
    """Match ``Key.alt_l`` style names as well as plain characters such as ``k``."""
    if str(key) == hotkey_name:
        return True
    char = getattr(key, "char", None)
    return char is not None and len(hotkey_name) == 1 and char.lower() == hotkey_name.lower()


class PushToTalkHotkey:
    def __init__(self, hotkey_name: str = "Key.alt_l") -> None:
        self._hotkey_name = hotkey_name
        self._listener: Optional[object] = None
        self._pressed = False
        self._lock = threading.Lock()

    @property
    def hotkey_name(self) -> str:
        return self._hotkey_name

    def start(self, on_press: Callable[[], None], on_release: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")

        def _on_press(key: object) -> None:
            if not key_matches(key, self._hotkey_name):
                return
            with self._lock:
                if self._pressed:
                    return
                self._pressed = True
            on_press()

        def _on_release(key: object) -> None:
            if not key_matches(key, self._hotkey_name):
                return
            with self._lock:
                if not self._pressed:
                    return
                self._pressed = False
            on_release()

        self._listener = keyboard.Listener(on_press=_on_press, on_release=_on_release)
        self._listener.start()
        logger.info("Hold {} to talk", self._hotkey_name)

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
