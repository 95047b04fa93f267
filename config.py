"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path

from loguru import logger

DEFAULT_HOTKEY = "Key.alt_l"
DEFAULT_LOCALE = "ja-JP"
DEFAULT_ASR_MODEL = "paraformer-realtime-v2"
DEFAULT_SUMMARY_MODEL = "qwen-plus"
DEFAULT_LOG_LEVEL = "INFO"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "kana_memo" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_hotkey(self) -> str:
        return str(self._read_all().get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_locale(self) -> str:
        return str(self._read_all().get("locale", DEFAULT_LOCALE))

    def get_asr_model(self) -> str:
        return str(self._read_all().get("asr_model", DEFAULT_ASR_MODEL))

    def get_summary_model(self) -> str:
        return str(self._read_all().get("summary_model", DEFAULT_SUMMARY_MODEL))

    def get_log_level(self) -> str:
        return str(self._read_all().get("log_level", DEFAULT_LOG_LEVEL)).upper()

    def _set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable config {}: {}", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
