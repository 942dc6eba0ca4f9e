from __future__ import annotations

import json
import os
import threading
from typing import Any

from .logger import get_logger

_logger = get_logger("settings")


class SettingsManager:
    def __init__(self, settings_path: str | None = None):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "decode_workers": 4,
        "default_activity_indicator_style": "large",
        "thumbnail_max_pixels": {
            "small": 200,
            "medium": 800,
            "medium_large": 1600,
            "large": 2400,
        },
    }

    def load(self) -> None:
        try:
            if self.settings_path and os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except Exception as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        if not self.settings_path:
            return
        try:
            os.makedirs(os.path.dirname(self.settings_path) or ".", exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except Exception as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    @property
    def decode_workers(self) -> int:
        try:
            return max(1, int(self.get("decode_workers")))
        except (TypeError, ValueError):
            _logger.warning("invalid decode_workers: %r", self.get("decode_workers"))
            return int(self.DEFAULTS["decode_workers"])

    def thumbnail_max_pixels(self, quality_name: str) -> int:
        """Longest thumbnail edge for a quality name, e.g. ``"medium"``."""
        defaults: dict[str, int] = self.DEFAULTS["thumbnail_max_pixels"]
        table = self.get("thumbnail_max_pixels")
        value = table.get(quality_name) if isinstance(table, dict) else None
        try:
            if value is not None and int(value) > 0:
                return int(value)
        except (TypeError, ValueError):
            pass
        if value is not None:
            _logger.warning("invalid thumbnail_max_pixels[%s]: %r", quality_name, value)
        return defaults.get(quality_name, defaults["medium"])


_settings: SettingsManager | None = None
_settings_lock = threading.Lock()


def get_settings() -> SettingsManager:
    """Process-wide settings, read from ``LINK_PREVIEW_SETTINGS`` on first use."""
    global _settings
    with _settings_lock:
        if _settings is None:
            _settings = SettingsManager(os.getenv("LINK_PREVIEW_SETTINGS") or None)
        return _settings


def reset_settings() -> None:
    """Drop the cached instance so the next ``get_settings`` re-reads the environment."""
    global _settings
    with _settings_lock:
        _settings = None
