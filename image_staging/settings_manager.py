from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

from .logger import get_logger

_logger = get_logger("settings")

MB = 1024 * 1024


class SettingsManager:
    def __init__(self, settings_path: str):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "max_width": 2048,
        "max_height": 2048,
        "resize_quality": 0.85,
        "edit_quality": 0.95,
        "max_file_size": 30 * MB,
        "min_crop_size": 10,
        "store_db_name": "staging_objects.db",
    }

    def load(self) -> None:
        try:
            if os.path.exists(self.settings_path):
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
    def store_db_path(self) -> str:
        name = str(self.get("store_db_name"))
        return os.path.join(os.path.dirname(self.settings_path) or ".", name)

    def staging_config(self) -> StagingConfig:
        return StagingConfig.from_settings(self)


@dataclass(frozen=True, slots=True)
class StagingConfig:
    """Tunables for staging, editing and validation."""

    max_width: int = 2048
    max_height: int = 2048
    resize_quality: float = 0.85
    edit_quality: float = 0.95
    max_file_size: int = 30 * MB
    min_crop_size: int = 10

    @classmethod
    def from_settings(cls, settings: SettingsManager) -> StagingConfig:
        def _num(key: str, cast):
            value = settings.get(key)
            try:
                return cast(value)
            except (TypeError, ValueError):
                _logger.warning("invalid setting %s=%r; using default", key, value)
                return cast(SettingsManager.DEFAULTS[key])

        return cls(
            max_width=_num("max_width", int),
            max_height=_num("max_height", int),
            resize_quality=_num("resize_quality", float),
            edit_quality=_num("edit_quality", float),
            max_file_size=_num("max_file_size", int),
            min_crop_size=_num("min_crop_size", int),
        )
