"""Storage repository for run settings."""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from stockshorts.core.config import Settings
from stockshorts.models.schemas import RunSettings, SettingsUpdate


class SettingsRepository:
    """Persists the scheduling settings as a small JSON document."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the repository.

        Args:
            settings: Application settings (seed values and file location)
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.file_path = Path(settings.settings_file)
        self._current = RunSettings(
            auto_enabled=settings.auto_enabled,
            auto_schedule_cron=settings.auto_schedule_cron,
        )

    @property
    def current(self) -> RunSettings:
        return self._current

    def load(self) -> RunSettings:
        """
        Load persisted settings over the environment seed values.

        A missing or unreadable file leaves the seed values in place.
        """
        if not self.file_path.exists():
            self.logger.info(f"No saved settings at {self.file_path}, using defaults")
            return self._current

        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            merged = {**self._current.model_dump(), **{k: v for k, v in data.items() if v is not None}}
            self._current = RunSettings(**merged)
        except (OSError, ValueError, ValidationError) as e:
            self.logger.warning(f"Ignoring unreadable settings file {self.file_path}: {e}")
            return self._current

        self.logger.info(f"Settings loaded: {self._current.model_dump()}")
        return self._current

    def save(self, run_settings: RunSettings) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.file_path, "w", encoding="utf-8") as f:
            json.dump(run_settings.model_dump(), f, indent=2)
        self._current = run_settings
        self.logger.info(f"Settings saved to: {self.file_path}")

    def update(self, update: SettingsUpdate) -> RunSettings:
        """Apply a partial update, persist it and return the new settings."""
        data = self._current.model_dump()
        if update.auto_enabled is not None:
            data["auto_enabled"] = update.auto_enabled
        if update.auto_schedule_cron and update.auto_schedule_cron.strip():
            data["auto_schedule_cron"] = update.auto_schedule_cron.strip()
        new_settings = RunSettings(**data)
        self.save(new_settings)
        return new_settings
