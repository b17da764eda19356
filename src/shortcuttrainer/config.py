"""Configuration settings for the trainer."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DATA_DIR = ".shortcuttrainer"
DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_FEEDBACK_DELAY = 0.25
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment and CLI flags."""

    data_dir: Path = Path(DEFAULT_DATA_DIR)
    dataset_path: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Path | None = None
    log_format: str = LOG_FORMAT
    feedback_delay_seconds: float = DEFAULT_FEEDBACK_DELAY

    @property
    def db_path(self) -> Path:
        return self.data_dir / "progress.db"

    def with_overrides(
        self,
        *,
        data_dir: str | None = None,
        dataset_path: str | None = None,
        log_level: str | None = None,
    ) -> Settings:
        """Return a copy with CLI flag values applied where given."""
        changes: dict[str, object] = {}
        if data_dir:
            changes["data_dir"] = Path(data_dir)
        if dataset_path:
            changes["dataset_path"] = Path(dataset_path)
        if log_level:
            changes["log_level"] = log_level.upper()
        return replace(self, **changes)


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name, "").strip()
    if not value:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        return default


def settings_from_env(env: Mapping[str, str]) -> Settings:
    """Build settings from an environment mapping."""
    dataset = env.get("SHORTCUT_TRAINER_DATASET", "").strip()
    log_file = env.get("SHORTCUT_TRAINER_LOG_FILE", "").strip()
    return Settings(
        data_dir=Path(env.get("SHORTCUT_TRAINER_HOME", "").strip() or DEFAULT_DATA_DIR),
        dataset_path=Path(dataset) if dataset else None,
        log_level=(env.get("SHORTCUT_TRAINER_LOG_LEVEL", "").strip() or DEFAULT_LOG_LEVEL).upper(),
        log_file=Path(log_file) if log_file else None,
        feedback_delay_seconds=_float_env(env, "SHORTCUT_TRAINER_FEEDBACK_DELAY", DEFAULT_FEEDBACK_DELAY),
    )


def load_settings(env_file: str | None = ".env") -> Settings:
    """Load `.env` (if present) into the process environment and build settings."""
    if env_file:
        load_dotenv(env_file)
    return settings_from_env(os.environ)
