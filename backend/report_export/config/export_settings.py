"""
Report export configuration loader.

Loads export tuning (retry budget, polling timeout and interval, default
report and format) from config/report_export.yml. Environment variables
override the file so deployments can change a value without a rebuild.

Consumers:
  - ReportExportService: builds requests and the orchestrator from these settings
  - Report export API routes

Usage:
    from report_export.config.export_settings import get_export_settings_loader

    settings = get_export_settings_loader().settings
    settings.max_attempts           # 3
    settings.poll_timeout_seconds   # 60.0
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

import yaml

from report_export.integrations.powerbi.models import DEFAULT_LOCALE, FileFormat

logger = logging.getLogger(__name__)

# Fallbacks when the file or a key is missing
_FALLBACK_MAX_ATTEMPTS = 3
_FALLBACK_POLL_TIMEOUT_SECONDS = 60.0
_FALLBACK_POLL_INTERVAL_SECONDS = 5.0

# env var -> (config key, parser)
_ENV_OVERRIDES = {
    "POWERBI_WORKSPACE_ID": ("workspace_id", str),
    "POWERBI_REPORT_ID": ("report_id", str),
    "EXPORT_MAX_ATTEMPTS": ("max_attempts", int),
    "EXPORT_POLL_TIMEOUT_SECONDS": ("poll_timeout_seconds", float),
    "EXPORT_DEFAULT_POLL_INTERVAL_SECONDS": ("default_poll_interval_seconds", float),
    "EXPORT_DEFAULT_FORMAT": ("default_format", str),
    "EXPORT_LOCALE": ("locale", str),
}


@dataclass(frozen=True)
class ExportSettings:
    """Validated export configuration."""

    workspace_id: Optional[str] = None
    report_id: Optional[str] = None
    max_attempts: int = _FALLBACK_MAX_ATTEMPTS
    poll_timeout_seconds: float = _FALLBACK_POLL_TIMEOUT_SECONDS
    default_poll_interval_seconds: float = _FALLBACK_POLL_INTERVAL_SECONDS
    default_format: FileFormat = FileFormat.PDF
    locale: str = DEFAULT_LOCALE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportSettings":
        """
        Build settings from a raw mapping.

        Raises:
            ValueError: If a value is out of range or the format is unknown
        """
        max_attempts = int(data.get("max_attempts", _FALLBACK_MAX_ATTEMPTS))
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        poll_timeout = float(data.get("poll_timeout_seconds", _FALLBACK_POLL_TIMEOUT_SECONDS))
        if poll_timeout <= 0:
            raise ValueError(f"poll_timeout_seconds must be positive, got {poll_timeout}")

        poll_interval = float(
            data.get("default_poll_interval_seconds", _FALLBACK_POLL_INTERVAL_SECONDS)
        )
        if poll_interval <= 0:
            raise ValueError(
                f"default_poll_interval_seconds must be positive, got {poll_interval}"
            )

        raw_format = str(data.get("default_format", FileFormat.PDF.value)).upper()
        try:
            default_format = FileFormat(raw_format)
        except ValueError:
            raise ValueError(f"Unknown export format: {raw_format}") from None

        return cls(
            workspace_id=data.get("workspace_id") or None,
            report_id=data.get("report_id") or None,
            max_attempts=max_attempts,
            poll_timeout_seconds=poll_timeout,
            default_poll_interval_seconds=poll_interval,
            default_format=default_format,
            locale=data.get("locale") or DEFAULT_LOCALE,
        )


class ExportSettingsLoader:
    """
    Thread-safe singleton loader for config/report_export.yml.
    """

    _instance: Optional["ExportSettingsLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path
        self._raw: Dict[str, Any] = {}
        self._settings = ExportSettings()
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    def _resolve_path(self) -> Path:
        if self._config_path:
            return Path(self._config_path)

        candidates = [
            Path(__file__).parent.parent.parent.parent / "config" / "report_export.yml",
            Path(os.getcwd()) / "config" / "report_export.yml",
            Path(os.getcwd()) / ".." / "config" / "report_export.yml",
        ]

        for p in candidates:
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        raise FileNotFoundError(
            f"report_export.yml not found in: {[str(p) for p in candidates]}"
        )

    def _apply_env_overrides(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        merged = dict(raw)
        for env_var, (key, parse) in _ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value is None or value == "":
                continue
            try:
                merged[key] = parse(value)
            except ValueError:
                raise ValueError(f"Invalid value for {env_var}: {value!r}") from None
        return merged

    def _load(self) -> None:
        with self._load_lock:
            try:
                path = self._resolve_path()
                logger.info("Loading report export config from %s", path)

                with open(path, "r") as f:
                    self._raw = yaml.safe_load(f) or {}
            except FileNotFoundError:
                logger.warning("report_export.yml not found, using fallback defaults")
                self._raw = {}

            self._settings = ExportSettings.from_dict(
                self._apply_env_overrides(self._raw.get("export", self._raw))
            )

            logger.info(
                "Loaded report export settings: max_attempts=%d, poll_timeout_seconds=%s",
                self._settings.max_attempts,
                self._settings.poll_timeout_seconds,
            )

    def reload(self) -> None:
        """Re-read the YAML from disk and re-apply environment overrides."""
        self._load()

    @property
    def settings(self) -> ExportSettings:
        return self._settings


def get_export_settings_loader(
    config_path: Optional[str] = None,
) -> ExportSettingsLoader:
    """Return the singleton ExportSettingsLoader."""
    return ExportSettingsLoader(config_path)


def get_export_settings() -> ExportSettings:
    return get_export_settings_loader().settings


def reset_export_settings_loader() -> None:
    """Reset singleton (for tests only)."""
    ExportSettingsLoader._instance = None
