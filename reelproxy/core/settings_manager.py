"""
Settings Manager
Defaults, an optional JSON settings file and environment overrides
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import threading

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised for configuration values the server cannot run with."""


TRUE_WORDS = {"1", "true", "yes", "on"}
FALSE_WORDS = {"0", "false", "no", "off"}


def parse_bool(raw: str) -> bool:
    value = str(raw).strip().lower()
    if value in TRUE_WORDS:
        return True
    if value in FALSE_WORDS:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


class SettingsManager:
    """Manages application settings; environment variables win over the settings file"""

    @staticmethod
    def _default_data_dir() -> Path:
        return Path.home() / ".reelproxy"

    DEFAULT_SETTINGS = {
        # Discovery
        "min_seeders_required": 5,
        "search_timeout_seconds": 10.0,
        "discovery_cache_ttl_seconds": 300.0,
        "source_request_timeout_seconds": 8.0,
        "source_base_urls": {},
        "enabled_sources": {
            "ThePirateBay": True,
            "LimeTorrents": True,
            "TorrentGalaxy": True,
        },

        # Sessions
        "session_startup_timeout_seconds": 30.0,
        "session_idle_ttl_seconds": 3600.0,
        "reaper_interval_seconds": 1800.0,
        "download_dir": "",

        # Catalog / library
        "tmdb_api_key": "",
        "tmdb_request_timeout_seconds": 10.0,
        "cache_duration_hours": 24.0,
        "refresh_interval_hours": 6.0,
        "refresh_max_items": 100,
        "refresh_delay_seconds": 1.0,
        "refresh_on_startup": True,

        # Server
        "server_url": "http://localhost:3000",
        "host": "0.0.0.0",
        "port": 3000,
        "log_level": "INFO",
    }

    # Environment variable -> (settings key, type)
    ENV_OVERRIDES = {
        "MIN_SEEDERS_REQUIRED": ("min_seeders_required", int),
        "SEARCH_TIMEOUT_SECONDS": ("search_timeout_seconds", float),
        "DISCOVERY_CACHE_TTL_SECONDS": ("discovery_cache_ttl_seconds", float),
        "SOURCE_REQUEST_TIMEOUT_SECONDS": ("source_request_timeout_seconds", float),
        "SESSION_STARTUP_TIMEOUT_SECONDS": ("session_startup_timeout_seconds", float),
        "SESSION_IDLE_TTL_SECONDS": ("session_idle_ttl_seconds", float),
        "REAPER_INTERVAL_SECONDS": ("reaper_interval_seconds", float),
        "DOWNLOAD_DIR": ("download_dir", str),
        "TMDB_API_KEY": ("tmdb_api_key", str),
        "CACHE_DURATION_HOURS": ("cache_duration_hours", float),
        "REFRESH_INTERVAL_HOURS": ("refresh_interval_hours", float),
        "REFRESH_MAX_ITEMS": ("refresh_max_items", int),
        "REFRESH_DELAY_SECONDS": ("refresh_delay_seconds", float),
        "REFRESH_ON_STARTUP": ("refresh_on_startup", parse_bool),
        "SERVER_URL": ("server_url", str),
        "HOST": ("host", str),
        "PORT": ("port", int),
        "LOG_LEVEL": ("log_level", str),
    }

    POSITIVE_KEYS = (
        "search_timeout_seconds",
        "source_request_timeout_seconds",
        "session_startup_timeout_seconds",
        "session_idle_ttl_seconds",
        "reaper_interval_seconds",
        "refresh_interval_hours",
    )
    NON_NEGATIVE_KEYS = (
        "min_seeders_required",
        "discovery_cache_ttl_seconds",
        "cache_duration_hours",
        "refresh_max_items",
        "refresh_delay_seconds",
    )

    def __init__(self, data_dir: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        environ = os.environ if environ is None else environ
        data_dir = str(data_dir or environ.get("REELPROXY_DATA_DIR", "") or "").strip()
        self.settings_dir = Path(data_dir).expanduser() if data_dir else self._default_data_dir()
        self.settings_file = self.settings_dir / "settings.json"

        self._lock = threading.RLock()
        self._settings: Dict[str, Any] = {}
        self._env_applied: Dict[str, Any] = {}
        self._load(environ)

    def _load(self, environ: Mapping[str, str]):
        """Load settings from file, then apply environment overrides"""
        with self._lock:
            loaded: Dict[str, Any] = {}
            if self.settings_file.exists():
                try:
                    with open(self.settings_file, 'r') as f:
                        loaded = json.load(f)
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning("Ignoring unreadable settings file %s: %s", self.settings_file, e)
                    loaded = {}
                if not isinstance(loaded, dict):
                    logger.warning("Ignoring settings file %s: expected a JSON object", self.settings_file)
                    loaded = {}

            self._settings = {**self.DEFAULT_SETTINGS, **loaded}
            default_sources = self.DEFAULT_SETTINGS.get("enabled_sources", {})
            loaded_sources = loaded.get("enabled_sources", {})
            if isinstance(loaded_sources, dict):
                self._settings["enabled_sources"] = {**default_sources, **loaded_sources}

            self._env_applied = self._read_environment(environ)
            self._settings.update(self._env_applied)
            if not str(self._settings.get("download_dir") or "").strip():
                self._settings["download_dir"] = str(self.settings_dir / "downloads")
            self._validate(self._settings)

    def _read_environment(self, environ: Mapping[str, str]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for env_name, (key, kind) in self.ENV_OVERRIDES.items():
            raw = environ.get(env_name)
            if raw is None or str(raw).strip() == "":
                continue
            out[key] = self._coerce(env_name, raw, kind)
        return out

    @staticmethod
    def _coerce(name: str, raw: Any, kind):
        try:
            return kind(str(raw).strip())
        except ValueError as e:
            kind_name = "bool" if kind is parse_bool else kind.__name__
            raise ConfigError(f"{name} must be {kind_name}, got {raw!r}") from e

    def _validate(self, settings: Dict[str, Any]):
        for key in self.POSITIVE_KEYS:
            if float(settings.get(key, 0) or 0) <= 0:
                raise ConfigError(f"{key} must be greater than zero")
        for key in self.NON_NEGATIVE_KEYS:
            if float(settings.get(key, 0) or 0) < 0:
                raise ConfigError(f"{key} must not be negative")
        port = int(settings.get("port", 0) or 0)
        if not 0 < port < 65536:
            raise ConfigError(f"port out of range: {port}")

    def _save(self):
        """Save settings to file; environment overrides are never written back"""
        with self._lock:
            persisted = {k: v for k, v in self._settings.items() if k not in self._env_applied}
            try:
                self.settings_dir.mkdir(parents=True, exist_ok=True)
                with open(self.settings_file, 'w') as f:
                    json.dump(persisted, f, indent=2)
            except OSError as e:
                logger.error("Error saving settings to %s: %s", self.settings_file, e)

    def get(self, key: str, default=None) -> Any:
        """Get a setting value"""
        with self._lock:
            return self._settings.get(key, default)

    def set(self, key: str, value: Any):
        """Set a setting value and save"""
        self.update({key: value})

    def update(self, settings_dict: Dict[str, Any]):
        """Update multiple settings at once"""
        with self._lock:
            candidate = {**self._settings, **dict(settings_dict or {})}
            self._validate(candidate)
            self._settings = candidate
            for key in settings_dict or {}:
                self._env_applied.pop(key, None)
            self._save()

    def get_all(self) -> Dict[str, Any]:
        """Get all settings"""
        with self._lock:
            return self._settings.copy()

    def public_view(self) -> Dict[str, Any]:
        """Settings safe to show on the status page"""
        out = self.get_all()
        if out.get("tmdb_api_key"):
            out["tmdb_api_key"] = "***"
        return out

    def reset(self):
        """Reset to default settings"""
        with self._lock:
            self._settings = self.DEFAULT_SETTINGS.copy()
            self._settings["download_dir"] = str(self.settings_dir / "downloads")
            self._env_applied = {}
            self._save()
