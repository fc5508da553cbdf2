"""Configuration loader for server settings."""
import copy
import json
import logging
import os
from typing import Any, Dict

logger = logging.getLogger(__name__)


DEFAULT_SETTINGS: Dict[str, Any] = {
    "server": {
        "host": "0.0.0.0",
        "port": 8765,
    },
    "timings": {
        "countdown_seconds": 5,
        "tick_seconds": 1.0,
        "no_contest_delay": 2.0,
        "round_result_delay": 3.0,
        "countdown_recheck_delay": 1.5,
        "round_restart_delay": 1.0,
    },
    "rooms": {
        "max_players": 4,
        "stats_every_rounds": 3,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Loads and provides access to server configuration."""

    _instance = None
    _config_dir = "config"

    def __new__(cls):
        """Singleton pattern to ensure only one config loader."""
        if cls._instance is None:
            cls._instance = super(ConfigLoader, cls).__new__(cls)
            cls._instance._load_all_configs()
        return cls._instance

    @classmethod
    def reload(cls, config_dir: str = None) -> "ConfigLoader":
        """Drop the cached instance and load again, optionally from another directory."""
        if config_dir is not None:
            cls._config_dir = config_dir
        cls._instance = None
        return cls()

    def _load_all_configs(self):
        self.server_settings = _merge(DEFAULT_SETTINGS, self._load_json("server_settings.json"))

    def _load_json(self, filename: str) -> Dict[str, Any]:
        """Load a JSON configuration file."""
        filepath = os.path.join(self._config_dir, filename)
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.warning("Config file %s not found. Using defaults.", filepath)
            return {}
        except json.JSONDecodeError as e:
            logger.warning("Error parsing %s: %s. Using defaults.", filepath, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Config file %s must hold a JSON object. Using defaults.", filepath)
            return {}
        return data

    def get(self, *keys, default=None):
        """Get a nested configuration value."""
        value = self.server_settings
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_timings(self) -> Dict[str, Any]:
        """Get the round timing settings."""
        return dict(self.server_settings.get('timings', {}))

    def get_room_settings(self) -> Dict[str, Any]:
        """Get the room capacity and cadence settings."""
        return dict(self.server_settings.get('rooms', {}))
