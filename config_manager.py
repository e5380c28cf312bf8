"""
Configuration management for the Mixpanel tracker.
Handles loading and providing access to tracker, middleware and demo app settings.
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass


@dataclass
class TrackerConfig:
    """Tracker configuration settings."""
    token: str
    api_host: str
    delivery: str
    timeout: Optional[float]


@dataclass
class MiddlewareConfig:
    """Client-side rendering settings."""
    insert_js_last: bool
    library_url: str


@dataclass
class AppConfig:
    """Demo application configuration settings."""
    host: str
    port: int
    debug: bool


class ConfigManager:
    """Manages configuration loading and access."""

    def __init__(self, config_file: str = "mixpanel_config.json"):
        self.config_file = Path(config_file)
        self._config: Optional[Dict[str, Any]] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        self._config = self._get_default_config()

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
                    self._merge_config(file_config)
            except (json.JSONDecodeError, FileNotFoundError):
                # Keep default config if file is invalid or not found
                pass

        self._override_with_env()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "tracker": {
                "token": "",
                "api_host": "api.mixpanel.com",
                "delivery": "sync",
                "timeout": None
            },
            "middleware": {
                "insert_js_last": False,
                "library_url": "https://cdn.mxpnl.com/libs/mixpanel-2-latest.min.js"
            },
            "app": {
                "host": "127.0.0.1",
                "port": 5000,
                "debug": False
            }
        }

    def _merge_config(self, file_config: Dict[str, Any]) -> None:
        """Merge file configuration with current config."""
        for section, values in file_config.items():
            if section in self._config and isinstance(values, dict):
                self._config[section].update(values)
            else:
                self._config[section] = values

    def _override_with_env(self) -> None:
        """Override configuration with environment variables."""
        if os.getenv("MIXPANEL_TOKEN"):
            self._config["tracker"]["token"] = os.getenv("MIXPANEL_TOKEN")

        if os.getenv("MIXPANEL_API_HOST"):
            self._config["tracker"]["api_host"] = os.getenv("MIXPANEL_API_HOST")

        if os.getenv("MIXPANEL_DELIVERY"):
            self._config["tracker"]["delivery"] = os.getenv("MIXPANEL_DELIVERY").lower()

        if os.getenv("MIXPANEL_TIMEOUT"):
            self._config["tracker"]["timeout"] = float(os.getenv("MIXPANEL_TIMEOUT"))

        if os.getenv("MIXPANEL_INSERT_JS_LAST"):
            self._config["middleware"]["insert_js_last"] = os.getenv("MIXPANEL_INSERT_JS_LAST").lower() == "true"

        if os.getenv("APP_HOST"):
            self._config["app"]["host"] = os.getenv("APP_HOST")

        if os.getenv("APP_PORT"):
            self._config["app"]["port"] = int(os.getenv("APP_PORT"))

        if os.getenv("APP_DEBUG"):
            self._config["app"]["debug"] = os.getenv("APP_DEBUG").lower() == "true"

    def get_tracker_config(self) -> TrackerConfig:
        """Get tracker configuration."""
        tracker_config = self._config["tracker"]
        return TrackerConfig(
            token=tracker_config["token"],
            api_host=tracker_config["api_host"],
            delivery=tracker_config["delivery"],
            timeout=tracker_config["timeout"]
        )

    def get_middleware_config(self) -> MiddlewareConfig:
        """Get middleware configuration."""
        mw_config = self._config["middleware"]
        return MiddlewareConfig(
            insert_js_last=mw_config["insert_js_last"],
            library_url=mw_config["library_url"]
        )

    def get_app_config(self) -> AppConfig:
        """Get demo application configuration."""
        app_config = self._config["app"]
        return AppConfig(
            host=app_config["host"],
            port=app_config["port"],
            debug=app_config["debug"]
        )

    def get_config(self) -> Dict[str, Any]:
        """Get raw configuration dictionary."""
        return self._config.copy()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def save_config(self) -> None:
        """Save current configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)


# Global configuration instance
config_manager = ConfigManager()


def get_tracker_config() -> TrackerConfig:
    """Get tracker configuration."""
    return config_manager.get_tracker_config()


def get_middleware_config() -> MiddlewareConfig:
    """Get middleware configuration."""
    return config_manager.get_middleware_config()


def get_app_config() -> AppConfig:
    """Get demo application configuration."""
    return config_manager.get_app_config()


def reload_config() -> None:
    """Reload configuration."""
    config_manager.reload()


def save_config() -> None:
    """Save configuration to file."""
    config_manager.save_config()
