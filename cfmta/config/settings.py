"""
Settings management for cfmta.

Deployment settings live in a JSON file layered over DEFAULT_SETTINGS.
Keys are addressed with dots, e.g. "http.upload_timeout".
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .defaults import DEFAULT_SETTINGS

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"


class Settings:
    """
    Deployment settings backed by settings.json.

    Location:
        Linux/macOS: $XDG_CONFIG_HOME/cfmta (~/.config/cfmta)
        Windows: %APPDATA%\\cfmta
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Args:
            config_dir: Directory holding settings.json. Defaults to the
                platform config directory.
        """
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.config_file = self.config_dir / SETTINGS_FILE
        self._values: Dict[str, Any] = {}
        self.load()

    def load(self):
        """Reload from disk. A missing or unreadable file leaves the defaults in place."""
        values = copy.deepcopy(DEFAULT_SETTINGS)

        if self.config_file.is_file():
            try:
                stored = json.loads(self.config_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.error(f"Ignoring unreadable settings file {self.config_file}: {e}")
            else:
                if isinstance(stored, dict):
                    _merge(values, stored)
                    logger.info(f"Loaded settings from {self.config_file}")
                else:
                    logger.error(f"Ignoring settings file {self.config_file}: not a JSON object")
        else:
            logger.debug(f"No settings file at {self.config_file}, using defaults")

        self._values = values

    def save(self):
        """Write all settings to disk, creating the config directory if needed."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            self.config_file.write_text(json.dumps(self._values, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save settings to {self.config_file}: {e}")
            return
        logger.info(f"Saved settings to {self.config_file}")

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value at a dotted key, or `default` if any segment is missing."""
        node: Any = self._values
        for part in _split(key):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any):
        """Store a value at a dotted key, creating intermediate sections."""
        *sections, leaf = _split(key)
        node = self._values
        for part in sections:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value

    # -- typed accessors ---------------------------------------------------

    @property
    def poll_interval(self) -> float:
        return float(self.get("polling.interval", 2.0))

    @property
    def http_timeout(self) -> float:
        return float(self.get("http.timeout", 60))

    @property
    def upload_timeout(self) -> float:
        return float(self.get("http.upload_timeout", 600))

    @property
    def descriptor_temp_dir(self) -> Optional[str]:
        return self.get("extension_descriptors.temp_dir") or None

    def resolve_deploy_url(self, override: Optional[str] = None) -> str:
        """
        Pick the deploy-service URL: per-resource override, then the
        configured deploy_url, then one derived from api_url.

        Raises:
            ValueError: If none of them is available
        """
        if override:
            return override
        configured = self.get("deploy_url")
        if configured:
            return configured
        api_url = self.get("api_url")
        if api_url:
            from ..core.client import derive_deploy_url
            return derive_deploy_url(api_url)
        raise ValueError("Neither deploy_url nor api_url is configured")


def default_config_dir() -> Path:
    if os.name == 'nt':
        base = os.environ.get('APPDATA', os.path.expanduser('~'))
    else:
        base = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
    return Path(base) / 'cfmta'


def _split(key: str) -> List[str]:
    return key.split('.')


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]):
    """Recursively merge overrides into base so newly added defaults survive."""
    for key, value in overrides.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _merge(current, value)
        else:
            base[key] = value
