"""Settings and config persistence for streamdeck-panel.

Config is stored at ~/.config/streamdeck-panel/config.json (XDG-compliant).
Only the CLI reads it; the library takes explicit keyword arguments.

Usage:
    from streamdeck_panel.conf import Settings

    settings = Settings.load()
    settings.serial             # preferred panel, None = first found
    settings.reconnect_delay    # seconds between reconnect attempts
    settings.read_timeout_ms    # 0 = block until the panel reports

    # Low-level config access
    from streamdeck_panel.conf import load_config, save_config
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from .constants import DEFAULT_READ_TIMEOUT_MS

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'streamdeck-panel')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')

DEFAULT_RECONNECT_DELAY = 0.0


# =========================================================================
# Low-level config persistence
# =========================================================================

def load_config() -> dict:
    """Load user config from disk. Returns empty dict on missing/corrupt file."""
    try:
        with open(CONFIG_PATH, 'r') as f:
            config = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    if not isinstance(config, dict):
        log.warning("Ignoring malformed config at %s", CONFIG_PATH)
        return {}
    return config


def save_config(config: dict):
    """Save user config to disk."""
    os.makedirs(CONFIG_DIR, exist_ok=True)
    with open(CONFIG_PATH, 'w') as f:
        json.dump(config, f, indent=2)


def _save_key(key: str, value):
    config = load_config()
    if value is None:
        config.pop(key, None)
    else:
        config[key] = value
    save_config(config)


# =========================================================================
# Panel selection
# =========================================================================

def get_saved_serial() -> Optional[str]:
    """Serial number of the preferred panel. None = first found."""
    serial = load_config().get('serial')
    return str(serial) if serial else None


def save_serial(serial: Optional[str]):
    """Persist (or with None, forget) the preferred panel serial."""
    _save_key('serial', serial)


# =========================================================================
# Event loop tuning
# =========================================================================

def get_reconnect_delay() -> float:
    """Seconds to wait between reconnect attempts. Defaults to 0 (retry at once)."""
    try:
        return max(0.0, float(load_config().get('reconnect_delay', DEFAULT_RECONNECT_DELAY)))
    except (TypeError, ValueError):
        return DEFAULT_RECONNECT_DELAY


def save_reconnect_delay(seconds: float):
    _save_key('reconnect_delay', float(seconds))


def get_read_timeout_ms() -> int:
    """USB read timeout for the event loop. Defaults to 0 (block)."""
    try:
        return max(0, int(load_config().get('read_timeout_ms', DEFAULT_READ_TIMEOUT_MS)))
    except (TypeError, ValueError):
        return DEFAULT_READ_TIMEOUT_MS


def save_read_timeout_ms(timeout_ms: int):
    _save_key('read_timeout_ms', int(timeout_ms))


# =========================================================================
# Settings snapshot
# =========================================================================

@dataclass
class Settings:
    """Snapshot of the persisted settings."""
    serial: Optional[str] = None
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS

    @classmethod
    def load(cls) -> "Settings":
        return cls(
            serial=get_saved_serial(),
            reconnect_delay=get_reconnect_delay(),
            read_timeout_ms=get_read_timeout_ms(),
        )

    def controller_kwargs(self) -> dict:
        """Keyword arguments for PanelController."""
        return {
            'serial': self.serial,
            'reconnect_delay': self.reconnect_delay,
            'read_timeout_ms': self.read_timeout_ms,
        }
