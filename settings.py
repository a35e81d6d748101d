"""
User Settings Persistence

Saves user preferences (strategy, per-strategy options, server selection,
notification flags) to a JSON file so they persist across restarts.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from config import config

logger = logging.getLogger(__name__)

SETTINGS_FILE = Path(config.SETTINGS_FILE)

# Default settings
DEFAULTS: Dict[str, Any] = {
    "server": "live",
    "strategy": "expected-value",
    "min_balance": 5,
    "poll_interval": 1.0,          # seconds between state polls while idle
    "max_round_budget_pct": 0.2,   # share of balance we may spend in one round
    "telegram_chat_id": None,
    "log_to_telegram": True,
    "log_to_file": True,
    # Strategy-specific defaults
    "strategy_options": {
        "expected-value": {
            "max_counter_extensions": 1,
            "max_counter_bid_pct": 0.1,
            "simple_bid": True,
            "outbid_headroom": 10,
        },
        "aggressive": {
            "bid_multiplier": 2,
            "always_outbid": True,
        },
        "underdog": {
            "max_pool_size": 10,
            "min_payout_multiplier": 2.0,
        },
        "conservative": {
            "max_bid_amount": 1,
            "skip_if_behind": True,
        },
        "random": {},
    },
}

# In-memory cache to avoid reading file on every call
_settings_cache: Optional[Dict[str, Any]] = None


def _defaults() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULTS)


def load_settings(force_reload: bool = False) -> Dict[str, Any]:
    """Load settings from file, returning defaults if file doesn't exist.

    Uses in-memory cache to avoid reading file on every call.
    """
    global _settings_cache

    if _settings_cache is not None and not force_reload:
        return copy.deepcopy(_settings_cache)

    if not SETTINGS_FILE.exists():
        logger.debug("No settings file found, using defaults")
        _settings_cache = _defaults()
        return copy.deepcopy(_settings_cache)

    try:
        with open(SETTINGS_FILE, 'r', encoding='utf-8') as f:
            stored = json.load(f)
        logger.debug(f"Loaded settings from {SETTINGS_FILE}")
        # Merge with defaults to ensure all keys exist
        merged = _defaults()
        stored_options = stored.pop('strategy_options', None) or {}
        merged.update(stored)
        for name, options in stored_options.items():
            merged['strategy_options'].setdefault(name, {}).update(options or {})
        _settings_cache = merged
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load settings: {e}")
        _settings_cache = _defaults()

    return copy.deepcopy(_settings_cache)


def save_settings(settings: Dict[str, Any]) -> bool:
    """Save settings to file and update cache.

    Only top-level values that differ from the defaults are written;
    strategy options are always written.
    """
    global _settings_cache

    to_save = {
        key: value for key, value in settings.items()
        if key != 'strategy_options' and DEFAULTS.get(key, object()) != value
    }
    if settings.get('strategy_options'):
        to_save['strategy_options'] = settings['strategy_options']

    try:
        SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(SETTINGS_FILE, 'w', encoding='utf-8') as f:
            json.dump(to_save, f, indent=2)
        logger.debug(f"Saved settings to {SETTINGS_FILE}")
        _settings_cache = copy.deepcopy(settings)
        return True
    except OSError as e:
        logger.error(f"Failed to save settings: {e}")
        return False


def get_setting(key: str, default: Any = None) -> Any:
    """Get a single setting value. Dotted keys walk nested dicts."""
    value: Any = load_settings()
    for part in key.split('.'):
        if not isinstance(value, dict) or part not in value:
            return default
        value = value[part]
    return value


def coerce_value(raw: Any) -> Any:
    """Turn CLI strings into JSON-ish values ('true', 'null', '0.2', ...)."""
    if not isinstance(raw, str):
        return raw
    lowered = raw.strip().lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    if lowered in ('null', 'none'):
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def set_setting(key: str, value: Any) -> bool:
    """Set a single setting value and save. Dotted keys create nested dicts."""
    settings = load_settings()
    parts = key.split('.')
    target = settings
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = coerce_value(value)
    return save_settings(settings)


def get_strategy_options(name: str, settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Options dict for one strategy (empty when none are configured)."""
    settings = settings or load_settings()
    return dict((settings.get('strategy_options') or {}).get(name) or {})


def get_backend_url(settings: Optional[Dict[str, Any]] = None) -> str:
    """Backend base URL: env override, then the configured server name."""
    if config.BACKEND_URL_OVERRIDE:
        return config.BACKEND_URL_OVERRIDE.rstrip('/')
    settings = settings or load_settings()
    return config.SERVERS.get(settings.get('server'), config.SERVERS['live'])


def clear_cache():
    """Drop the in-memory cache (next load re-reads the file)."""
    global _settings_cache
    _settings_cache = None
