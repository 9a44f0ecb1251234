"""
Shared configuration loader for Bandruption services.

Loads a single JSON config file.  $BANDRUPTION_CONFIG wins when set, then:
  1. /etc/bandruption/config.json   (deployed install)
  2. config.json                     (CWD — handy for local dev)
  3. ../config/default.json          (repo fallback)

Secrets (SUPABASE_KEY etc.) stay in environment variables.

Usage:
    from lib.config import cfg

    api_base     = cfg("api", "base_url", default="http://localhost:3001/api/spotify")
    poll         = cfg("auth", "poll_interval", default=1.0)
    app          = cfg("app")  # returns the whole dict
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

ENV_PATH = "BANDRUPTION_CONFIG"

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/bandruption/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]


def _section(config: dict, name: str) -> dict:
    block = config.get(name)
    if block is None:
        return {}
    if not isinstance(block, dict):
        logger.warning("Config section %r should be an object, got %s",
                       name, type(block).__name__)
        return {}
    return block


def _validate(config: dict):
    """Log warnings for settings the auth flow cannot work without."""
    api, auth, app = (_section(config, name) for name in ("api", "auth", "app"))
    if not api.get("base_url"):
        logger.warning("Config missing api.base_url — token lookups will use the default")
    if not auth.get("base_url"):
        logger.warning("Config missing auth.base_url — popup login will use the default")
    if not app.get("origin"):
        logger.warning("Config missing app.origin — popup messages will be checked "
                       "against the local service origin")
    timeout = auth.get("timeout")
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        logger.error("auth.timeout must be a positive number, got %r", timeout)


def _candidates():
    override = os.environ.get(ENV_PATH)
    return ([override] if override else []) + list(_SEARCH_PATHS)


def _read(path: str) -> dict | None:
    """Parse one candidate file.  None means try the next one."""
    if not os.path.isfile(path):
        return None
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.error("Ignoring %s: top level must be an object", path)
        return None
    return data


def load_config() -> dict:
    """Return the cached config, reading the first usable file on first use."""
    global _config
    if _config is None:
        for path in _candidates():
            data = _read(path)
            if data is not None:
                logger.info("Bandruption config: %s", path)
                _validate(data)
                _config = data
                break
        else:
            logger.warning("No Bandruption config file found, running on defaults")
            _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("app")                           → config["app"]
    cfg("auth", "base_url")              → config["auth"]["base_url"]
    cfg("auth", "timeout", default=300)  → 300 when the key is absent
    """
    block = load_config().get(section)
    if key is None:
        return default if block is None else block
    if not isinstance(block, dict):
        return default
    return block.get(key, default)


def reload_config():
    """Drop the cache and read the config files again."""
    global _config
    _config = None
    return load_config()
