"""
Supabase client factory.

The project URL comes from config (supabase.url), the key from the
SUPABASE_KEY environment variable.  The client is built on first use and
cached; supabase-py calls are blocking, so async callers run them in the
default executor.
"""

import logging
import os

from lib.config import cfg

log = logging.getLogger('bandruption-supabase')

_client = None


def get_client():
    """Return the shared Supabase client.  Raises RuntimeError if unconfigured."""
    global _client
    if _client is not None:
        return _client

    url = cfg("supabase", "url", default="") or os.environ.get("SUPABASE_URL", "")
    key = os.environ.get("SUPABASE_KEY", "")
    if not url or not key:
        raise RuntimeError("Supabase not configured (supabase.url / SUPABASE_KEY)")

    from supabase import create_client
    _client = create_client(url, key)
    log.info("Supabase client ready (%s)", url)
    return _client


def tokens_table() -> str:
    return cfg("supabase", "tokens_table", default="spotify_tokens")
