"""Shared HTTP utilities for Bandruption services."""

from urllib.parse import urlsplit

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def origin_of(url: str) -> str:
    """Return the scheme://host[:port] origin of a URL ("" if it has none)."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
