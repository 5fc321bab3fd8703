"""
Shared aiohttp session factory

Every outbound call gets a bounded timeout; callers can still pass a
tighter per-request ClientTimeout.
"""

import os

import aiohttp
from aiohttp import ClientTimeout, TCPConnector

DESKTOP_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)

DEFAULT_TIMEOUT_SECONDS = float(os.getenv('HTTP_TIMEOUT_SECONDS', '60'))


def create_session(timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
                   max_connections: int = 20) -> aiohttp.ClientSession:
    """Create a client session; the caller owns it and must close it"""
    connector = TCPConnector(limit=max_connections, limit_per_host=10, ttl_dns_cache=300)
    return aiohttp.ClientSession(
        connector=connector,
        timeout=ClientTimeout(total=timeout_seconds, connect=10),
        headers={'User-Agent': DESKTOP_USER_AGENT},
    )
