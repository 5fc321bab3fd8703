"""
In-memory store for finished analyses, keyed by an opaque id

Lets a client fetch a report again without re-running the scan. Entries
expire after a TTL and the oldest entries are evicted once the store is
full. Nothing survives a restart.
"""

import logging
import os
import threading
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

RESULT_CACHE_TTL_SECONDS = float(os.getenv('RESULT_CACHE_TTL_SECONDS', '3600'))
RESULT_CACHE_MAX_ENTRIES = int(os.getenv('RESULT_CACHE_MAX_ENTRIES', '500'))


class ResultCache:
    def __init__(self, ttl_seconds: float = RESULT_CACHE_TTL_SECONDS,
                 max_entries: int = RESULT_CACHE_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()
        self._lock = threading.Lock()

    def _purge_expired(self, now: float):
        expired = [key for key, (stored_at, _) in self._entries.items()
                   if now - stored_at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]

    def put(self, value: Dict[str, Any]) -> str:
        """Store a result and return its new id"""
        analysis_id = str(uuid.uuid4())
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._entries[analysis_id] = (now, value)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cached analysis {evicted}")
        return analysis_id

    def get(self, analysis_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(analysis_id)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[analysis_id]
                return None
            return value

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._entries)
