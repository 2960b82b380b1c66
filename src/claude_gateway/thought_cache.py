"""Process-wide cache of thought signatures keyed by tool-call id.

Thinking models attach an opaque signature to each tool call and expect it
back on the next turn. Clients such as terminal agents drop unknown fields, so
the gateway remembers the signature and re-injects it.
"""

import logging
import threading
from typing import Dict, Optional

logger = logging.getLogger(__name__)

MAX_ENTRIES = 1000


class ThoughtSignatureCache:
    """Mapping from tool-call id to signature with clear-all eviction.

    Lookups read the dict without locking (a single ``dict.get`` is atomic);
    stores take the lock so that eviction and insertion are not interleaved.
    """

    def __init__(self, max_entries: int = MAX_ENTRIES):
        self.max_entries = max_entries
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()

    def store(self, tool_call_id: str, signature: str) -> None:
        if not tool_call_id or not signature:
            return
        with self._lock:
            if len(self._entries) > self.max_entries:
                logger.debug(f"Thought signature cache full ({len(self._entries)}), clearing")
                self._entries.clear()
            self._entries[tool_call_id] = signature
        logger.debug(f"Cached thought signature for tool call {tool_call_id}")

    def lookup(self, tool_call_id: Optional[str]) -> Optional[str]:
        if not tool_call_id:
            return None
        return self._entries.get(tool_call_id)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# Global cache instance
_cache: Optional[ThoughtSignatureCache] = None
_cache_lock = threading.Lock()


def get_thought_cache() -> ThoughtSignatureCache:
    """Get the process-wide cache (created on first use)."""
    global _cache
    if _cache is None:
        with _cache_lock:
            if _cache is None:
                _cache = ThoughtSignatureCache()
    return _cache
