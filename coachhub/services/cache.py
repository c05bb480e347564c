import logging
from typing import Any, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[Hashable, ...]

class QueryCache:
    """
    In-memory store of query results keyed by tuples such as
    ("user_blocks", blocker_id). Wiped on sign-out.
    """
    def __init__(self):
        self._entries: Dict[CacheKey, Any] = {}

    def get(self, key: CacheKey, default: Optional[Any] = None) -> Any:
        return self._entries.get(key, default)

    def set(self, key: CacheKey, value: Any):
        self._entries[key] = value

    def clear(self):
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Query cache cleared ({count} entries)")

    def __len__(self) -> int:
        return len(self._entries)

# Singleton instance
query_cache = QueryCache()
