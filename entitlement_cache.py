import logging
import threading
from typing import Optional

from models import EntitlementSet

logger = logging.getLogger(__name__)

class EntitlementCache:
    """
    Lock-guarded holder of the latest EntitlementSet.

    The set itself is immutable, so handing out the current reference under
    the lock is a consistent snapshot. The lock is never held across I/O.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = EntitlementSet()

    def read(self) -> EntitlementSet:
        with self._lock:
            return self._snapshot

    def write(self, new_set: EntitlementSet):
        if not new_set:
            raise ValueError("refusing to cache an empty entitlement set")
        with self._lock:
            self._snapshot = new_set
        logger.info("Entitlement cache replaced with %d record(s)", len(new_set))

    def clear(self):
        with self._lock:
            self._snapshot = EntitlementSet()

class ResolverState:
    """Everything owned by one configured remote source."""

    def __init__(self, source_code: str, password: Optional[str] = None):
        self.source_code = source_code
        # An empty password means the API strategy is not configured.
        self.password = password or None
        self.cache = EntitlementCache()
