"""
Conversation persistence on top of the shared cache (redis or in-process).
One JSON blob per bot, mode and session; dropped once the intake is submitted.
"""
import threading
from typing import Any, Dict, Optional, Set

from agentic_intake.core.cache import get_cache
from agentic_intake.core.logging import get_logger

_log = get_logger("sessions")

class SessionStore:
    def __init__(self, cache: Any = None, ttl: int = 86400):
        self.cache = cache if cache is not None else get_cache()
        self.ttl = ttl
        self._busy: Set[str] = set()
        self._lock = threading.Lock()

    @staticmethod
    def key(bot_id: str, mode: str, session_id: str) -> str:
        return f"intake:chat:{bot_id}:{mode}:{session_id}"

    def load(self, bot_id: str, mode: str, session_id: str) -> Optional[Dict[str, Any]]:
        return self.cache.get(self.key(bot_id, mode, session_id))

    def save(self, bot_id: str, mode: str, session_id: str, snapshot: Dict[str, Any]):
        self.cache.set(self.key(bot_id, mode, session_id), snapshot, ttl=self.ttl)

    def clear(self, bot_id: str, mode: str, session_id: str):
        self.cache.delete(self.key(bot_id, mode, session_id))
        _log.info("session cleared", extra={"stage": "session.cleared", "sessionId": session_id, "botId": bot_id})

    def is_busy(self, bot_id: str, mode: str, session_id: str) -> bool:
        with self._lock:
            return self.key(bot_id, mode, session_id) in self._busy

    def try_begin(self, bot_id: str, mode: str, session_id: str) -> bool:
        """Claim the session for one turn; False if a turn is already running."""
        k = self.key(bot_id, mode, session_id)
        with self._lock:
            if k in self._busy:
                return False
            self._busy.add(k)
            return True

    def end(self, bot_id: str, mode: str, session_id: str):
        with self._lock:
            self._busy.discard(self.key(bot_id, mode, session_id))
