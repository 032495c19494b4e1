"""
In-memory session store
Conversation state and a short message history per session (phone number).
Volatile: contents live as long as the process.
"""

import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class InMemorySessionStore:
    """
    Session store satisfying the SessionStore protocol

    Example:
        store = InMemorySessionStore()
        store.update("51987654321", state="in_progress", current_order={"order_id": 7})
        store.save("51987654321", "quiero 2 mouse")
        store.history("51987654321", limit=3)
    """

    def __init__(self, max_history: int = 20):
        self.max_history = max_history
        self._states: Dict[str, Dict[str, Any]] = {}
        self._messages: Dict[str, Deque[Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def get(self, session_key: str) -> Optional[Dict[str, Any]]:
        """Copy of the session state, or None for an unknown session."""
        with self._lock:
            state = self._states.get(session_key)
            return dict(state) if state is not None else None

    def update(self, session_key: str, **fields: Any) -> Dict[str, Any]:
        """Merge fields into the session state, creating the session if needed."""
        with self._lock:
            state = self._states.setdefault(session_key, {"state": "idle"})
            state.update(fields)
            logger.debug("Session %s updated: %s", session_key, sorted(fields))
            return dict(state)

    def save(self, session_key: str, message: str, is_bot: bool = False) -> None:
        with self._lock:
            self._states.setdefault(session_key, {"state": "idle"})
            messages = self._messages.setdefault(session_key, deque(maxlen=self.max_history))
            messages.append({"role": "assistant" if is_bot else "user", "content": message})

    def history(self, session_key: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent messages, oldest first."""
        with self._lock:
            messages = list(self._messages.get(session_key, ()))
        return messages[-limit:] if limit > 0 else []

    def clear(self, session_key: str) -> None:
        with self._lock:
            self._states.pop(session_key, None)
            self._messages.pop(session_key, None)
