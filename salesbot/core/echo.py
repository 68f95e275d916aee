"""
Echo suppression.

The transport may hand our own outbound message back as a self/outgoing
event. Every send registers a short-lived fingerprint ``(channelId, body)``
and, when the transport returns one, the message id. The self path consumes
either marker once and drops the event.

Message ids (sent ids and processed agent ids) expire after
``ECHO_ID_TTL_MS`` so neither map grows for the life of the process.
"""
import threading
import time
from typing import Dict, Optional, Tuple

from salesbot.settings import settings


class EchoSuppressor:
    def __init__(self, ttl_ms: Optional[int] = None, id_ttl_ms: Optional[int] = None, clock=time.monotonic):
        self._ttl_ms = ttl_ms
        self._id_ttl_ms = id_ttl_ms
        self._clock = clock
        self._fingerprints: Dict[Tuple[str, str], float] = {}
        self._sent_ids: Dict[str, float] = {}
        self._agent_processed_ids: Dict[str, float] = {}
        self._guard = threading.Lock()

    @property
    def ttl_sec(self) -> float:
        ttl = self._ttl_ms if self._ttl_ms is not None else settings.ECHO_FINGERPRINT_TTL_MS
        return ttl / 1000.0

    @property
    def id_ttl_sec(self) -> float:
        ttl = self._id_ttl_ms if self._id_ttl_ms is not None else settings.ECHO_ID_TTL_MS
        return ttl / 1000.0

    def _purge(self, now: float) -> None:
        for entries in (self._fingerprints, self._sent_ids, self._agent_processed_ids):
            expired = [k for k, exp in entries.items() if exp <= now]
            for k in expired:
                del entries[k]

    def mark_sent(self, channel_id: str, body: str) -> None:
        if not channel_id:
            return
        now = self._clock()
        with self._guard:
            self._purge(now)
            self._fingerprints[(channel_id, (body or "").strip())] = now + self.ttl_sec

    def was_sent(self, channel_id: str, body: str) -> bool:
        """One-shot: a hit consumes the fingerprint."""
        now = self._clock()
        key = (channel_id, (body or "").strip())
        with self._guard:
            expiry = self._fingerprints.pop(key, None)
            return expiry is not None and expiry > now

    def mark_sent_id(self, message_id: Optional[str]) -> None:
        if not message_id:
            return
        now = self._clock()
        with self._guard:
            self._purge(now)
            self._sent_ids[message_id] = now + self.id_ttl_sec

    def was_sent_id(self, message_id: Optional[str]) -> bool:
        if not message_id:
            return False
        now = self._clock()
        with self._guard:
            expiry = self._sent_ids.pop(message_id, None)
            return expiry is not None and expiry > now

    def mark_agent_processed(self, message_id: Optional[str]) -> bool:
        """Record an agent message id; False when it was already processed."""
        if not message_id:
            return True
        now = self._clock()
        with self._guard:
            self._purge(now)
            if message_id in self._agent_processed_ids:
                return False
            self._agent_processed_ids[message_id] = now + self.id_ttl_sec
            return True
