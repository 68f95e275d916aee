"""
Durable one-shot reminders ("how was the trial?") per conversation.

Independent of in-memory conversation state: records live in the follow-up
file and survive restarts. ``tick()`` may run on its own thread while events
are processed; every access to the record map goes through one lock.
"""
import threading
import uuid
from typing import Callable, Dict, List, Optional

from salesbot.errors import SessionNotReady
from salesbot.observability.logging import log
from salesbot.settings import settings
from salesbot.store.follow_up_store import FollowUpStore
from salesbot.store.models import FollowUpRecord
from salesbot.utils.time import now_iso, now_ms, parse_timestamp_ms

Sender = Callable[[FollowUpRecord, str], None]


def build_follow_up_message(rec: FollowUpRecord) -> str:
    name = (rec.clientName or "").strip()
    return f"Seu teste terminou. {name + ', ' if name else ''}como foi o teste?"


class FollowUpScheduler:
    def __init__(self, store: Optional[FollowUpStore] = None, delay_sec: Optional[int] = None):
        self.store = store or FollowUpStore(settings.FOLLOW_UP_STORAGE_PATH)
        self.delay_sec = delay_sec if delay_sec is not None else settings.FOLLOW_UP_DELAY_SEC
        self._sender: Optional[Sender] = None
        self._records: Dict[str, FollowUpRecord] = {}
        self._guard = threading.RLock()
        self._loaded = False

    def set_sender(self, fn: Sender) -> None:
        self._sender = fn

    def load(self) -> None:
        with self._guard:
            for rec in self.store.load():
                self._records[rec.key] = rec
            self._loaded = True
            log(event="follow_up_loaded", records=len(self._records))

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _persist(self) -> None:
        self.store.save(list(self._records.values()))

    def records(self) -> List[FollowUpRecord]:
        with self._guard:
            self._ensure_loaded()
            return list(self._records.values())

    def schedule(self, contact_phone: str, chat_id: str, client_name: str = "", session_name: str = "",
                 device_id: Optional[str] = None, created_at: Optional[str] = None) -> FollowUpRecord:
        rec = FollowUpRecord(
            id=str(uuid.uuid4()),
            contactPhone=contact_phone or "",
            chatId=chat_id,
            createdAt=created_at or now_iso(),
            clientName=client_name or "",
            sessionName=session_name or "",
            deviceId=device_id,
        )
        with self._guard:
            self._ensure_loaded()
            # latest schedule for the same channel replaces the pending one
            self._records[rec.key] = rec
            self._persist()
        log(event="follow_up_scheduled", chatId=chat_id, deviceId=device_id, recordId=rec.id)
        return rec

    def _due(self, now: int) -> List[FollowUpRecord]:
        due = []
        for rec in self._records.values():
            created = parse_timestamp_ms(rec.createdAt)
            if created is None:
                continue
            if now - created >= self.delay_sec * 1000:
                due.append(rec)
        return due

    def tick(self, now: Optional[int] = None) -> int:
        """
        Deliver due reminders. Returns how many were sent.

        The sender runs outside the lock so ``schedule()`` from message
        processing never waits on a slow or offline session.
        """
        now = now if now is not None else now_ms()
        with self._guard:
            self._ensure_loaded()
            due = self._due(now)
        if not due:
            return 0
        if self._sender is None:
            log(event="follow_up_sender_missing", due=len(due))
            return 0

        sent = 0
        for rec in due:
            try:
                self._sender(rec, build_follow_up_message(rec))
            except SessionNotReady:
                log(event="follow_up_session_not_ready", chatId=rec.chatId, deviceId=rec.deviceId)
                continue
            except Exception as e:
                log(
                    event="follow_up_send_failed",
                    chatId=rec.chatId,
                    deviceId=rec.deviceId,
                    errorType=getattr(e, "code", type(e).__name__),
                    error=str(e)[:300],
                )
                continue
            with self._guard:
                # a newer schedule for the same key may have landed meanwhile
                if self._records.get(rec.key) is rec:
                    del self._records[rec.key]
                    self._persist()
            sent += 1
            log(event="follow_up_sent", chatId=rec.chatId, deviceId=rec.deviceId)
        return sent

    def run_forever(self, interval_sec: Optional[int] = None, stop: Optional[threading.Event] = None) -> None:
        interval = interval_sec or settings.FOLLOW_UP_TICK_SEC
        stop = stop or threading.Event()
        while not stop.is_set():
            try:
                self.tick()
            except Exception as e:
                log(event="follow_up_tick_failed", errorType=type(e).__name__, error=str(e)[:300])
            stop.wait(interval)
