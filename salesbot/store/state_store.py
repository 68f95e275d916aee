"""
In-process conversation state, keyed by contact key ``(deviceId, phoneDigits)``.

Pending identifier requests and the channel -> phone cache are keyed by
``(deviceId, chatId)`` because the channel a human agent types in is not
always the contact's own.
"""
import threading
from dataclasses import asdict, replace
from typing import Dict, Optional, Tuple

from salesbot.core import states as st
from salesbot.store.models import ConversationState, PendingIdentifierRequest
from salesbot.utils.time import now_ms

ContactKey = Tuple[str, str]


class ConversationStateStore:
    def __init__(self):
        self._states: Dict[ContactKey, ConversationState] = {}
        self._pending: Dict[Tuple[str, str], PendingIdentifierRequest] = {}
        self._chat_phones: Dict[Tuple[str, str], str] = {}
        self._chat_names: Dict[Tuple[str, str], str] = {}
        self._guard = threading.Lock()

    # --- conversation state ---------------------------------------------------
    def get(self, key: ContactKey) -> ConversationState:
        with self._guard:
            state = self._states.get(key)
            return replace(state) if state else ConversationState()

    def set(self, key: ContactKey, state: ConversationState) -> ConversationState:
        state.updatedAtMs = now_ms()
        with self._guard:
            if state.kind == st.IDLE:
                self._states.pop(key, None)
            else:
                self._states[key] = replace(state)
        return state

    def clear(self, key: ContactKey) -> None:
        with self._guard:
            self._states.pop(key, None)

    # --- pending identifier requests -----------------------------------------
    def get_pending(self, device_id: str, chat_id: str) -> Optional[PendingIdentifierRequest]:
        with self._guard:
            return self._pending.get((device_id, chat_id))

    def put_pending(self, req: PendingIdentifierRequest) -> None:
        if not req.createdAtMs:
            req.createdAtMs = now_ms()
        with self._guard:
            self._pending[(req.deviceId, req.chatId)] = req

    def pop_pending(self, device_id: str, chat_id: str) -> Optional[PendingIdentifierRequest]:
        with self._guard:
            return self._pending.pop((device_id, chat_id), None)

    # --- channel -> phone / display name cache -------------------------------
    def remember_phone(self, device_id: str, chat_id: str, phone: str) -> None:
        if not chat_id or not phone:
            return
        with self._guard:
            self._chat_phones[(device_id, chat_id)] = phone

    def phone_for(self, device_id: str, chat_id: str) -> Optional[str]:
        with self._guard:
            return self._chat_phones.get((device_id, chat_id))

    def remember_name(self, device_id: str, chat_id: str, name: str) -> None:
        if chat_id and name:
            with self._guard:
                self._chat_names[(device_id, chat_id)] = name

    def name_for(self, device_id: str, chat_id: str) -> str:
        with self._guard:
            return self._chat_names.get((device_id, chat_id), "")

    def snapshot(self, key: ContactKey) -> dict:
        return asdict(self.get(key))
