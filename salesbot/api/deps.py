"""Process-wide engine, built on first use so importing the app stays cheap."""
import threading
from typing import Optional

from salesbot.core.orchestrator import ConversationEngine

_engine: Optional[ConversationEngine] = None
_guard = threading.Lock()


def get_engine() -> ConversationEngine:
    global _engine
    with _guard:
        if _engine is None:
            _engine = ConversationEngine()
            _engine.follow_ups.set_sender(_engine.send_follow_up)
        return _engine


def get_resolver():
    return get_engine().resolver
