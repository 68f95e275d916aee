import threading

import pytest
from unittest.mock import MagicMock

from salesbot.core.follow_up import FollowUpScheduler, build_follow_up_message
from salesbot.errors import SessionNotReady
from salesbot.store.follow_up_store import FollowUpStore
from salesbot.utils.time import parse_timestamp_ms

CREATED = "2024-01-01T00:00:00Z"
DELAY = 4 * 60 * 60


@pytest.fixture
def scheduler(tmp_path):
    return FollowUpScheduler(store=FollowUpStore(str(tmp_path / "followups.json")), delay_sec=DELAY)


def _due_at():
    return parse_timestamp_ms(CREATED) + DELAY * 1000


def test_message_uses_client_name():
    sched = FollowUpScheduler(store=MagicMock(), delay_sec=1)
    rec = sched.schedule("+5511999990000", "c1@c.us", client_name="Ana", created_at=CREATED)
    assert build_follow_up_message(rec) == "Seu teste terminou. Ana, como foi o teste?"
    rec.clientName = ""
    assert build_follow_up_message(rec) == "Seu teste terminou. como foi o teste?"


def test_latest_schedule_wins(scheduler):
    sender = MagicMock()
    scheduler.set_sender(sender)
    scheduler.schedule("+5511999990000", "c1@c.us", client_name="Ana", session_name="loja", created_at=CREATED)
    scheduler.schedule("+5511999990000", "c1@c.us", client_name="Ana B", session_name="loja", created_at=CREATED)

    assert len(scheduler.records()) == 1
    assert scheduler.tick(now=_due_at()) == 1
    sender.assert_called_once()
    assert sender.call_args.args[0].clientName == "Ana B"
    assert scheduler.records() == []


def test_not_due_yet(scheduler):
    sender = MagicMock()
    scheduler.set_sender(sender)
    scheduler.schedule("+55", "c1@c.us", created_at=CREATED)
    assert scheduler.tick(now=_due_at() - 1) == 0
    sender.assert_not_called()


def test_session_not_ready_keeps_record(scheduler):
    scheduler.set_sender(MagicMock(side_effect=SessionNotReady("offline")))
    scheduler.schedule("+55", "c1@c.us", created_at=CREATED)
    assert scheduler.tick(now=_due_at()) == 0
    assert len(scheduler.records()) == 1


def test_other_failure_keeps_record_and_continues(scheduler):
    sender = MagicMock(side_effect=[RuntimeError("boom"), None])
    scheduler.set_sender(sender)
    scheduler.schedule("+55", "c1@c.us", session_name="a", created_at=CREATED)
    scheduler.schedule("+55", "c2@c.us", session_name="a", created_at=CREATED)

    assert scheduler.tick(now=_due_at()) == 1
    assert sender.call_count == 2
    assert [r.chatId for r in scheduler.records()] == ["c1@c.us"]


def test_no_sender_keeps_records(scheduler):
    scheduler.schedule("+55", "c1@c.us", created_at=CREATED)
    assert scheduler.tick(now=_due_at()) == 0
    assert len(scheduler.records()) == 1


def test_records_survive_restart(tmp_path):
    path = str(tmp_path / "followups.json")
    FollowUpScheduler(store=FollowUpStore(path), delay_sec=DELAY).schedule("+55", "c1@c.us", created_at=CREATED)

    restarted = FollowUpScheduler(store=FollowUpStore(path), delay_sec=DELAY)
    sender = MagicMock()
    restarted.set_sender(sender)
    assert restarted.tick(now=_due_at()) == 1
    assert FollowUpStore(path).load() == []


def test_schedule_does_not_wait_for_a_slow_sender(scheduler):
    entered = threading.Event()
    release = threading.Event()

    def slow_sender(rec, text):
        entered.set()
        release.wait(timeout=5)

    scheduler.set_sender(slow_sender)
    scheduler.schedule("+5511999990000", "c1@c.us", session_name="loja", device_id="dev1", created_at=CREATED)

    ticker = threading.Thread(target=scheduler.tick, kwargs={"now": _due_at()})
    ticker.start()
    assert entered.wait(timeout=2)

    other = threading.Thread(
        target=scheduler.schedule,
        args=("+5511888880000", "c2@c.us"),
        kwargs={"session_name": "outra", "device_id": "dev2"},
    )
    other.start()
    other.join(timeout=1)
    blocked = other.is_alive()

    release.set()
    ticker.join(timeout=5)
    other.join(timeout=5)

    assert blocked is False
    assert [r.chatId for r in scheduler.records()] == ["c2@c.us"]
