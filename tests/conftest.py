import itertools
import uuid

import pytest
from unittest.mock import MagicMock

from salesbot.api.schemas import InboundMessage
from salesbot.core.config_resolver import ConfigResolver
from salesbot.core.echo import EchoSuppressor
from salesbot.core.orchestrator import ConversationEngine
from salesbot.intel.ocr import Recognition
from salesbot.store.config_repo import ConfigRepository
from salesbot.store.state_store import ConversationStateStore

DEVICE = "dev1"
CONTACT = "5511999990000"
CHANNEL = f"{CONTACT}@c.us"
DEVICE_PHONE = "5511888880000"


class FakeRedis:
    """Just enough of redis-py for the config repository and its lock."""

    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, px=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    def incr(self, key):
        self.data[key] = int(self.data.get(key) or 0) + 1
        return self.data[key]

    def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    def eval(self, script, numkeys, key, token):
        if self.data.get(key) == token:
            del self.data[key]
            return 1
        return 0


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def repo(fake_redis):
    return ConfigRepository(redis_client=fake_redis)


@pytest.fixture
def resolver(repo):
    return ConfigResolver(repo=repo, ttl_sec=60)


@pytest.fixture
def transport():
    t = MagicMock()
    ids = itertools.count(1)
    t.send.side_effect = lambda *a, **k: f"out-{next(ids)}"
    t.download_media.return_value = b"image-bytes"
    t.get_quoted_message.return_value = None
    return t


@pytest.fixture
def ocr():
    o = MagicMock()
    o.recognize.return_value = Recognition(text="")
    return o


@pytest.fixture
def provisioning():
    p = MagicMock()
    p.request_trial.return_value = "Usuario: cliente01\nSenha: s3nha"
    return p


@pytest.fixture
def follow_ups():
    return MagicMock()


@pytest.fixture
def engine(resolver, transport, ocr, provisioning, follow_ups):
    return ConversationEngine(
        store=ConversationStateStore(),
        resolver=resolver,
        transport=transport,
        ocr=ocr,
        provisioning=provisioning,
        follow_ups=follow_ups,
        echo=EchoSuppressor(ttl_ms=15000),
    )


def contact_msg(body="", **kw):
    data = {
        "deviceId": DEVICE,
        "channelId": CHANNEL,
        "senderId": CHANNEL,
        "body": body,
        "messageId": f"in-{uuid.uuid4().hex[:8]}",
        "contactName": "Ana",
        "sessionName": "loja",
        "devicePhone": DEVICE_PHONE,
    }
    data.update(kw)
    return InboundMessage(**data)


def agent_msg(body="", **kw):
    data = {
        "deviceId": DEVICE,
        "channelId": CHANNEL,
        "senderId": f"{DEVICE_PHONE}@c.us",
        "body": body,
        "isFromSelf": True,
        "messageId": f"ag-{uuid.uuid4().hex[:8]}",
        "sessionName": "loja",
        "devicePhone": DEVICE_PHONE,
    }
    data.update(kw)
    return InboundMessage(**data)


def sent_texts(transport):
    return [c.args[2] for c in transport.send.call_args_list]
