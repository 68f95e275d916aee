import threading
import time
from contextlib import contextmanager
from typing import Dict

from salesbot.store.redis_conn import get_redis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_device_locks: Dict[str, threading.Lock] = {}
_registry_guard = threading.Lock()


def _lock_for(device_id: str) -> threading.Lock:
    with _registry_guard:
        lk = _device_locks.get(device_id)
        if lk is None:
            lk = threading.Lock()
            _device_locks[device_id] = lk
        return lk


@contextmanager
def device_lock(device_id: str):
    """
    Serialize event handling per device. Events of different devices never
    wait on each other.
    """
    lk = _lock_for(device_id or "")
    with lk:
        yield


@contextmanager
def config_write_lock(scope: str, ttl_ms: int = 5000, redis_client=None):
    """
    Distributed lock so config writes (validate + uniqueness check + save)
    run one at a time across processes.
    """
    r = redis_client or get_redis()
    key = f"lock:config:{scope}"
    token = f"{time.time()}:{threading.get_ident()}"
    acquired = r.set(key, token, px=ttl_ms, nx=True)

    try:
        if not acquired:
            for _ in range(10):
                time.sleep(0.1)
                if r.set(key, token, px=ttl_ms, nx=True):
                    acquired = True
                    break

            if not acquired:
                raise RuntimeError(f"Could not acquire config lock for {scope}")

        yield
    finally:
        if acquired:
            r.eval(_RELEASE_SCRIPT, 1, key, token)
