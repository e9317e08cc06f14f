import threading

from docvault.infrastructure.security import token_blacklist
from docvault.infrastructure.security.token_blacklist import (
    InMemoryTokenBlacklist,
    RedisTokenBlacklist,
)


class FakeRedis:
    def __init__(self):
        self.sets = {}

    def sadd(self, key, value):
        self.sets.setdefault(key, set()).add(value)
        return 1

    def sismember(self, key, value):
        return int(value in self.sets.get(key, set()))


def test_in_memory_membership():
    blacklist = InMemoryTokenBlacklist()
    assert not blacklist.contains("t1")
    blacklist.add("t1")
    blacklist.add("t1")
    assert blacklist.contains("t1")
    assert len(blacklist) == 1


def test_in_memory_concurrent_inserts():
    blacklist = InMemoryTokenBlacklist()

    def worker(prefix):
        for i in range(200):
            blacklist.add(f"{prefix}-{i}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(blacklist) == 8 * 200
    assert blacklist.contains("7-199")


def test_redis_blacklist_uses_set_commands():
    client = FakeRedis()
    blacklist = RedisTokenBlacklist(client, key="bl")

    blacklist.add("t1")

    assert client.sets == {"bl": {"t1"}}
    assert blacklist.contains("t1") is True
    assert blacklist.contains("t2") is False


def test_build_blacklist_defaults_to_memory():
    assert isinstance(token_blacklist.build_blacklist(redis_url=""), InMemoryTokenBlacklist)


def test_get_blacklist_is_shared(monkeypatch):
    monkeypatch.setattr(token_blacklist, "_default", None)
    monkeypatch.setattr(token_blacklist, "BLACKLIST_REDIS_URL", None)
    assert token_blacklist.get_blacklist() is token_blacklist.get_blacklist()
