import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from layergcrawl import cache
from layergcrawl.system_db import Asset, Chain, OnchainHistory


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.lists = {}
        self.ttls = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = value.encode() if isinstance(value, str) else value
        return True

    def delete(self, *keys):
        count = 0
        for key in keys:
            for store in (self.values, self.lists):
                if key in store:
                    del store[key]
                    count += 1
        return count

    def lpush(self, key, *values):
        lst = self.lists.setdefault(key, [])
        for value in values:
            lst.insert(0, value.encode() if isinstance(value, str) else value)
        return len(lst)

    def lrange(self, key, start, end):
        lst = self.lists.get(key, [])
        return list(lst[start:] if end == -1 else lst[start : end + 1])

    def expire(self, key, ttl):
        self.ttls[key] = ttl
        return True


def _chain(chain_id=1):
    return Chain(
        id=chain_id,
        chain="U2U",
        name="Nebulas",
        rpc_url="https://rpc.example.com",
        chain_id=2484,
        explorer="https://explorer.example.com",
        latest_block=100,
        block_time=500,
    )


def _asset(asset_id="a1", chain_id=1, initial_block=10):
    stamp = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    return Asset(
        id=asset_id,
        chain_id=chain_id,
        contract_address="0x0000000000000000000000000000000000000001",
        created_at=stamp,
        updated_at=stamp,
        initial_block=initial_block,
        last_updated=None,
    )


def _history(tx_hash="0xabc"):
    stamp = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    return OnchainHistory(
        id=uuid.UUID(int=7),
        from_address="0x01",
        to_address="0x02",
        chain_id=1,
        asset_id="a1",
        tx_hash=tx_hash,
        receipt={"status": 1},
        event_type="Transfer",
        timestamp=stamp,
        created_at=stamp,
        updated_at=stamp,
    )


def test_keys():
    assert cache.chain_cache_key(5) == "chain:5"
    assert cache.asset_cache_key(5) == "assets:5"
    assert cache.pending_chain_key() == "pendingChains"
    assert cache.pending_asset_key() == "pendingAssets"
    assert cache.onchain_history_key("0xabc") == "txHash:0xabc"


def test_new_redis_client_settings():
    password = "password"
    client = cache.new_redis_client(
        cache.RedisConfig(url="cachehost:6380", db=3, password=password)
    )
    kwargs = client.connection_pool.connection_kwargs
    assert kwargs["host"] == "cachehost"
    assert kwargs["port"] == 6380
    assert kwargs["db"] == 3
    assert kwargs["password"] == password


def test_new_redis_client_without_port():
    client = cache.new_redis_client(cache.RedisConfig(url="cachehost"))
    kwargs = client.connection_pool.connection_kwargs
    assert kwargs["host"] == "cachehost"
    assert kwargs["port"] == 6379


def test_chain_round_trip_and_delete():
    rdb = FakeRedis()
    chain = _chain(4)
    cache.set_chain_to_cache(rdb, chain)
    assert cache.get_cached_chain(rdb, 4) == chain
    cache.delete_chain_in_cache(rdb, 4)
    with pytest.raises(KeyError):
        cache.get_cached_chain(rdb, 4)


def test_missing_chain_raises():
    with pytest.raises(KeyError):
        cache.get_cached_chain(FakeRedis(), 9)


def test_assets_round_trip_newest_first():
    rdb = FakeRedis()
    first, second = _asset("a1"), _asset("a2", initial_block=None)
    cache.set_assets_to_cache(rdb, [first, second])
    assert cache.get_cached_assets(rdb, 1) == [second, first]
    assert cache.get_cached_assets(rdb, 2) == []


def test_assets_skip_undecodable_entries():
    rdb = FakeRedis()
    asset = _asset("a1")
    cache.set_assets_to_cache(rdb, [asset])
    rdb.lpush(cache.asset_cache_key(1), "not json")
    rdb.lpush(cache.asset_cache_key(1), "0")
    assert cache.get_cached_assets(rdb, 1) == [asset]


def test_delete_chain_assets():
    rdb = FakeRedis()
    cache.set_assets_to_cache(rdb, [_asset()])
    cache.delete_chain_assets_in_cache(rdb, 1)
    assert cache.get_cached_assets(rdb, 1) == []


def test_pending_assets():
    rdb = FakeRedis()
    asset = _asset("p1", chain_id=3)
    cache.set_pending_asset_to_cache(rdb, asset)
    assert cache.get_cached_pending_asset(rdb) == [asset]
    cache.delete_pending_assets_in_cache(rdb)
    assert cache.get_cached_pending_asset(rdb) == []


def test_pending_chains():
    rdb = FakeRedis()
    one, two = _chain(1), _chain(2)
    cache.set_pending_chain_to_cache(rdb, one)
    cache.set_pending_chain_to_cache(rdb, two)
    rdb.lpush(cache.pending_chain_key(), "{broken")
    assert cache.get_cached_pending_chain(rdb) == [two, one]
    cache.delete_pending_chains_in_cache(rdb)
    assert cache.get_cached_pending_chain(rdb) == []


def test_history_round_trip_and_expiry():
    rdb = FakeRedis()
    history = _history()
    cache.set_history_cache(rdb, history)
    assert cache.get_history_cache(rdb, "0xabc") == [history]
    assert rdb.ttls["txHash:0xabc"] == timedelta(minutes=15)


def test_histories_cache_groups_by_hash():
    rdb = FakeRedis()
    a, b, c = _history("0x1"), _history("0x2"), _history("0x1")
    c.chain_id = 2
    cache.set_histories_cache(rdb, [a, b, c])
    assert cache.get_history_cache(rdb, "0x1") == [c, a]
    assert cache.get_history_cache(rdb, "0x2") == [b]


def test_histories_cache_skips_unserialisable():
    rdb = FakeRedis()
    bad = _history("0x1")
    bad.receipt = {"value": object()}
    good = _history("0x2")
    cache.set_histories_cache(rdb, [bad, good])
    assert cache.get_history_cache(rdb, "0x1") == []
    assert cache.get_history_cache(rdb, "0x2") == [good]


def test_get_history_cache_rejects_bad_entry():
    rdb = FakeRedis()
    rdb.lpush(cache.onchain_history_key("0x9"), "garbage")
    with pytest.raises(ValueError):
        cache.get_history_cache(rdb, "0x9")


def test_cached_chain_json_uses_field_names():
    rdb = FakeRedis()
    cache.set_chain_to_cache(rdb, _chain(2))
    stored = json.loads(rdb.values["chain:2"])
    assert stored["rpc_url"] == "https://rpc.example.com"
    assert stored["latest_block"] == 100