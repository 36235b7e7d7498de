"""Redis cache of chains, tracked assets and recent on-chain history."""

from __future__ import annotations

import json
from contextlib import suppress
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, TypeVar

import redis

from .system_db import (
    Asset,
    Chain,
    OnchainHistory,
    asset_from_dict,
    chain_from_dict,
    onchain_history_from_dict,
)

HISTORY_TTL = timedelta(minutes=15)
DEFAULT_REDIS_PORT = 6379

_T = TypeVar("_T")


@dataclass
class RedisConfig:
    url: str = ""
    db: int = 0
    password: str = ""


def new_redis_client(cfg: RedisConfig) -> redis.Redis:
    """Build a client for a ``host:port`` address; no connection is made yet."""
    address = cfg.url or f"localhost:{DEFAULT_REDIS_PORT}"
    host, sep, port = address.rpartition(":")
    if not sep:
        host, port = address, str(DEFAULT_REDIS_PORT)
    return redis.Redis(
        host=host or "localhost",
        port=int(port) if port else DEFAULT_REDIS_PORT,
        db=cfg.db,
        password=cfg.password or None,
    )


def chain_cache_key(chain_id: int) -> str:
    return f"chain:{chain_id}"


def asset_cache_key(chain_id: int) -> str:
    return f"assets:{chain_id}"


def pending_chain_key() -> str:
    return "pendingChains"


def pending_asset_key() -> str:
    return "pendingAssets"


def onchain_history_key(tx_hash: str) -> str:
    return f"txHash:{tx_hash}"


def _decode_list(
    raw: list[Any], convert: Callable[[dict[str, Any]], _T]
) -> list[_T]:
    """Decode JSON list entries, skipping those that are not valid records."""
    result: list[_T] = []
    for entry in raw:
        try:
            data = json.loads(entry)
            if not isinstance(data, dict):
                continue
            result.append(convert(data))
        except (ValueError, TypeError, AttributeError):
            continue
    return result


def get_cached_chain(rdb: redis.Redis, chain_id: int) -> Chain | None:
    """Return the cached chain; raises KeyError when nothing is cached."""
    key = chain_cache_key(chain_id)
    raw = rdb.get(key)
    if raw is None:
        raise KeyError(key)
    data = json.loads(raw)
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"cached chain under {key} is not an object")
    return chain_from_dict(data)


def set_chain_to_cache(rdb: redis.Redis, chain: Chain) -> None:
    rdb.set(chain_cache_key(chain.id), json.dumps(chain.to_dict()))


def delete_chain_in_cache(rdb: redis.Redis, chain_id: int) -> None:
    rdb.delete(chain_cache_key(chain_id))


def get_cached_assets(rdb: redis.Redis, chain_id: int) -> list[Asset]:
    """Cached assets of a chain, newest first; undecodable entries are skipped."""
    return _decode_list(rdb.lrange(asset_cache_key(chain_id), 0, -1), asset_from_dict)


def set_assets_to_cache(rdb: redis.Redis, assets: list[Asset]) -> None:
    for asset in assets:
        rdb.lpush(asset_cache_key(asset.chain_id), json.dumps(asset.to_dict()))


def delete_chain_assets_in_cache(rdb: redis.Redis, chain_id: int) -> None:
    rdb.delete(asset_cache_key(chain_id))


def get_cached_pending_asset(rdb: redis.Redis) -> list[Asset]:
    """Assets waiting to be picked up; undecodable entries are skipped."""
    return _decode_list(rdb.lrange(pending_asset_key(), 0, -1), asset_from_dict)


def set_pending_asset_to_cache(rdb: redis.Redis, asset: Asset) -> None:
    rdb.lpush(pending_asset_key(), json.dumps(asset.to_dict()))


def delete_pending_assets_in_cache(rdb: redis.Redis) -> None:
    rdb.delete(pending_asset_key())


def get_cached_pending_chain(rdb: redis.Redis) -> list[Chain]:
    """Chains waiting to be picked up; undecodable entries are skipped."""
    return _decode_list(rdb.lrange(pending_chain_key(), 0, -1), chain_from_dict)


def set_pending_chain_to_cache(rdb: redis.Redis, chain: Chain) -> None:
    rdb.lpush(pending_chain_key(), json.dumps(chain.to_dict()))


def delete_pending_chains_in_cache(rdb: redis.Redis) -> None:
    rdb.delete(pending_chain_key())


def set_histories_cache(rdb: redis.Redis, histories: list[OnchainHistory]) -> None:
    """Cache each history; a failure for one entry does not stop the others."""
    for history in histories:
        with suppress(redis.RedisError, TypeError, ValueError):
            set_history_cache(rdb, history)


def set_history_cache(rdb: redis.Redis, history: OnchainHistory) -> None:
    """Push a history under its transaction hash, expiring after 15 minutes."""
    payload = json.dumps(history.to_dict())
    key = onchain_history_key(history.tx_hash)
    rdb.lpush(key, payload)
    rdb.expire(key, HISTORY_TTL)


def get_history_cache(rdb: redis.Redis, tx_hash: str) -> list[OnchainHistory]:
    """Cached histories of a transaction; raises ValueError on a bad entry."""
    histories: list[OnchainHistory] = []
    for entry in rdb.lrange(onchain_history_key(tx_hash), 0, -1):
        data = json.loads(entry)
        if not isinstance(data, dict):
            raise ValueError("cached history is not an object")
        histories.append(onchain_history_from_dict(data))
    return histories