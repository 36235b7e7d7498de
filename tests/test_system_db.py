import uuid
from datetime import datetime, timedelta, timezone

import pytest
import sqlalchemy as sa

from layergcrawl.system_db import (
    Asset,
    Chain,
    NoRowsError,
    OnchainHistory,
    Queries,
    asset_from_dict,
    chain_from_dict,
    metadata,
    onchain_history_from_dict,
)


@pytest.fixture
def engine(tmp_path):
    eng = sa.create_engine(f"sqlite:///{tmp_path / 'system.sqlite'}")
    metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def queries(engine):
    return Queries(engine)


def _add_chain(queries, chain_pk=1):
    return queries.create_chain(
        chain_pk, "U2U", "Nebulas", "http://localhost:8545", 2484, "http://localhost", 100, 1
    )


def test_create_chain_returns_stored_row(queries):
    chain = _add_chain(queries)
    assert chain == Chain(
        id=1,
        chain="U2U",
        name="Nebulas",
        rpc_url="http://localhost:8545",
        chain_id=2484,
        explorer="http://localhost",
        latest_block=100,
        block_time=1,
    )
    assert queries.get_chain_by_id(1) == chain


def test_get_chain_by_id_missing(queries):
    with pytest.raises(NoRowsError):
        queries.get_chain_by_id(42)


def test_get_all_chain(queries):
    assert queries.get_all_chain() == []
    first = _add_chain(queries, 1)
    second = _add_chain(queries, 2)
    assert sorted(queries.get_all_chain(), key=lambda c: c.id) == [first, second]


def test_update_chain_latest_block(queries):
    _add_chain(queries)
    queries.update_chain_latest_block(1, 5000)
    assert queries.get_chain_by_id(1).latest_block == 5000


def test_create_and_get_asset(queries):
    asset = queries.create_asset("2484:0xabc", 2484, "0xabc", None)
    assert asset.initial_block is None
    assert asset.last_updated is None
    assert queries.get_asset_by_address(2484, "0xabc") == asset
    with_block = queries.create_asset("2484:0xdef", 2484, "0xdef", 77)
    assert with_block.initial_block == 77


def test_get_asset_by_address_missing(queries):
    queries.create_asset("1:0xabc", 1, "0xabc", None)
    with pytest.raises(NoRowsError):
        queries.get_asset_by_address(2, "0xabc")


def test_duplicate_asset_rejected(queries):
    queries.create_asset("1:0xabc", 1, "0xabc", None)
    with pytest.raises(sa.exc.IntegrityError):
        queries.create_asset("1:0xabc", 1, "0xabc", None)


def test_paginated_assets(queries):
    ids = {f"1:0x{n}" for n in range(3)}
    for asset_id in ids:
        queries.create_asset(asset_id, 1, asset_id.split(":")[1], None)
    queries.create_asset("2:0xother", 2, "0xother", None)
    page1 = queries.get_paginated_assets_by_chain_id(1, 2, 0)
    page2 = queries.get_paginated_assets_by_chain_id(1, 2, 2)
    assert len(page1) == 2
    assert len(page2) == 1
    assert {a.id for a in page1 + page2} == ids
    assert all(a.chain_id == 1 for a in page1 + page2)


def test_onchain_histories_ordered_and_limited(queries):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for n in range(3):
        queries.create_onchain_history(
            "0xfrom", "0xto", 1, "asset", f"0xtx{n}", {"n": n}, "Transfer",
            base + timedelta(minutes=n),
        )
    queries.create_onchain_history("0xa", "0xb", 1, "other", "0xz", None, None, base)
    histories = queries.get_onchain_histories_by_asset("asset", 2)
    assert [h.tx_hash for h in histories] == ["0xtx2", "0xtx1"]
    assert histories[0].receipt == {"n": 2}
    assert histories[0].timestamp == base + timedelta(minutes=2)


def test_create_onchain_history_fields(queries):
    stamp = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
    history = queries.create_onchain_history(
        "0xfrom", "0xto", 3, "asset", "0xtx", [1, 2], None, stamp
    )
    assert isinstance(history.id, uuid.UUID)
    assert history.from_address == "0xfrom"
    assert history.to_address == "0xto"
    assert history.event_type is None
    assert history.receipt == [1, 2]
    assert history.timestamp == stamp


def test_connection_transaction_rollback(engine):
    with engine.connect() as conn:
        scoped = Queries(conn)
        _add_chain(scoped)
        assert len(scoped.get_all_chain()) == 1
        conn.rollback()
    assert Queries(engine).get_all_chain() == []


def test_chain_dict_round_trip():
    chain = Chain(7, "U2U", "Nebulas", "http://localhost", 2484, "http://localhost", 9, 2)
    data = chain.to_dict()
    assert set(data) == {
        "id", "chain", "name", "rpc_url", "chain_id", "explorer", "latest_block", "block_time",
    }
    assert chain_from_dict(data) == chain


def test_asset_dict_round_trip():
    stamp = datetime(2024, 1, 2, 3, 4, 5, 120000, tzinfo=timezone.utc)
    asset = Asset("1:0xabc", 1, "0xabc", stamp, stamp, 12, stamp)
    assert asset_from_dict(asset.to_dict()) == asset
    empty = Asset("1:0xabc", 1, "0xabc", stamp, stamp, None, None)
    data = empty.to_dict()
    assert data["initial_block"] == {"Int64": 0, "Valid": False}
    assert data["last_updated"]["Valid"] is False
    assert asset_from_dict(data) == empty


def test_onchain_history_dict_round_trip():
    stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    history = OnchainHistory(
        uuid.uuid4(), "0xfrom", "0xto", 1, "asset", "0xtx", {"logs": []}, "Transfer",
        stamp, stamp, stamp,
    )
    data = history.to_dict()
    assert data["from"] == "0xfrom"
    assert data["event_type"] == {"String": "Transfer", "Valid": True}
    assert onchain_history_from_dict(data) == history
    no_event = OnchainHistory(uuid.uuid4(), "a", "b", 1, "x", "t", None, None, stamp, stamp, stamp)
    assert onchain_history_from_dict(no_event.to_dict()) == no_event


def test_time_format_is_rfc3339():
    stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    chain_asset = Asset("1:0x", 1, "0x", stamp, stamp)
    assert chain_asset.to_dict()["created_at"] == "2024-01-02T03:04:05Z"
    assert asset_from_dict({"id": "x", "created_at": "2024-01-02T03:04:05.123456789Z"}).created_at == (
        datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)
    )