"""System tables: chains, tracked assets and on-chain transfer history."""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine


class NoRowsError(LookupError):
    """Raised when a single-row query finds nothing."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


metadata = sa.MetaData()

chains = sa.Table(
    "chains",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
    sa.Column("chain", sa.String, nullable=False),
    sa.Column("name", sa.String, nullable=False),
    sa.Column("rpc_url", sa.String, nullable=False),
    sa.Column("chain_id", sa.BigInteger, nullable=False),
    sa.Column("explorer", sa.String, nullable=False),
    sa.Column("latest_block", sa.BigInteger, nullable=False),
    sa.Column("block_time", sa.Integer, nullable=False),
)

assets = sa.Table(
    "assets",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("chain_id", sa.Integer, nullable=False),
    sa.Column("contract_address", sa.String, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=_now),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, default=_now),
    sa.Column("initial_block", sa.BigInteger, nullable=True),
    sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
)

onchain_histories = sa.Table(
    "onchain_histories",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column("from", sa.String, nullable=False),
    sa.Column("to", sa.String, nullable=False),
    sa.Column("chain_id", sa.Integer, nullable=False),
    sa.Column("asset_id", sa.String, nullable=False),
    sa.Column("tx_hash", sa.String, nullable=False),
    sa.Column("receipt", sa.JSON, nullable=True),
    sa.Column("event_type", sa.String, nullable=True),
    sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=_now),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, default=_now),
)


# --- JSON helpers ----------------------------------------------------------

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_TIME_RE = re.compile(
    r"(-?\d{4,})-(\d{2})-(\d{2})[T ](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})?"
)


def _format_time(value: datetime) -> str:
    """RFC 3339 text with trailing fraction zeros removed."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset >= timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _parse_time(text: Any) -> datetime:
    if isinstance(text, datetime):
        return text
    if not isinstance(text, str):
        raise ValueError(f"expected a time string, got {text!r}")
    match = _TIME_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"cannot parse time {text!r}")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    micro = int(((match.group(7) or "") + "000000")[:6])
    zone = match.group(8)
    if zone is None or zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)


def _null_int64_to_json(value: int | None) -> dict[str, Any]:
    return {"Int64": 0 if value is None else value, "Valid": value is not None}


def _null_int64_from_json(value: Any) -> int | None:
    if isinstance(value, dict):
        return int(value.get("Int64", 0)) if value.get("Valid") else None
    return None if value is None else int(value)


def _null_time_to_json(value: datetime | None) -> dict[str, Any]:
    return {
        "Time": _format_time(_ZERO_TIME if value is None else value),
        "Valid": value is not None,
    }


def _null_time_from_json(value: Any) -> datetime | None:
    if isinstance(value, dict):
        return _parse_time(value.get("Time")) if value.get("Valid") else None
    return None if value is None else _parse_time(value)


def _null_string_to_json(value: str | None) -> dict[str, Any]:
    return {"String": "" if value is None else value, "Valid": value is not None}


def _null_string_from_json(value: Any) -> str | None:
    if isinstance(value, dict):
        return str(value.get("String", "")) if value.get("Valid") else None
    return None if value is None else str(value)


# --- models ----------------------------------------------------------------


@dataclass
class Asset:
    id: str
    chain_id: int
    contract_address: str
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    initial_block: int | None = None
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form used in the cache."""
        return {
            "id": self.id,
            "chain_id": self.chain_id,
            "contract_address": self.contract_address,
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
            "initial_block": _null_int64_to_json(self.initial_block),
            "last_updated": _null_time_to_json(self.last_updated),
        }


@dataclass
class Chain:
    id: int
    chain: str
    name: str
    rpc_url: str
    chain_id: int
    explorer: str
    latest_block: int
    block_time: int

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form used in the cache and API."""
        return {
            "id": self.id,
            "chain": self.chain,
            "name": self.name,
            "rpc_url": self.rpc_url,
            "chain_id": self.chain_id,
            "explorer": self.explorer,
            "latest_block": self.latest_block,
            "block_time": self.block_time,
        }


@dataclass
class OnchainHistory:
    id: uuid.UUID
    from_address: str
    to_address: str
    chain_id: int
    asset_id: str
    tx_hash: str
    receipt: Any = None
    event_type: str | None = None
    timestamp: datetime = field(default_factory=_now)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form; ``receipt`` is embedded as JSON."""
        return {
            "id": str(self.id),
            "from": self.from_address,
            "to": self.to_address,
            "chain_id": self.chain_id,
            "asset_id": self.asset_id,
            "tx_hash": self.tx_hash,
            "receipt": self.receipt,
            "event_type": _null_string_to_json(self.event_type),
            "timestamp": _format_time(self.timestamp),
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
        }


def asset_from_dict(data: dict[str, Any]) -> Asset:
    """Rebuild an Asset from its JSON form."""
    return Asset(
        id=str(data.get("id", "")),
        chain_id=int(data.get("chain_id", 0)),
        contract_address=str(data.get("contract_address", "")),
        created_at=_parse_time(data.get("created_at", _format_time(_ZERO_TIME))),
        updated_at=_parse_time(data.get("updated_at", _format_time(_ZERO_TIME))),
        initial_block=_null_int64_from_json(data.get("initial_block")),
        last_updated=_null_time_from_json(data.get("last_updated")),
    )


def chain_from_dict(data: dict[str, Any]) -> Chain:
    """Rebuild a Chain from its JSON form."""
    return Chain(
        id=int(data.get("id", 0)),
        chain=str(data.get("chain", "")),
        name=str(data.get("name", "")),
        rpc_url=str(data.get("rpc_url", "")),
        chain_id=int(data.get("chain_id", 0)),
        explorer=str(data.get("explorer", "")),
        latest_block=int(data.get("latest_block", 0)),
        block_time=int(data.get("block_time", 0)),
    )


def onchain_history_from_dict(data: dict[str, Any]) -> OnchainHistory:
    """Rebuild an OnchainHistory from its JSON form."""
    zero = _format_time(_ZERO_TIME)
    return OnchainHistory(
        id=uuid.UUID(str(data.get("id", uuid.UUID(int=0)))),
        from_address=str(data.get("from", "")),
        to_address=str(data.get("to", "")),
        chain_id=int(data.get("chain_id", 0)),
        asset_id=str(data.get("asset_id", "")),
        tx_hash=str(data.get("tx_hash", "")),
        receipt=data.get("receipt"),
        event_type=_null_string_from_json(data.get("event_type")),
        timestamp=_parse_time(data.get("timestamp", zero)),
        created_at=_parse_time(data.get("created_at", zero)),
        updated_at=_parse_time(data.get("updated_at", zero)),
    )


# --- row mapping -----------------------------------------------------------


def _asset_row(row: sa.Row) -> Asset:
    m = row._mapping
    return Asset(
        id=m["id"],
        chain_id=m["chain_id"],
        contract_address=m["contract_address"],
        created_at=_to_utc(m["created_at"]),
        updated_at=_to_utc(m["updated_at"]),
        initial_block=m["initial_block"],
        last_updated=_to_utc(m["last_updated"]),
    )


def _chain_row(row: sa.Row) -> Chain:
    m = row._mapping
    return Chain(
        id=m["id"],
        chain=m["chain"],
        name=m["name"],
        rpc_url=m["rpc_url"],
        chain_id=m["chain_id"],
        explorer=m["explorer"],
        latest_block=m["latest_block"],
        block_time=m["block_time"],
    )


def _history_row(row: sa.Row) -> OnchainHistory:
    m = row._mapping
    return OnchainHistory(
        id=m["id"],
        from_address=m["from"],
        to_address=m["to"],
        chain_id=m["chain_id"],
        asset_id=m["asset_id"],
        tx_hash=m["tx_hash"],
        receipt=m["receipt"],
        event_type=m["event_type"],
        timestamp=_to_utc(m["timestamp"]),
        created_at=_to_utc(m["created_at"]),
        updated_at=_to_utc(m["updated_at"]),
    )


# --- queries ---------------------------------------------------------------


class Queries:
    """Queries on the system tables.

    Given an Engine, each call runs in its own transaction; given a
    Connection, calls join whatever transaction the caller manages.
    """

    def __init__(self, db: Engine | Connection) -> None:
        self._db = db

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        if isinstance(self._db, Engine):
            with self._db.begin() as conn:
                yield conn
        else:
            yield self._db

    @staticmethod
    def _one(conn: Connection, stmt: sa.Select, convert, what: str):
        row = conn.execute(stmt).first()
        if row is None:
            raise NoRowsError(f"no {what} found")
        return convert(row)

    def create_asset(
        self, id: str, chain_id: int, contract_address: str, initial_block: int | None
    ) -> Asset:
        with self._connection() as conn:
            conn.execute(
                assets.insert().values(
                    id=id,
                    chain_id=chain_id,
                    contract_address=contract_address,
                    initial_block=initial_block,
                )
            )
            return self._one(
                conn, sa.select(assets).where(assets.c.id == id), _asset_row, "asset"
            )

    def create_chain(
        self,
        id: int,
        chain: str,
        name: str,
        rpc_url: str,
        chain_id: int,
        explorer: str,
        latest_block: int,
        block_time: int,
    ) -> Chain:
        with self._connection() as conn:
            conn.execute(
                chains.insert().values(
                    id=id,
                    chain=chain,
                    name=name,
                    rpc_url=rpc_url,
                    chain_id=chain_id,
                    explorer=explorer,
                    latest_block=latest_block,
                    block_time=block_time,
                )
            )
            return self._one(
                conn, sa.select(chains).where(chains.c.id == id), _chain_row, "chain"
            )

    def create_onchain_history(
        self,
        from_address: str,
        to_address: str,
        chain_id: int,
        asset_id: str,
        tx_hash: str,
        receipt: Any,
        event_type: str | None,
        timestamp: datetime,
    ) -> OnchainHistory:
        new_id = uuid.uuid4()
        with self._connection() as conn:
            conn.execute(
                onchain_histories.insert().values(
                    {
                        "id": new_id,
                        "from": from_address,
                        "to": to_address,
                        "chain_id": chain_id,
                        "asset_id": asset_id,
                        "tx_hash": tx_hash,
                        "receipt": receipt,
                        "event_type": event_type,
                        "timestamp": _to_utc(timestamp),
                    }
                )
            )
            return self._one(
                conn,
                sa.select(onchain_histories).where(onchain_histories.c.id == new_id),
                _history_row,
                "onchain history",
            )

    def get_all_chain(self) -> list[Chain]:
        with self._connection() as conn:
            return [_chain_row(row) for row in conn.execute(sa.select(chains))]

    def get_asset_by_address(self, chain_id: int, contract_address: str) -> Asset:
        stmt = sa.select(assets).where(
            assets.c.chain_id == chain_id, assets.c.contract_address == contract_address
        )
        with self._connection() as conn:
            return self._one(conn, stmt, _asset_row, "asset")

    def get_chain_by_id(self, id: int) -> Chain:
        with self._connection() as conn:
            return self._one(
                conn, sa.select(chains).where(chains.c.id == id), _chain_row, "chain"
            )

    def get_onchain_histories_by_asset(self, asset_id: str, limit: int) -> list[OnchainHistory]:
        stmt = (
            sa.select(onchain_histories)
            .where(onchain_histories.c.asset_id == asset_id)
            .order_by(onchain_histories.c.timestamp.desc())
            .limit(limit)
        )
        with self._connection() as conn:
            return [_history_row(row) for row in conn.execute(stmt)]

    def get_paginated_assets_by_chain_id(
        self, chain_id: int, limit: int, offset: int
    ) -> list[Asset]:
        stmt = (
            sa.select(assets)
            .where(assets.c.chain_id == chain_id)
            .order_by(assets.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        with self._connection() as conn:
            return [_asset_row(row) for row in conn.execute(stmt)]

    def update_chain_latest_block(self, id: int, latest_block: int) -> None:
        with self._connection() as conn:
            conn.execute(
                chains.update().where(chains.c.id == id).values(latest_block=latest_block)
            )