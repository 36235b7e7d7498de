"""Tables generated from the GraphQL schema: items, balances, users and metadata records."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class RecordNotFoundError(LookupError):
    """Raised when a single-row query finds nothing."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


metadata = sa.MetaData()

balance_table = sa.Table(
    "balance",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("item_id", sa.String, nullable=False),
    sa.Column("owner_id", sa.String, nullable=False),
    sa.Column("value", sa.String, nullable=False),
    sa.Column("updated_at", sa.String, nullable=False),
    sa.Column("contract", sa.String, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=_now),
)

item_table = sa.Table(
    "item",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("token_id", sa.String, nullable=False),
    sa.Column("token_uri", sa.String, nullable=False),
    sa.Column("standard", sa.String, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=_now),
)

metadata_update_record_table = sa.Table(
    "metadata_update_record",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("token_id", sa.String, nullable=False),
    sa.Column("actor_id", sa.String, nullable=False),
    sa.Column("timestamp", sa.String, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=_now),
)

user_table = sa.Table(
    "user",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=_now),
)


@dataclass
class Balance:
    id: str
    item_id: str
    owner_id: str
    value: str
    updated_at: str
    contract: str
    created_at: datetime = field(default_factory=_now)


@dataclass
class Item:
    id: str
    token_id: str
    token_uri: str
    standard: str
    created_at: datetime = field(default_factory=_now)


@dataclass
class MetadataUpdateRecord:
    id: str
    token_id: str
    actor_id: str
    timestamp: str
    created_at: datetime = field(default_factory=_now)


@dataclass
class User:
    id: str
    created_at: datetime = field(default_factory=_now)


def _balance_row(row: sa.Row) -> Balance:
    m = row._mapping
    return Balance(
        id=m["id"],
        item_id=m["item_id"],
        owner_id=m["owner_id"],
        value=m["value"],
        updated_at=m["updated_at"],
        contract=m["contract"],
        created_at=_to_utc(m["created_at"]),
    )


def _item_row(row: sa.Row) -> Item:
    m = row._mapping
    return Item(
        id=m["id"],
        token_id=m["token_id"],
        token_uri=m["token_uri"],
        standard=m["standard"],
        created_at=_to_utc(m["created_at"]),
    )


def _record_row(row: sa.Row) -> MetadataUpdateRecord:
    m = row._mapping
    return MetadataUpdateRecord(
        id=m["id"],
        token_id=m["token_id"],
        actor_id=m["actor_id"],
        timestamp=m["timestamp"],
        created_at=_to_utc(m["created_at"]),
    )


def _user_row(row: sa.Row) -> User:
    m = row._mapping
    return User(id=m["id"], created_at=_to_utc(m["created_at"]))


def init_db(conn_str: str) -> Engine:
    """Open a database engine and check that it answers."""
    engine = sa.create_engine(conn_str)
    with engine.connect() as conn:
        conn.execute(sa.text("SELECT 1"))
    logger.info("Database connected")
    return engine


class GraphQueries:
    """Queries on the schema-generated tables.

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
    def _one(
        conn: Connection, stmt: Any, convert: Callable[[sa.Row], _T], what: str
    ) -> _T:
        row = conn.execute(stmt).first()
        if row is None:
            raise RecordNotFoundError(f"no {what} found")
        return convert(row)

    def _update(
        self,
        table: sa.Table,
        id: str,
        values: dict[str, Any],
        convert: Callable[[sa.Row], _T],
        what: str,
    ) -> _T:
        with self._connection() as conn:
            result = conn.execute(table.update().where(table.c.id == id).values(**values))
            if result.rowcount == 0:
                raise RecordNotFoundError(f"no {what} found")
            return self._one(conn, sa.select(table).where(table.c.id == id), convert, what)

    def _create(
        self,
        table: sa.Table,
        values: dict[str, Any],
        convert: Callable[[sa.Row], _T],
        what: str,
    ) -> _T:
        with self._connection() as conn:
            conn.execute(table.insert().values(**values))
            return self._one(
                conn, sa.select(table).where(table.c.id == values["id"]), convert, what
            )

    def _get(self, table: sa.Table, id: str, convert: Callable[[sa.Row], _T], what: str) -> _T:
        with self._connection() as conn:
            return self._one(conn, sa.select(table).where(table.c.id == id), convert, what)

    def _list(self, table: sa.Table, convert: Callable[[sa.Row], _T]) -> list[_T]:
        with self._connection() as conn:
            return [convert(row) for row in conn.execute(sa.select(table))]

    def _delete(self, table: sa.Table, id: str) -> None:
        with self._connection() as conn:
            conn.execute(table.delete().where(table.c.id == id))

    # --- balance ---------------------------------------------------------

    def create_balance(
        self, id: str, item_id: str, owner_id: str, value: str, updated_at: str, contract: str
    ) -> Balance:
        return self._create(
            balance_table,
            {
                "id": id,
                "item_id": item_id,
                "owner_id": owner_id,
                "value": value,
                "updated_at": updated_at,
                "contract": contract,
            },
            _balance_row,
            "balance",
        )

    def delete_balance(self, id: str) -> None:
        self._delete(balance_table, id)

    def get_balance(self, id: str) -> Balance:
        return self._get(balance_table, id, _balance_row, "balance")

    def list_balance(self) -> list[Balance]:
        return self._list(balance_table, _balance_row)

    def update_balance(
        self, id: str, item_id: str, owner_id: str, value: str, updated_at: str, contract: str
    ) -> Balance:
        return self._update(
            balance_table,
            id,
            {
                "item_id": item_id,
                "owner_id": owner_id,
                "value": value,
                "updated_at": updated_at,
                "contract": contract,
            },
            _balance_row,
            "balance",
        )

    def get_user_balance(self, owner_id: str, item_id: str) -> tuple[str, str]:
        """Return ``(id, value)`` of the first balance of an owner for an item."""
        stmt = (
            sa.select(balance_table.c.id, balance_table.c.value)
            .where(balance_table.c.owner_id == owner_id, balance_table.c.item_id == item_id)
            .limit(1)
        )
        with self._connection() as conn:
            return self._one(conn, stmt, lambda r: (r[0], r[1]), "balance")

    def upsert_balance(
        self, id: str, item_id: str, owner_id: str, value: str, updated_at: str, contract: str
    ) -> Balance:
        """Insert a balance, or update only its value and update time if it exists."""
        with self._connection() as conn:
            exists = conn.execute(
                sa.select(balance_table.c.id).where(balance_table.c.id == id)
            ).first()
            if exists is None:
                conn.execute(
                    balance_table.insert().values(
                        id=id,
                        item_id=item_id,
                        owner_id=owner_id,
                        value=value,
                        updated_at=updated_at,
                        contract=contract,
                    )
                )
            else:
                conn.execute(
                    balance_table.update()
                    .where(balance_table.c.id == id)
                    .values(value=value, updated_at=updated_at)
                )
            return self._one(
                conn,
                sa.select(balance_table).where(balance_table.c.id == id),
                _balance_row,
                "balance",
            )

    # --- item ------------------------------------------------------------

    def create_item(self, id: str, token_id: str, token_uri: str, standard: str) -> Item:
        return self._create(
            item_table,
            {"id": id, "token_id": token_id, "token_uri": token_uri, "standard": standard},
            _item_row,
            "item",
        )

    def delete_item(self, id: str) -> None:
        self._delete(item_table, id)

    def get_item(self, id: str) -> Item:
        return self._get(item_table, id, _item_row, "item")

    def list_item(self) -> list[Item]:
        return self._list(item_table, _item_row)

    def update_item(self, id: str, token_id: str, token_uri: str, standard: str) -> Item:
        return self._update(
            item_table,
            id,
            {"token_id": token_id, "token_uri": token_uri, "standard": standard},
            _item_row,
            "item",
        )

    def get_item_by_token_id(self, token_id: str) -> Item:
        with self._connection() as conn:
            return self._one(
                conn,
                sa.select(item_table).where(item_table.c.token_id == token_id),
                _item_row,
                "item",
            )

    # --- metadata update record -----------------------------------------

    def create_metadata_update_record(
        self, id: str, token_id: str, actor_id: str, timestamp: str
    ) -> MetadataUpdateRecord:
        return self._create(
            metadata_update_record_table,
            {"id": id, "token_id": token_id, "actor_id": actor_id, "timestamp": timestamp},
            _record_row,
            "metadata update record",
        )

    def delete_metadata_update_record(self, id: str) -> None:
        self._delete(metadata_update_record_table, id)

    def get_metadata_update_record(self, id: str) -> MetadataUpdateRecord:
        return self._get(
            metadata_update_record_table, id, _record_row, "metadata update record"
        )

    def list_metadata_update_record(self) -> list[MetadataUpdateRecord]:
        return self._list(metadata_update_record_table, _record_row)

    def update_metadata_update_record(
        self, id: str, token_id: str, actor_id: str, timestamp: str
    ) -> MetadataUpdateRecord:
        return self._update(
            metadata_update_record_table,
            id,
            {"token_id": token_id, "actor_id": actor_id, "timestamp": timestamp},
            _record_row,
            "metadata update record",
        )

    # --- user ------------------------------------------------------------

    def create_user(self, id: str) -> User:
        return self._create(user_table, {"id": id}, _user_row, "user")

    def get_user(self, id: str) -> User:
        return self._get(user_table, id, _user_row, "user")

    def list_user(self) -> list[User]:
        return self._list(user_table, _user_row)

    def update_user(self, id: str) -> None:
        """Remove the user; users have no fields that can be updated."""
        self._delete(user_table, id)

    def get_or_create_user(self, id: str) -> User:
        """Return the user with this id, creating it first if needed."""
        with self._connection() as conn:
            row = conn.execute(sa.select(user_table).where(user_table.c.id == id)).first()
            if row is None:
                conn.execute(user_table.insert().values(id=id))
                row = conn.execute(sa.select(user_table).where(user_table.c.id == id)).first()
            return _user_row(row)