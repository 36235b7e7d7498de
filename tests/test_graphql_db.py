import pytest
import sqlalchemy as sa
from sqlalchemy.pool import StaticPool

from layergcrawl import graphql_db
from layergcrawl.graphql_db import GraphQueries, RecordNotFoundError, init_db


@pytest.fixture
def engine():
    eng = sa.create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    graphql_db.metadata.create_all(eng)
    return eng


@pytest.fixture
def q(engine):
    return GraphQueries(engine)


def test_init_db_answers():
    eng = init_db("sqlite://")
    with eng.connect() as conn:
        assert conn.execute(sa.text("SELECT 1")).scalar() == 1


def test_init_db_bad_url():
    with pytest.raises(sa.exc.ArgumentError):
        init_db("not a database url")


def test_item_create_and_get(q):
    created = q.create_item("i1", "t1", "uri://1", "ERC721")
    assert created.id == "i1"
    assert created.standard == "ERC721"
    assert q.get_item("i1") == created
    assert created.created_at.tzinfo is not None


def test_get_missing_item_raises(q):
    with pytest.raises(RecordNotFoundError):
        q.get_item("missing")


def test_duplicate_item_raises(q):
    q.create_item("i1", "t1", "u", "ERC721")
    with pytest.raises(sa.exc.IntegrityError):
        q.create_item("i1", "t2", "u", "ERC721")


def test_list_and_update_item(q):
    a = q.create_item("a", "t1", "u1", "ERC721")
    q.create_item("b", "t2", "u2", "ERC1155")
    assert [i.id for i in q.list_item()] == ["a", "b"]
    updated = q.update_item("a", "t9", "u9", "ERC1155")
    assert (updated.token_id, updated.token_uri, updated.standard) == ("t9", "u9", "ERC1155")
    assert updated.created_at == a.created_at


def test_update_missing_item_raises(q):
    with pytest.raises(RecordNotFoundError):
        q.update_item("nope", "t", "u", "s")


def test_delete_item(q):
    q.create_item("a", "t1", "u1", "ERC721")
    q.delete_item("a")
    q.delete_item("a")
    assert q.list_item() == []


def test_get_item_by_token_id(q):
    q.create_item("a", "t1", "u1", "ERC721")
    q.create_item("b", "t2", "u2", "ERC721")
    assert q.get_item_by_token_id("t2").id == "b"
    with pytest.raises(RecordNotFoundError):
        q.get_item_by_token_id("t3")


def test_user_crud(q):
    user = q.create_user("u1")
    assert q.get_user("u1") == user
    assert [u.id for u in q.list_user()] == ["u1"]
    q.update_user("u1")
    with pytest.raises(RecordNotFoundError):
        q.get_user("u1")


def test_get_or_create_user_is_idempotent(q):
    first = q.get_or_create_user("u1")
    second = q.get_or_create_user("u1")
    assert first == second
    assert len(q.list_user()) == 1


def test_balance_crud(q):
    b = q.create_balance("b1", "i1", "o1", "10", "100", "0xabc")
    assert q.get_balance("b1") == b
    updated = q.update_balance("b1", "i2", "o2", "20", "200", "0xdef")
    assert (updated.item_id, updated.owner_id, updated.value) == ("i2", "o2", "20")
    assert (updated.updated_at, updated.contract) == ("200", "0xdef")
    q.delete_balance("b1")
    assert q.list_balance() == []


def test_update_missing_balance_raises(q):
    with pytest.raises(RecordNotFoundError):
        q.update_balance("x", "i", "o", "1", "1", "c")


def test_upsert_balance_inserts_then_updates_value_only(q):
    inserted = q.upsert_balance("b1", "i1", "o1", "5", "100", "0xabc")
    assert inserted.value == "5"
    again = q.upsert_balance("b1", "i9", "o9", "7", "101", "0xdef")
    assert again.value == "7"
    assert again.updated_at == "101"
    assert (again.item_id, again.owner_id, again.contract) == ("i1", "o1", "0xabc")
    assert again.created_at == inserted.created_at
    assert len(q.list_balance()) == 1


def test_get_user_balance(q):
    q.create_balance("b1", "i1", "o1", "42", "100", "0xabc")
    assert q.get_user_balance("o1", "i1") == ("b1", "42")
    with pytest.raises(RecordNotFoundError):
        q.get_user_balance("o1", "i2")


def test_metadata_update_record_crud(q):
    rec = q.create_metadata_update_record("m1", "t1", "a1", "1700")
    assert q.get_metadata_update_record("m1") == rec
    updated = q.update_metadata_update_record("m1", "t2", "a2", "1800")
    assert (updated.token_id, updated.actor_id, updated.timestamp) == ("t2", "a2", "1800")
    assert [r.id for r in q.list_metadata_update_record()] == ["m1"]
    q.delete_metadata_update_record("m1")
    with pytest.raises(RecordNotFoundError):
        q.get_metadata_update_record("m1")


def test_connection_joins_caller_transaction(engine):
    with engine.connect() as conn:
        trans = conn.begin()
        GraphQueries(conn).create_user("u1")
        assert [u.id for u in GraphQueries(conn).list_user()] == ["u1"]
        trans.rollback()
    assert GraphQueries(engine).list_user() == []