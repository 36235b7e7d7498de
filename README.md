# layergcrawl

Building blocks for a multichain event crawler:

- parse a GraphQL entity schema (`@entity`, `@index`, `@unique`, `@derivedFrom`,
  `@compositeIndexes`) into entities;
- generate SQL migration scripts (up and down) and CRUD query files from those
  entities;
- read a crawler configuration (`subgraph.yaml` style) and the contract ABIs it
  refers to, and work out the events its handlers listen for;
- store chains, assets, on-chain history and schema-generated records in SQL
  through SQLAlchemy, and cache chains, assets and history in Redis.

## Installation

```
pip install layergcrawl
```

For running the tests:

```
pip install "layergcrawl[test]"
pytest
```

## Schema to migrations and queries

```python
from layergcrawl.schema import parse_graphql_schema
from layergcrawl.migrations import generate_migration_scripts
from layergcrawl.sqlc_queries import generate_sqlc_queries, render_sqlc_queries

entities = parse_graphql_schema("schema.graphql")

migration = generate_migration_scripts(entities, "generated")
# generated/migrations/<YYYYmmddHHMMSS>_migration.sql, plus schema_snapshot.json

queries = generate_sqlc_queries(entities, "generated")
# generated/queries/queries.sql
```

`parse_graphql_schema_text` does the same parsing on a string; malformed input
raises `SchemaError`. `generate_migration_scripts` clears the `migrations`
directory before writing a fresh migration file with `-- +goose Up` and
`-- +goose Down` sections, and returns the path of that file.

The SQL text is also available directly:

- `generate_full_migration(entities)` – `CREATE TABLE` statements, indexes,
  composite indexes and the foreign-key columns of list relations;
- `generate_full_migration_down(entities)` – the matching drop statements;
- `generate_diff_migration(prev, curr)` – tables only for entities of `curr`
  not present in `prev` (names compared case-insensitively);
- `render_sqlc_queries(entities)` – `Create`, `Get`, `List`, `Update` and
  `Delete` queries for each entity.

Tables are ordered so that referenced entities come first (`sort_entities`);
a cycle between entities raises `CyclicDependencyError`. Column names come
from `to_snake_case`, column types from `get_sql_type`.

## Crawler configuration and ABIs

```python
from layergcrawl.config_types import load_crawler_config, parse_events_from_config
from layergcrawl.abi import collect_handler_events, get_event_signature_from_abi
from layergcrawl.abi_checker import check_abi_mapping

config = load_crawler_config("subgraph.yaml")
for event in parse_events_from_config(config):
    print(event.name, event.signature)

for event in collect_handler_events(config):       # events as declared in the ABI files
    print(event.signature, [p.go_type for p in event.params])

print(get_event_signature_from_abi(config, "Transfer"))  # e.g. Transfer(address,address,uint256)
check_abi_mapping("abis/token.json")  # raises AbiMappingError if approve/Transfer are missing
```

`get_event_signature_from_abi` skips unreadable ABI files and raises
`EventNotFoundError` when no ABI declares the event. `collect_handler_events`
raises `OSError` or `ValueError` on an ABI file it cannot read or parse.

## Nullable JSON values

`layergcrawl.nullable` encodes and decodes JSON values that may be `null`:
`encode_null_int64`, `decode_null_int64`, `decode_null_int16` (truncates
numbers to 16-bit integers) and `decode_null_time` (a `YYYY-MM-DD HH:MM:SS`
string read as UTC). Invalid input raises `ValueError`.

## API payloads

`layergcrawl.api_types` has the `ResponseData`, `ErrorResponse` and
`CombinedAsset` records with their `to_dict()` JSON forms, the helpers
`success_response(data)` and `error_response(message)`, and the constants
`RETRIEVE_ADDED_CHAINS_AND_ASSETS_INTERVAL`, `BACKFILL_BLOCK_RANGE_SCAN` and
`WORKER_CONCURRENCY`.

## Storage

`layergcrawl.system_db.Queries` runs the queries on the `chains`, `assets` and
`onchain_histories` tables; `layergcrawl.graphql_db.GraphQueries` runs them on
the `balance`, `item`, `metadata_update_record` and `user` tables. Both take a
SQLAlchemy engine (each call in its own transaction) or a connection (calls
join the caller's transaction). Single-row lookups that find nothing raise
`NoRowsError` or `RecordNotFoundError`. Each module defines its tables on a
module-level `metadata`, so they can be created with
`metadata.create_all(engine)`.

```python
import sqlalchemy as sa
from layergcrawl import system_db
from layergcrawl.graphql_db import init_db

engine = sa.create_engine("sqlite://")
system_db.metadata.create_all(engine)
queries = system_db.Queries(engine)
queries.create_chain(1, "U2U", "U2U Testnet", "http://localhost:8545", 2484, "", 0, 1)
print(queries.get_chain_by_id(1).name)

checked_engine = init_db("sqlite://")  # opens an engine and runs SELECT 1
```

## Redis cache

`layergcrawl.cache` keeps chains, assets, pending work and transaction history
in Redis:

```python
from layergcrawl.cache import RedisConfig, new_redis_client, get_history_cache

rdb = new_redis_client(RedisConfig(url="localhost:6379", db=0))
histories = get_history_cache(rdb, "0xabc")
```

`get_cached_chain` raises `KeyError` when no chain is cached under the id.
List readers (`get_cached_assets`, `get_cached_pending_asset`,
`get_cached_pending_chain`) skip entries they cannot decode, while
`get_history_cache` raises `ValueError` on a bad entry. History entries
expire after 15 minutes.

## What this package does not do

It is a library only. It has no command-line program, does not run a crawler,
does not connect to a chain node or fetch logs, and serves no HTTP API. It
finds the events a configuration subscribes to, but does not write event
handler, mapping or router source files from them.