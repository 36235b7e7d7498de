"""SQL migration generation from parsed schema entities."""

from __future__ import annotations

import json
import shutil
from datetime import datetime
from pathlib import Path

from .schema import Entity, Field, entity_from_dict

_SQL_TYPES = {
    "id": "TEXT",
    "string": "TEXT",
    "boolean": "BOOLEAN",
    "int": "INTEGER",
    "bigint": "NUMERIC",
    "float": "DOUBLE PRECISION",
    "date": "TIMESTAMPTZ",
}

_UP_HEADER = "-- +goose Up\n-- Migration script generated from GraphQL schema (incremental)\n\n"
_DOWN_HEADER = "\n-- +goose Down\n"
_NO_CHANGES = "-- No schema changes detected\n"


class CyclicDependencyError(ValueError):
    """Raised when entity relations form a cycle."""


def to_snake_case(name: str) -> str:
    """Insert underscores before inner capitals and lower-case the result."""
    out: list[str] = []
    for position, ch in enumerate(name):
        if position > 0 and "A" <= ch <= "Z":
            out.append("_")
        out.append(ch)
    return "".join(out).lower()


def get_sql_type(graphql_type: str) -> str:
    """Column type for a scalar GraphQL type; unknown types become TEXT."""
    return _SQL_TYPES.get(graphql_type.lower(), "TEXT")


def _is_array(field: Field) -> bool:
    return field.type.startswith("[")


def _base_type(type_name: str) -> str:
    return type_name.strip("[]!").strip("!")


def sort_entities(entities: list[Entity]) -> list[Entity]:
    """Order entities so that every entity follows those it references."""
    by_name = {entity.name: entity for entity in entities}
    deps: dict[str, list[str]] = {}
    for entity in entities:
        for field in entity.fields:
            if field.relation:
                deps.setdefault(entity.name, []).append(field.relation)

    ordered: list[str] = []
    visited: set[str] = set()
    in_progress: set[str] = set()

    def visit(name: str) -> None:
        if name in in_progress:
            raise CyclicDependencyError(f"cyclic dependency detected at {name}")
        if name in visited:
            return
        in_progress.add(name)
        for dep in deps.get(name, []):
            if dep in by_name:
                visit(dep)
        in_progress.discard(name)
        visited.add(name)
        ordered.append(name)

    for name in by_name:
        visit(name)
    return [by_name[name] for name in ordered]


def _composite_column(entity: Entity, name: str) -> str:
    column = to_snake_case(name)
    match = next((f for f in entity.fields if f.name == column), None)
    if match is not None and match.relation and not _is_array(match):
        column += "_id"
    return f'"{column}"'


def _create_table(entity: Entity) -> str:
    table = to_snake_case(entity.name)
    parts = [f'CREATE TABLE "{table}" (\n', '    "id" TEXT PRIMARY KEY,\n']

    col_defs: list[str] = []
    foreign_keys: list[str] = []
    for field in entity.fields:
        if field.name.lower() == "id":
            continue
        column = to_snake_case(field.name)
        if field.relation:
            if _is_array(field):
                continue
            col_def = f'    "{column}_id" TEXT'
            foreign_keys.append(
                f'    FOREIGN KEY ("{column}_id") REFERENCES '
                f'"{to_snake_case(field.relation)}"("id") ON DELETE CASCADE'
            )
        else:
            col_def = f'    "{column}" {get_sql_type(field.type)}'
        if field.is_non_null:
            col_def += " NOT NULL"
        col_defs.append(col_def)

    col_defs.append('    "created_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP')
    parts.append(",\n".join(col_defs))
    if foreign_keys:
        parts.append(",\n")
        parts.append(",\n".join(foreign_keys))
    parts.append("\n);\n\n")

    for field in entity.fields:
        if not field.is_indexed:
            continue
        column = to_snake_case(field.name)
        index_name = f"idx_{table}_{column}"
        if field.relation and not _is_array(field):
            column += "_id"
        kind = "UNIQUE INDEX" if field.is_unique else "INDEX"
        parts.append(f'CREATE {kind} "{index_name}" ON "{table}"("{column}");\n')

    for number, group in enumerate(entity.composite_index):
        columns = ", ".join(_composite_column(entity, name) for name in group)
        parts.append(
            f'CREATE INDEX "idx_composite_{table}_{number}" ON "{table}"({columns});\n'
        )

    parts.append("\n")
    return "".join(parts)


def _array_relation_fields(entity: Entity):
    for field in entity.fields:
        if field.relation and _is_array(field) and not field.derived_from:
            yield field


def generate_full_migration(entities: list[Entity]) -> str:
    """SQL that creates every entity's table, indexes and relations."""
    ordered = sort_entities(entities)
    parts = [_create_table(entity) for entity in ordered]

    for entity in ordered:
        one = to_snake_case(entity.name)
        for field in _array_relation_fields(entity):
            many = to_snake_case(_base_type(field.type))
            parts.append(f'ALTER TABLE "{many}" ADD COLUMN IF NOT EXISTS "{one}_id" TEXT;\n')
            parts.append(
                f'ALTER TABLE "{many}" ADD CONSTRAINT IF NOT EXISTS "fk_{many}_{one}" \n'
                + "\t" * 6
                + f'FOREIGN KEY ("{one}_id") REFERENCES "{one}"("id") ON DELETE CASCADE;\n'
            )
            parts.append(
                f'CREATE INDEX IF NOT EXISTS "idx_{many}_{one}_id" ON "{many}"("{one}_id");\n\n'
            )
    return "".join(parts)


def generate_full_migration_down(entities: list[Entity]) -> str:
    """SQL that undoes :func:`generate_full_migration`."""
    ordered = sort_entities(entities)
    parts: list[str] = []
    for entity in ordered:
        one = to_snake_case(entity.name)
        for field in _array_relation_fields(entity):
            many = to_snake_case(_base_type(field.type))
            parts.append(f'DROP INDEX IF EXISTS "idx_{many}_{one}_id";\n')
            parts.append(f'ALTER TABLE "{many}" DROP CONSTRAINT IF EXISTS "fk_{many}_{one}";\n')
            parts.append(f'ALTER TABLE "{many}" DROP COLUMN IF EXISTS "{one}_id";\n\n')
    for entity in reversed(ordered):
        parts.append(f'DROP TABLE IF EXISTS "{to_snake_case(entity.name)}" CASCADE;\n')
    return "".join(parts)


def generate_diff_migration(prev: list[Entity], curr: list[Entity]) -> str:
    """SQL creating only the entities of ``curr`` absent from ``prev``."""
    known = {entity.name.casefold() for entity in prev}
    parts: list[str] = []
    for entity in curr:
        if entity.name.casefold() not in known:
            parts.append(generate_full_migration([entity]))
            parts.append("\n")
    return "".join(parts)


def generate_migration_scripts(entities: list[Entity], output_dir: str | Path) -> Path:
    """Write a fresh timestamped migration and schema snapshot; return the file."""
    migrations_dir = Path(f"{output_dir}/migrations")
    if migrations_dir.exists():
        shutil.rmtree(migrations_dir)
    migrations_dir.mkdir(parents=True, exist_ok=True)

    snapshot_file = migrations_dir / "schema_snapshot.json"
    prev: list[Entity] = []
    if snapshot_file.exists():
        loaded = json.loads(snapshot_file.read_text(encoding="utf-8"))
        prev = [entity_from_dict(item) for item in loaded or []]

    if prev:
        up_sql = generate_diff_migration(prev, entities)
    else:
        up_sql = generate_full_migration(entities)
    if not up_sql.strip():
        up_sql = _NO_CHANGES

    down_sql = generate_full_migration_down(entities)
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    path = migrations_dir / f"{timestamp}_migration.sql"
    path.write_text(_UP_HEADER + up_sql + _DOWN_HEADER + down_sql, encoding="utf-8")

    snapshot = json.dumps([entity.to_dict() for entity in entities], indent=2)
    snapshot_file.write_text(snapshot, encoding="utf-8")
    return path