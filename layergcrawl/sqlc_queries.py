"""Generation of basic CRUD queries for each schema entity."""

from __future__ import annotations

from pathlib import Path

from .migrations import to_snake_case
from .schema import Entity


def _entity_queries(entity: Entity) -> str:
    table = to_snake_case(entity.name)
    columns = ['"id"']
    placeholders = ["$1"]
    assignments: list[str] = []

    number = 2
    for field in entity.fields:
        if field.name.lower() == "id":
            continue
        column = to_snake_case(field.name)
        if field.relation:
            if field.derived_from:
                continue
            column += "_id"
        columns.append(f'"{column}"')
        placeholders.append(f"${number}")
        assignments.append(f'"{column}" = ${number}')
        number += 1

    name = entity.name
    create = (
        f"-- name: Create{name} :one\n"
        f'INSERT INTO "{table}" ({", ".join(columns)}) '
        f'VALUES ({", ".join(placeholders)}) RETURNING *;\n\n'
    )
    get = f'-- name: Get{name} :one\nSELECT * FROM "{table}" WHERE id = $1;\n\n'
    listing = f'-- name: List{name} :many\nSELECT * FROM "{table}";\n\n'
    if assignments:
        update = (
            f"-- name: Update{name} :one\n"
            f'UPDATE "{table}" SET {", ".join(assignments)} WHERE id = $1 RETURNING *;\n\n'
        )
    else:
        update = (
            f"-- name: Update{name} :exec\n"
            "-- Skip update query generation as there are no updateable fields\n\n"
        )
    delete = f'-- name: Delete{name} :exec\nDELETE FROM "{table}" WHERE id = $1;\n\n'
    return create + get + listing + update + delete


def render_sqlc_queries(entities: list[Entity]) -> str:
    """Return the CRUD query file text for the entities, in their order."""
    return "".join(_entity_queries(entity) for entity in entities)


def generate_sqlc_queries(entities: list[Entity], output_dir: str | Path) -> Path:
    """Write ``queries/queries.sql`` under ``output_dir`` and return its path."""
    queries_dir = Path(f"{output_dir}/queries")
    queries_dir.mkdir(parents=True, exist_ok=True)
    path = queries_dir / "queries.sql"
    path.write_text(render_sqlc_queries(entities), encoding="utf-8")
    return path