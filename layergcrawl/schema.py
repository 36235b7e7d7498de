"""Parser for the GraphQL entity schema."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class SchemaError(ValueError):
    """Raised when the schema text cannot be understood."""


@dataclass
class Field:
    name: str
    type: str
    is_non_null: bool = False
    is_indexed: bool = False
    is_unique: bool = False
    is_list: bool = False
    derived_from: bool = False
    relation: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the snapshot form of the field."""
        return {
            "Name": self.name,
            "Type": self.type,
            "IsNonNull": self.is_non_null,
            "IsIndexed": self.is_indexed,
            "IsUnique": self.is_unique,
            "IsList": self.is_list,
            "DerivedFrom": self.derived_from,
            "Relation": self.relation,
        }


@dataclass
class Entity:
    name: str
    fields: list[Field] = field(default_factory=list)
    composite_index: list[list[str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the snapshot form of the entity."""
        return {
            "Name": self.name,
            "Fields": [f.to_dict() for f in self.fields],
            "CompositeIndex": [list(group) for group in self.composite_index],
        }


def entity_from_dict(data: dict[str, Any]) -> Entity:
    """Rebuild an Entity from its snapshot form."""
    return Entity(
        name=data.get("Name", ""),
        fields=[
            Field(
                name=f.get("Name", ""),
                type=f.get("Type", ""),
                is_non_null=bool(f.get("IsNonNull", False)),
                is_indexed=bool(f.get("IsIndexed", False)),
                is_unique=bool(f.get("IsUnique", False)),
                is_list=bool(f.get("IsList", False)),
                derived_from=bool(f.get("DerivedFrom", False)),
                relation=f.get("Relation", "") or "",
            )
            for f in data.get("Fields") or []
        ],
        composite_index=[list(g) for g in data.get("CompositeIndex") or []],
    )


def is_scalar(type_name: str) -> bool:
    """Whether a GraphQL type is stored as a plain column."""
    return type_name.lower() in {"id", "string", "boolean", "date", "bigint"}


@dataclass
class _RawSchema:
    name: str = ""
    header: str = ""
    lines: list[str] = field(default_factory=list)


def _split_blocks(text: str) -> list[_RawSchema]:
    blocks: list[_RawSchema] = []
    current = _RawSchema()
    for line in text.split("\n"):
        trimmed = line.strip()
        if trimmed.startswith("type"):
            if current.name:
                blocks.append(current)
            words = trimmed.split()
            if len(words) < 2:
                raise SchemaError(f"invalid type definition: {trimmed!r}")
            current = _RawSchema(name=words[1], header=trimmed)
        elif "@entity" in trimmed or "@compositeIndexes" in trimmed:
            current.header += " " + trimmed
        elif trimmed == "}":
            blocks.append(current)
            current = _RawSchema()
        elif trimmed and not trimmed.startswith("#"):
            current.lines.append(trimmed)
    if current.name:
        blocks.append(current)
    return blocks


def _parse_composite_index(header: str) -> list[list[str]]:
    if "@compositeIndexes" not in header:
        return []
    start, end = header.find("("), header.rfind(")")
    if start == -1 or end == -1 or start >= end:
        return []
    content = header[start + 1 : end]
    if not content.startswith("fields:"):
        return []
    fstart, fend = content.find("["), content.rfind("]")
    if fstart == -1 or fend == -1 or fstart >= fend:
        return []
    try:
        result = json.loads(content[fstart : fend + 1])
    except json.JSONDecodeError as exc:
        raise SchemaError(f"invalid composite index: {exc}") from exc
    if not isinstance(result, list) or not all(
        isinstance(group, list) and all(isinstance(c, str) for c in group)
        for group in result
    ):
        raise SchemaError("composite index must be a list of lists of field names")
    return result


def _parse_field(line: str) -> Field | None:
    parts = line.split(":")
    if len(parts) < 2:
        return None
    rest = parts[1].strip()
    field_type = rest.split(" ")[0].strip()
    is_non_null = field_type.endswith("!")
    if is_non_null:
        field_type = field_type[:-1]
    result = Field(name=parts[0].strip(), type=field_type, is_non_null=is_non_null)
    if "@index" in rest:
        result.is_indexed = True
        start, end = line.find("("), line.find(")")
        if start != -1 and end != -1 and start < end:
            if "unique: true" in line[start + 1 : end]:
                result.is_unique = True
    elif "@unique" in rest:
        result.is_unique = True
    if "@derivedFrom" in rest:
        result.derived_from = True
    if not is_scalar(field_type):
        result.relation = field_type
    return result


def parse_graphql_schema_text(text: str) -> list[Entity]:
    """Parse schema text into its entities, in order of appearance."""
    entities: list[Entity] = []
    for block in _split_blocks(text):
        words = block.header.split()
        if len(words) < 2:
            raise SchemaError("block without a type definition")
        entity = Entity(name=words[1], composite_index=_parse_composite_index(block.header))
        closed = False
        for line in block.lines:
            line = line.strip()
            if line.startswith("}"):
                entities.append(entity)
                closed = True
                break
            parsed = _parse_field(line)
            if parsed is not None:
                entity.fields.append(parsed)
        if not closed:
            entities.append(entity)
    return entities


def parse_graphql_schema(path: str | Path) -> list[Entity]:
    """Read and parse a schema file."""
    return parse_graphql_schema_text(Path(path).read_text(encoding="utf-8"))