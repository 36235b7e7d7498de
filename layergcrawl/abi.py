"""Contract ABI loading and event lookup for the crawler's event handlers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config_types import (
    EVENT_HANDLER_KIND,
    CrawlerConfig,
    Event,
    EventParam,
    get_go_type,
    parse_event_signature,
)


class EventNotFoundError(LookupError):
    """Raised when no ABI of the project declares a requested event."""


@dataclass
class AbiInput:
    name: str = ""
    type: str = ""
    indexed: bool = False


@dataclass
class AbiItem:
    type: str = ""
    name: str = ""
    inputs: list[AbiInput] = field(default_factory=list)
    anonymous: bool = False


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _parse_input(data: Any) -> AbiInput:
    if not isinstance(data, dict):
        raise ValueError(f"ABI input must be an object, got {data!r}")
    return AbiInput(
        name=_str(data.get("name")),
        type=_str(data.get("type")),
        indexed=bool(data.get("indexed", False)),
    )


def _parse_item(data: Any) -> AbiItem:
    if not isinstance(data, dict):
        raise ValueError(f"ABI entry must be an object, got {data!r}")
    inputs = data.get("inputs") or []
    if not isinstance(inputs, list):
        raise ValueError("ABI entry inputs must be an array")
    return AbiItem(
        type=_str(data.get("type")),
        name=_str(data.get("name")),
        inputs=[_parse_input(i) for i in inputs],
        anonymous=bool(data.get("anonymous", False)),
    )


def load_abi(path: str | Path) -> list[AbiItem]:
    """Read an ABI JSON file; raises OSError or ValueError on failure."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("ABI must be a JSON array")
    return [_parse_item(entry) for entry in data]


def title(name: str) -> str:
    """Drop one leading underscore and upper-case the first character."""
    if not name:
        return name
    if name.startswith("_"):
        name = name[1:]
    return name[:1].upper() + name[1:]


def build_event_signature(name: str, inputs: list[AbiInput]) -> str:
    """Canonical ``Name(type1,type2,...)`` form of an event."""
    return f"{name}({','.join(i.type for i in inputs)})"


def _abi_paths(config: CrawlerConfig):
    for ds in config.data_sources:
        for abi_config in ds.options.abis:
            yield Path(abi_config.file)


def get_event_signature_from_abi(config: CrawlerConfig, event_name: str) -> str:
    """Find the event in the project's ABIs and return its signature.

    Unreadable or malformed ABI files are skipped.
    """
    for path in _abi_paths(config):
        try:
            items = load_abi(path)
        except (OSError, ValueError):
            continue
        for item in items:
            if item.type == "event" and item.name == event_name:
                return build_event_signature(event_name, item.inputs)
    raise EventNotFoundError(f"event {event_name} not found in any ABI")


def collect_handler_event_names(config: CrawlerConfig) -> set[str]:
    """Names of the events that event handlers subscribe to."""
    names: set[str] = set()
    for ds in config.data_sources:
        for handler in ds.handlers:
            if handler.kind != EVENT_HANDLER_KIND:
                continue
            for topic in handler.filter.topics:
                name, _ = parse_event_signature(topic)
                if name:
                    names.add(name)
    return names


def collect_handler_events(config: CrawlerConfig) -> list[Event]:
    """Events from the ABIs that handlers subscribe to, one per name.

    A later ABI declaring the same event replaces the earlier definition.
    Raises OSError or ValueError when an ABI file cannot be read or parsed.
    """
    wanted = collect_handler_event_names(config)
    events: dict[str, Event] = {}
    for path in _abi_paths(config):
        try:
            items = load_abi(path)
        except OSError as exc:
            raise OSError(f"failed to read ABI file {path}: {exc}") from exc
        except ValueError as exc:
            raise ValueError(f"failed to parse ABI file {path}: {exc}") from exc
        for item in items:
            if item.type != "event" or item.name not in wanted:
                continue
            events[item.name] = Event(
                name=item.name,
                signature=build_event_signature(item.name, item.inputs),
                params=[
                    EventParam(
                        name=i.name,
                        type=i.type,
                        indexed=i.indexed,
                        go_type=get_go_type(i.type),
                    )
                    for i in item.inputs
                ],
            )
    return list(events.values())