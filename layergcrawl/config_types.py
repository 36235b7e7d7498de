"""Crawler project configuration and event-signature helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

EVENT_HANDLER_KIND = "EthereumHandlerKind.Event"

_GO_TYPES = {
    "address": "common.Address",
    "uint256": "*big.Int",
    "uint128": "*big.Int",
    "uint64": "*big.Int",
    "uint32": "uint32",
    "uint16": "uint16",
    "uint8": "uint8",
    "string": "string",
    "bool": "bool",
    "bytes": "[]byte",
    "bytes32": "[32]byte",
    "uint256[]": "[]*big.Int",
}


@dataclass
class AbiConfig:
    name: str = ""
    file: str = ""


@dataclass
class ContractConfig:
    address: str = ""
    abis: list[AbiConfig] = field(default_factory=list)


@dataclass
class HandlerFilter:
    function: str = ""
    topics: list[str] = field(default_factory=list)


@dataclass
class HandlerConfig:
    kind: str = ""
    handler: str = ""
    filter: HandlerFilter = field(default_factory=HandlerFilter)


@dataclass
class DataSource:
    kind: str = ""
    options: ContractConfig = field(default_factory=ContractConfig)
    start_block: int = 0
    handlers: list[HandlerConfig] = field(default_factory=list)


@dataclass
class CrawlerConfig:
    """The project manifest: schema, network and data sources."""

    name: str = ""
    version: str = ""
    description: str = ""
    schema_file: str = ""
    network_name: str = ""
    chain_id: str = ""
    endpoints: list[str] = field(default_factory=list)
    data_sources: list[DataSource] = field(default_factory=list)
    repository: str = ""


@dataclass
class EventParam:
    name: str = ""
    type: str = ""
    indexed: bool = False
    go_type: str = ""


@dataclass
class Event:
    name: str
    signature: str
    params: list[EventParam] = field(default_factory=list)


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _parse_handler(data: dict[str, Any]) -> HandlerConfig:
    filt = data.get("filter") or {}
    return HandlerConfig(
        kind=_str(data.get("kind")),
        handler=_str(data.get("handler")),
        filter=HandlerFilter(
            function=_str(filt.get("function")),
            topics=[str(t) for t in filt.get("topics") or []],
        ),
    )


def _parse_data_source(data: dict[str, Any]) -> DataSource:
    options = data.get("options") or {}
    mapping = data.get("mapping") or {}
    return DataSource(
        kind=_str(data.get("kind")),
        options=ContractConfig(
            address=_str(options.get("address")),
            abis=[
                AbiConfig(name=_str(a.get("name")), file=_str(a.get("file")))
                for a in options.get("abis") or []
            ],
        ),
        start_block=int(data.get("startBlock") or 0),
        handlers=[_parse_handler(h) for h in mapping.get("handlers") or []],
    )


def parse_crawler_config(data: dict[str, Any] | None) -> CrawlerConfig:
    """Build a CrawlerConfig from the mapping loaded from a manifest."""
    data = data or {}
    schema = data.get("schema") or {}
    network = data.get("network") or {}
    return CrawlerConfig(
        name=_str(data.get("name")),
        version=_str(data.get("version")),
        description=_str(data.get("description")),
        schema_file=_str(schema.get("file")),
        network_name=_str(network.get("name")),
        chain_id=_str(network.get("chainId")),
        endpoints=[str(e) for e in network.get("endpoint") or []],
        data_sources=[_parse_data_source(ds) for ds in data.get("dataSources") or []],
        repository=_str(data.get("repository")),
    )


def load_crawler_config(path: str | Path) -> CrawlerConfig:
    """Read a YAML manifest file."""
    with open(path, encoding="utf-8") as fh:
        return parse_crawler_config(yaml.safe_load(fh))


def parse_events_from_config(config: CrawlerConfig) -> list[Event]:
    """Collect the distinct events named by event handlers' topics."""
    events: list[Event] = []
    seen: set[str] = set()
    for ds in config.data_sources:
        for handler in ds.handlers:
            if handler.kind != EVENT_HANDLER_KIND:
                continue
            for topic in handler.filter.topics:
                if topic in seen:
                    continue
                seen.add(topic)
                name, params = parse_event_signature(topic)
                if not name:
                    continue
                events.append(Event(name=name, signature=topic, params=params))
    return events


def parse_event_signature(signature: str) -> tuple[str, list[EventParam]]:
    """Split ``Name(type [indexed] name, ...)`` into a name and parameters."""
    parts = signature.split("(")
    if len(parts) != 2:
        return "", []
    name, param_str = parts[0], parts[1].rstrip(")")
    params: list[EventParam] = []
    if param_str:
        for part in param_str.split(","):
            words = part.split()
            if not words:
                continue
            params.append(
                EventParam(
                    name=words[-1].removeprefix("indexed"),
                    type=words[0],
                    indexed="indexed" in part,
                    go_type=get_go_type(words[0]),
                )
            )
    return name, params


def get_go_type(solidity_type: str) -> str:
    """Map a Solidity type to the type used in generated handler code."""
    if solidity_type in _GO_TYPES:
        return _GO_TYPES[solidity_type]
    if solidity_type.startswith("bytes"):
        return "[]byte"
    return "interface{}"