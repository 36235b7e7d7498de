"""Check that an ABI file has the entries the crawler relies on."""

from __future__ import annotations

import json
from pathlib import Path


class AbiMappingError(ValueError):
    """Raised when an ABI lacks a required entry or is malformed."""


def check_abi_mapping(abi_file_path: str | Path) -> None:
    """Require an ``approve`` function and a ``Transfer`` event in the ABI."""
    data = Path(str(abi_file_path).strip()).read_text(encoding="utf-8")
    entries = json.loads(data)
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise AbiMappingError("ABI must be a JSON array of objects")
    found_approve = any(
        e.get("type") == "function" and e.get("name") == "approve" for e in entries
    )
    found_transfer = any(
        e.get("type") == "event" and e.get("name") == "Transfer" for e in entries
    )
    if not found_approve:
        raise AbiMappingError("approve function not found in ABI")
    if not found_transfer:
        raise AbiMappingError("Transfer event not found in ABI")