"""Response payloads, API record types and crawler parameters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

RETRIEVE_ADDED_CHAINS_AND_ASSETS_INTERVAL = timedelta(seconds=2)
BACKFILL_BLOCK_RANGE_SCAN = 100
WORKER_CONCURRENCY = 10


@dataclass
class ResponseData:
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "data": self.data}


@dataclass
class ErrorResponse:
    error: str
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "detail": self.detail}


@dataclass
class CombinedAsset:
    token_type: str
    chain_id: int
    asset_id: str
    token_id: str
    attributes: str
    created_at: str
    owner: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form; ``owner`` is left out when absent."""
        result: dict[str, Any] = {
            "tokenType": self.token_type,
            "chainId": self.chain_id,
            "assetId": self.asset_id,
            "tokenId": self.token_id,
        }
        if self.owner is not None:
            result["owner"] = self.owner
        result["attributes"] = self.attributes
        result["createdAt"] = self.created_at
        return result


def success_response(data: Any) -> ResponseData:
    """Wrap a successful result."""
    return ResponseData(message="success", data=data)


def error_response(message: str) -> ResponseData:
    """Wrap an error message with no data."""
    return ResponseData(message=message, data=None)