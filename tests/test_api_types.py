import json

from layergcrawl.api_types import (
    CombinedAsset,
    ErrorResponse,
    ResponseData,
    error_response,
    success_response,
)


def test_success_response():
    payload = {"id": 1}
    response = success_response(payload)
    assert response.to_dict() == {"message": "success", "data": payload}


def test_error_response():
    assert error_response("boom").to_dict() == {"message": "boom", "data": None}


def test_response_data_json():
    text = json.dumps(ResponseData("ok", [1, 2]).to_dict())
    assert json.loads(text) == {"message": "ok", "data": [1, 2]}


def test_error_response_dict():
    assert ErrorResponse("bad", "details here").to_dict() == {
        "error": "bad",
        "detail": "details here",
    }


def _asset(owner=None):
    return CombinedAsset(
        token_type="ERC721",
        chain_id=2484,
        asset_id="asset-1",
        token_id="7",
        attributes="{}",
        created_at="2024-01-01",
        owner=owner,
    )


def test_combined_asset_omits_missing_owner():
    data = _asset().to_dict()
    assert "owner" not in data
    assert list(data) == ["tokenType", "chainId", "assetId", "tokenId", "attributes", "createdAt"]
    assert data["chainId"] == 2484


def test_combined_asset_keeps_empty_owner():
    assert _asset(owner="").to_dict()["owner"] == ""
    assert _asset(owner="0xabc").to_dict()["owner"] == "0xabc"