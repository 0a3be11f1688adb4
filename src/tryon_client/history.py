from __future__ import annotations

from typing import TypedDict

from tryon_client.auth import AuthenticatedRequestClient
from tryon_client.errors import ParseError, RemoteError
from tryon_client.http_client import is_success
from tryon_client.json_utils import JSONObject, JSONValue, scalar_to_str
from tryon_client.logging import get_logger
from tryon_client.responses import parse_json_object, remote_error_from_response
from tryon_client.submission import CropRegion

_logger = get_logger(__name__)


class HistoryItem(TypedDict):
    id: str
    person_image_url: str | None
    clothing_image_url: str | None
    generated_image_url: str | None
    status: str | None
    created_at: str | None
    person_bbox: CropRegion | None


class Pagination(TypedDict):
    page: int
    limit: int
    total: int | None
    has_more: bool


class HistoryPage(TypedDict):
    items: list[HistoryItem]
    pagination: Pagination


def _url_field(obj: JSONObject, key: str) -> str | None:
    value = obj.get(key)
    if isinstance(value, str) and value.strip() != "":
        return value
    return None


def _number(value: JSONValue) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def decode_crop_region(raw: JSONValue) -> CropRegion | None:
    """Read a ``personBbox`` object; anything without the four box numbers is None."""
    if not isinstance(raw, dict):
        return None
    x = _number(raw.get("x"))
    y = _number(raw.get("y"))
    width = _number(raw.get("width"))
    height = _number(raw.get("height"))
    if x is None or y is None or width is None or height is None:
        return None
    region: CropRegion = {"x": x, "y": y, "width": width, "height": height}
    image_width = _number(raw.get("imageWidth"))
    if image_width is not None:
        region["image_width"] = image_width
    image_height = _number(raw.get("imageHeight"))
    if image_height is not None:
        region["image_height"] = image_height
    return region


def _decode_item(raw: JSONValue) -> HistoryItem | None:
    if not isinstance(raw, dict):
        return None
    item_id = scalar_to_str(raw.get("id"))
    if item_id is None:
        return None
    status = raw.get("status")
    created_at = raw.get("createdAt")
    return {
        "id": item_id,
        "person_image_url": _url_field(raw, "personImageUrl"),
        "clothing_image_url": _url_field(raw, "clothingImageUrl"),
        "generated_image_url": _url_field(raw, "generatedImageUrl"),
        "status": status if isinstance(status, str) else None,
        "created_at": created_at if isinstance(created_at, str) else None,
        "person_bbox": decode_crop_region(raw.get("personBbox")),
    }


def _int_field(obj: JSONObject, key: str, default: int) -> int:
    value = obj.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default


def _decode_pagination(raw: JSONValue, page: int, limit: int) -> Pagination:
    if not isinstance(raw, dict):
        return {"page": page, "limit": limit, "total": None, "has_more": False}
    total_raw = raw.get("total")
    total = total_raw if isinstance(total_raw, int) and not isinstance(total_raw, bool) else None
    has_more_raw = raw.get("hasMore")
    if isinstance(has_more_raw, bool):
        has_more = has_more_raw
    else:
        has_more = total is not None and page * limit < total
    return {
        "page": _int_field(raw, "page", page),
        "limit": _int_field(raw, "limit", limit),
        "total": total,
        "has_more": has_more,
    }


def decode_history_page(body: JSONObject, *, page: int, limit: int) -> HistoryPage:
    success = body.get("success")
    if success is False:
        message = body.get("message") or body.get("error")
        raise RemoteError(
            200,
            "HISTORY_UNAVAILABLE",
            message if isinstance(message, str) and message != "" else "History unavailable",
        )
    data = body.get("data")
    if success is not True or not isinstance(data, list):
        raise ParseError("Invalid history response")
    items: list[HistoryItem] = []
    for raw in data:
        item = _decode_item(raw)
        if item is not None:
            items.append(item)
    return {
        "items": items,
        "pagination": _decode_pagination(body.get("pagination"), page, limit),
    }


class HistoryClient:
    """Read a customer's past try-on generations."""

    def __init__(self, *, requester: AuthenticatedRequestClient, base_url: str) -> None:
        self._requester = requester
        self._base = base_url.rstrip("/")

    async def fetch_customer_history(
        self,
        email: str,
        *,
        page: int = 1,
        limit: int = 20,
        store: str | None = None,
        request_id: str | None = None,
    ) -> HistoryPage:
        params: dict[str, str] = {"email": email, "page": str(page), "limit": str(limit)}
        if store is not None and store.strip() != "":
            params["store"] = store.strip()
        resp = await self._requester.request(
            "GET",
            f"{self._base}/api/fashion-photo/customer",
            params=params,
            request_id=request_id,
        )
        if not is_success(resp):
            raise remote_error_from_response(resp)
        result = decode_history_page(parse_json_object(resp, "history"), page=page, limit=limit)
        _logger.debug("tryon_history_fetched", extra={"status_code": int(resp.status_code)})
        return result


__all__ = [
    "HistoryClient",
    "HistoryItem",
    "HistoryPage",
    "Pagination",
    "decode_crop_region",
    "decode_history_page",
]
