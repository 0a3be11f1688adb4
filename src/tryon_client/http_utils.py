from __future__ import annotations

import uuid
from collections.abc import Mapping
from urllib.parse import urlsplit


def add_correlation_header(
    headers: Mapping[str, str] | None,
    request_id: str | None,
    *,
    header_name: str = "X-Request-ID",
) -> dict[str, str]:
    """Return a copy of headers including a correlation header.

    A missing or blank request_id leaves the copy untouched.
    """
    base: dict[str, str] = dict(headers or {})
    if request_id is not None and request_id.strip() != "":
        base[header_name] = request_id
    return base


def accept_language_header(locale: str | None) -> dict[str, str]:
    """Build an Accept-Language header preferring locale, then its base language."""
    if locale is None or locale.strip() == "":
        return {}
    tag = locale.strip().replace("_", "-")
    base_lang = tag.split("-", 1)[0].lower()
    parts: list[str] = [tag]
    if base_lang != tag.lower():
        parts.append(f"{base_lang};q=0.9")
    if base_lang != "en":
        parts.append("en;q=0.8")
    return {"Accept-Language": ",".join(parts)}


def new_request_id(prefix: str = "tryon") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


def normalize_shop_domain(shop: str) -> str:
    """Normalize a storefront name to its ``*.myshopify.com`` domain."""
    normalized = shop.strip().lower()
    for scheme in ("https://", "http://"):
        if normalized.startswith(scheme):
            normalized = normalized[len(scheme) :]
    normalized = normalized.rstrip("/")
    if normalized == "":
        return ""
    if ".myshopify.com" not in normalized:
        normalized = f"{normalized}.myshopify.com"
    return normalized


def is_absolute_http_url(url: str) -> bool:
    parts = urlsplit(url.strip())
    return parts.scheme in ("http", "https") and parts.netloc != ""


def url_host(url: str) -> str:
    return (urlsplit(url.strip()).hostname or "").lower()


__all__ = [
    "accept_language_header",
    "add_correlation_header",
    "is_absolute_http_url",
    "new_request_id",
    "normalize_shop_domain",
    "url_host",
]
