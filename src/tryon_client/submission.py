from __future__ import annotations

import asyncio
import hashlib
import re
from typing import Literal, NotRequired, TypedDict

from tryon_client.auth import AuthenticatedRequestClient
from tryon_client.config import DuplicatePolicy
from tryon_client.errors import ParseError, ValidationError
from tryon_client.http_client import FormFields, FormFiles, UploadFile, is_success
from tryon_client.http_utils import (
    accept_language_header,
    is_absolute_http_url,
    normalize_shop_domain,
)
from tryon_client.json_utils import JSONValue, dump_json_str, scalar_to_str
from tryon_client.logging import get_logger
from tryon_client.responses import parse_json_object, remote_error_from_response

_logger = get_logger(__name__)

_DEMO_PERSON_RE = re.compile(r"^new_demo_person_(\d+)$")

GARMENT_FILENAME = "clothing-item.jpg"
ASPECT_RATIO = "1:1"


class CropRegion(TypedDict):
    """Person bounding box within the source photo, in pixels."""

    x: float
    y: float
    width: float
    height: float
    image_width: NotRequired[float]
    image_height: NotRequired[float]


class CustomerInfo(TypedDict, total=False):
    id: str
    email: str
    first_name: str
    last_name: str


class ProductInfo(TypedDict, total=False):
    id: str
    title: str
    url: str
    variant_id: str


class SubmissionPayload(TypedDict, total=False):
    """Input for one try-on generation.

    Exactly one of ``person_file``, ``person_url`` or ``demo_person_id`` and
    exactly one of ``garment_file`` or ``garment_url`` must be set.
    """

    person_file: UploadFile
    person_url: str
    demo_person_id: str
    garment_file: UploadFile
    garment_url: str
    store_name: str
    clothing_key: str
    customer: CustomerInfo
    product: ProductInfo
    crop_region: CropRegion
    locale: str


class SubmitAccepted:
    __slots__ = ("job_id",)

    kind: Literal["accepted"] = "accepted"

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id


class SubmitCompleted:
    __slots__ = ("image",)

    kind: Literal["completed"] = "completed"

    def __init__(self, image: str) -> None:
        self.image = image


SubmitResult = SubmitAccepted | SubmitCompleted


def _present(value: str | None) -> bool:
    return value is not None and value.strip() != ""


def validate_payload(payload: SubmissionPayload, *, demo_person_max: int = 12) -> None:
    """Raise ValidationError if the payload cannot be submitted."""
    person_set = [
        "person_file" in payload,
        _present(payload.get("person_url")),
        _present(payload.get("demo_person_id")),
    ]
    garment_set = ["garment_file" in payload, _present(payload.get("garment_url"))]
    if sum(person_set) == 0:
        raise ValidationError("A person image is required")
    if sum(person_set) > 1:
        raise ValidationError("Provide only one of person_file, person_url or demo_person_id")
    if sum(garment_set) == 0:
        raise ValidationError("A clothing image is required")
    if sum(garment_set) > 1:
        raise ValidationError("Provide only one of garment_file or garment_url")

    person_file = payload.get("person_file")
    if person_file is not None and len(person_file[1]) == 0:
        raise ValidationError("Person image file is empty")
    garment_file = payload.get("garment_file")
    if garment_file is not None and len(garment_file[1]) == 0:
        raise ValidationError("Clothing image file is empty")

    for key in ("person_url", "garment_url"):
        url = payload.get(key)
        if isinstance(url, str) and _present(url) and not is_absolute_http_url(url):
            raise ValidationError(f"{key} must be an absolute http(s) URL")

    demo_id = payload.get("demo_person_id")
    if demo_id is not None and _present(demo_id):
        match = _DEMO_PERSON_RE.match(demo_id.strip())
        if match is None:
            raise ValidationError(f"Unknown demo person id: {demo_id}")
        index = int(match.group(1))
        if index < 1 or index > demo_person_max:
            raise ValidationError(f"Demo person id out of range: {demo_id}")


def _crop_region_json(region: CropRegion) -> str:
    body: dict[str, JSONValue] = {
        "x": region["x"],
        "y": region["y"],
        "width": region["width"],
        "height": region["height"],
    }
    if "image_width" in region:
        body["imageWidth"] = region["image_width"]
    if "image_height" in region:
        body["imageHeight"] = region["image_height"]
    return dump_json_str(body)


def _put(fields: FormFields, key: str, value: str | None) -> None:
    if value is not None and value.strip() != "":
        fields[key] = value.strip()


def encode_payload(payload: SubmissionPayload) -> tuple[FormFields, FormFiles]:
    """Map a validated payload onto multipart form fields and files.

    Empty optional values are left out and ``aspectRatio`` is always ``1:1``.
    """
    fields: FormFields = {}
    files: FormFiles = {}

    person_file = payload.get("person_file")
    if person_file is not None:
        files["personImage"] = person_file
    _put(fields, "personImageUrl", payload.get("person_url"))
    _put(fields, "personKey", payload.get("demo_person_id"))

    garment_file = payload.get("garment_file")
    if garment_file is not None:
        files["clothingImage"] = (GARMENT_FILENAME, garment_file[1], garment_file[2])
    _put(fields, "clothingImageUrl", payload.get("garment_url"))

    _put(fields, "storeName", payload.get("store_name"))
    _put(fields, "clothingKey", payload.get("clothing_key"))

    customer = payload.get("customer")
    if customer is not None:
        _put(fields, "customerId", customer.get("id"))
        _put(fields, "customerEmail", customer.get("email"))
        _put(fields, "customerFirstName", customer.get("first_name"))
        _put(fields, "customerLastName", customer.get("last_name"))

    product = payload.get("product")
    if product is not None:
        _put(fields, "productId", product.get("id"))
        _put(fields, "productTitle", product.get("title"))
        _put(fields, "productUrl", product.get("url"))
        _put(fields, "variantId", product.get("variant_id"))

    region = payload.get("crop_region")
    if region is not None:
        fields["personBbox"] = _crop_region_json(region)

    fields["aspectRatio"] = ASPECT_RATIO
    return fields, files


def payload_fingerprint(fields: FormFields, files: FormFiles) -> str:
    digest = hashlib.sha256()
    for key in sorted(fields):
        digest.update(f"{key}={fields[key]}\n".encode())
    for key in sorted(files):
        filename, data, content_type = files[key]
        digest.update(f"{key}:{filename}:{content_type}:".encode())
        digest.update(hashlib.sha256(data).digest())
    return digest.hexdigest()


class JobSubmissionClient:
    """Validate, encode and post try-on requests.

    Returns ``SubmitAccepted`` for a queued job (HTTP 202 with ``jobId``) or
    ``SubmitCompleted`` when the server answers synchronously with the image.
    With ``duplicate_policy="coalesce"`` concurrent submits with identical
    inputs share one in-flight request.
    """

    def __init__(
        self,
        *,
        requester: AuthenticatedRequestClient,
        base_url: str,
        demo_person_max: int = 12,
        duplicate_policy: DuplicatePolicy = "allow",
        locale: str | None = None,
    ) -> None:
        self._requester = requester
        self._base = base_url.rstrip("/")
        self._demo_max = int(demo_person_max)
        self._policy: DuplicatePolicy = duplicate_policy
        self._locale = locale
        self._inflight: dict[str, tuple[asyncio.Task[SubmitResult], str]] = {}

    def submit_url(self, store_name: str | None) -> str:
        url = f"{self._base}/api/fashion-photo"
        if store_name is not None:
            shop = normalize_shop_domain(store_name)
            if shop != "":
                url = f"{url}?shop={shop}"
        return url

    async def submit(self, payload: SubmissionPayload, *, request_id: str) -> SubmitResult:
        validate_payload(payload, demo_person_max=self._demo_max)
        fields, files = encode_payload(payload)
        url = self.submit_url(payload.get("store_name"))
        locale = payload.get("locale", self._locale)
        headers = accept_language_header(locale)

        if self._policy != "coalesce":
            return await self._post(url, headers, fields, files, request_id)

        key = payload_fingerprint(fields, files)
        inflight = self._inflight.get(key)
        if inflight is None:
            task = asyncio.ensure_future(self._post(url, headers, fields, files, request_id))
            self._inflight[key] = (task, request_id)
            task.add_done_callback(lambda _t: self._inflight.pop(key, None))
        else:
            # Followers reuse the leader's request and its X-Request-ID.
            task, shared_id = inflight
            _logger.info(
                "tryon_submit_coalesced",
                extra={
                    "cache_key": key[:12],
                    "coalesced_request_id": request_id,
                    "shared_request_id": shared_id,
                },
            )
        return await asyncio.shield(task)

    async def _post(
        self,
        url: str,
        headers: dict[str, str],
        fields: FormFields,
        files: FormFiles,
        request_id: str,
    ) -> SubmitResult:
        resp = await self._requester.request(
            "POST",
            url,
            headers=headers,
            data=fields,
            files=files if files else None,
            request_id=request_id,
        )
        status = int(resp.status_code)
        if not is_success(resp):
            err = remote_error_from_response(resp)
            _logger.info(
                "tryon_submit_rejected",
                extra={"status_code": status, "error_code": err.code},
            )
            raise err

        body = parse_json_object(resp, "submit")
        if status == 202:
            job_id = scalar_to_str(body.get("jobId", None))
            if job_id is None:
                raise ParseError("Accepted response is missing jobId")
            _logger.info("tryon_submit_accepted", extra={"job_id": job_id, "status_code": status})
            return SubmitAccepted(job_id)

        image = body.get("image")
        if body.get("status") == "success" and isinstance(image, str) and image.strip() != "":
            _logger.info("tryon_submit_completed", extra={"status_code": status})
            return SubmitCompleted(image)
        raise ParseError(f"Unexpected submit response (HTTP {status})")


__all__ = [
    "ASPECT_RATIO",
    "GARMENT_FILENAME",
    "CropRegion",
    "CustomerInfo",
    "JobSubmissionClient",
    "ProductInfo",
    "SubmissionPayload",
    "SubmitAccepted",
    "SubmitCompleted",
    "SubmitResult",
    "encode_payload",
    "payload_fingerprint",
    "validate_payload",
]
