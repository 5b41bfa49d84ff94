from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import Settings
from app.schemas.listing import GALLERY_FIELDS, pad_gallery

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]*)*?);base64,(?P<data>.*)$", re.DOTALL)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/avif": "avif",
    "image/svg+xml": "svg",
}


class ImageValidationError(Exception):
    pass


class ImageUploadError(Exception):
    pass


@dataclass(frozen=True)
class DecodedImage:
    content: bytes
    mime_type: str

    @property
    def extension(self) -> str:
        return _EXTENSIONS.get(self.mime_type, "bin")


def is_inline_image(value: Optional[str]) -> bool:
    """
    True only for inline `data:` payloads that still need uploading.
    Remote URLs, gs:// URIs, bare asset paths and empty values are
    already resolved and must be stored as they are.
    """
    if not value or not isinstance(value, str):
        return False
    return value.lstrip()[:5].lower() == "data:"


def decode_inline_image(value: str) -> DecodedImage:
    """Decode a base64 data URL into raw bytes plus its MIME type."""
    match = _DATA_URL_RE.match(value.strip())
    if not match:
        raise ImageValidationError("not a base64 data URL")
    mime_type = (match.group("mime") or "").lower()
    if not mime_type.startswith("image/"):
        raise ImageValidationError(f"unsupported content type: {mime_type or 'missing'}")
    try:
        content = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageValidationError(f"invalid base64 payload: {e}")
    if not content:
        raise ImageValidationError("empty image payload")
    return DecodedImage(content=content, mime_type=mime_type)


def _sanitize(part: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", part.lower()).strip("_")


def storage_path(brand: Optional[str], model: Optional[str], purpose: str,
                 extension: str = "jpg", timestamp_ms: Optional[int] = None) -> str:
    """
    Object-storage key for an image: cars/<brand>_<model>/<purpose>_<timestamp>.<ext>

    Brand and model are required because they namespace the upload.
    """
    if not brand or not brand.strip() or not model or not model.strip():
        raise ImageValidationError("brand and model are required before uploading images")
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"cars/{_sanitize(brand)}_{_sanitize(model)}/{purpose}_{timestamp_ms}.{extension}"


class ObjectStorage:
    """Uploads image blobs to the storage bucket and returns their public URL."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.upload_url = settings.storage_url.rstrip("/")
        self.public_url = settings.storage_public_url.rstrip("/")
        self.token = settings.storage_token
        self._client = client

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _put(self, client: httpx.AsyncClient, path: str, image: DecodedImage) -> None:
        headers = {"Content-Type": image.mime_type}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        response = await client.put(f"{self.upload_url}/{path}", content=image.content, headers=headers, timeout=30.0)
        response.raise_for_status()

    async def upload(self, path: str, image: DecodedImage) -> str:
        try:
            if self._client is not None:
                await self._put(self._client, path, image)
            else:
                async with httpx.AsyncClient() as client:
                    await self._put(client, path, image)
        except httpx.HTTPError as e:
            raise ImageUploadError(f"Failed to upload {path}: {e}")
        logger.info("Image uploaded", extra={"path": path, "bytes": len(image.content)})
        return f"{self.public_url}/{path}"


async def _resolve_one(value: Optional[str], brand, model, purpose: str, storage: ObjectStorage) -> Optional[str]:
    if not value:
        return None
    if not is_inline_image(value):
        return value
    image = decode_inline_image(value)
    return await storage.upload(storage_path(brand, model, purpose, image.extension), image)


async def resolve_listing_images(
    payload: Dict[str, Any], storage: ObjectStorage,
    brand: Optional[str] = None, model: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Replace every inline image in a listing payload with an uploaded URL.

    Works on full and partial payloads: only the image fields present are
    touched. Gallery slots keep their positions; empty slots stay None.
    `brand`/`model` fill in for partial updates that do not carry them.
    """
    resolved = dict(payload)
    brand = resolved.get("brand") or brand
    model = resolved.get("model") or model

    has_inline = any(is_inline_image(resolved.get(field)) for field in ("image", "logo")) or any(
        is_inline_image(img) for field in GALLERY_FIELDS for img in (resolved.get(field) or [])
    )
    if has_inline:
        # Fail before any network call
        storage_path(brand, model, "check")

    if "image" in resolved:
        resolved["image"] = await _resolve_one(resolved["image"], brand, model, "main", storage)
    if "logo" in resolved:
        resolved["logo"] = await _resolve_one(resolved["logo"], brand, model, "logo", storage)

    for field, slots in GALLERY_FIELDS.items():
        if resolved.get(field) is None:
            continue
        tag = "ext" if field == "gallery_exterior" else "int"
        gallery = pad_gallery(resolved[field], slots)
        resolved[field] = [
            await _resolve_one(img, brand, model, f"{tag}{index}", storage)
            for index, img in enumerate(gallery)
        ]
    return resolved
