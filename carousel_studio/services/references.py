"""Load user-supplied reference images for the planner prompt."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Literal
from uuid import UUID

from carousel_studio.config import get_settings
from carousel_studio.core.errors import StudioError
from carousel_studio.core.logging import get_logger

logger = get_logger(__name__)

ReferenceKind = Literal["style", "content"]

_EXTENSION_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
}


def normalize_image_mime_type(mime_type: str | None, filename: str | None) -> str | None:
    """Return a MIME type the model accepts as inline image data, or ``None``.

    Declared ``image/*`` types are trusted (HEIC excepted). A missing or
    generic ``application/octet-stream`` type is inferred from the extension.
    """
    raw = mime_type.strip().lower() if isinstance(mime_type, str) else ""
    if raw.startswith("image/") and raw != "image/heic":
        return raw
    if raw and raw != "application/octet-stream":
        return None
    name = filename.lower() if isinstance(filename, str) else ""
    ext = name.rsplit(".", 1)[-1] if "." in name else ""
    return _EXTENSION_MIME_TYPES.get(ext)


@dataclass(frozen=True)
class ReferenceImage:
    mime_type: str
    data: str  # base64
    name: str
    kind: ReferenceKind


@dataclass
class ReferenceSet:
    style: list[ReferenceImage] = field(default_factory=list)
    content: list[ReferenceImage] = field(default_factory=list)

    @property
    def attachments(self) -> list[ReferenceImage]:
        """Style references first, then content, the order the manifest numbers them."""
        return [*self.style, *self.content]


class ReferenceLoader:
    """Fetch a bounded number of reference images per role from storage.

    Missing, unreadable or non-image assets are skipped; reference loading
    never fails a generation.
    """

    def __init__(self, repository, storage) -> None:
        settings = get_settings()
        self.repository = repository
        self.storage = storage
        self.limits: dict[str, int] = {
            "style": settings.max_style_references,
            "content": settings.max_content_references,
        }

    async def load(self, carousel_id: UUID) -> ReferenceSet:
        refs = ReferenceSet()
        assets = await self.repository.list_assets(carousel_id, asset_type="reference")

        for asset in assets:
            kind = (asset.metadata_ or {}).get("reference_kind")
            if kind not in ("style", "content"):
                continue
            bucket: list[ReferenceImage] = getattr(refs, kind)
            if len(bucket) >= self.limits[kind]:
                continue

            name = asset.storage_path.rsplit("/", 1)[-1] or "reference"
            mime_type = normalize_image_mime_type(asset.mime_type, name)
            if mime_type is None:
                logger.debug("reference_skipped", asset_id=str(asset.id), reason="mime_type")
                continue

            try:
                data = await self.storage.download(asset.storage_bucket, asset.storage_path)
            except StudioError as e:
                logger.warning("reference_download_failed", asset_id=str(asset.id), error=str(e))
                continue

            bucket.append(ReferenceImage(
                mime_type=mime_type,
                data=base64.b64encode(data).decode("ascii"),
                name=name,
                kind=kind,
            ))

        logger.info("references_loaded", style=len(refs.style), content=len(refs.content))
        return refs
