"""Shared fixtures: in-memory repository/storage and mocked model SDK clients."""

import json
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest

from carousel_studio.config import get_settings
from carousel_studio.core.errors import AssetError
from carousel_studio.models.carousel import AssetType, Carousel, CarouselAsset
from carousel_studio.schemas.generation import GenerationStatus
from carousel_studio.services.image_generation import ImageGenerationAdapter
from carousel_studio.services.repository import CarouselRepository
from carousel_studio.services.text_generation import TextGenerationAdapter

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 256


# ─── Plans ───────────────────────────────────────────────────────────────────


def _plan(
    slides: int = 5,
    *,
    template_id: str = "builtin/background-overlay",
    slot_id: str | None = "background",
    purpose: str = "background",
    with_images: bool = True,
    overlay: dict | None = None,
) -> dict[str, Any]:
    global_style: dict[str, Any] = {
        "palette": {"background": "#FFFFFF", "text": "#111111", "accent": "#FF5500"},
        "typography": {
            "titleFontFamily": "Inter",
            "bodyFontFamily": "Inter",
            "titleSize": 64,
            "bodySize": 32,
            "ctaSize": 26,
            "alignment": "left",
        },
        "spacing": {"padding": 80},
        "templateId": template_id,
    }
    if overlay is not None:
        global_style["backgroundOverlay"] = overlay

    slide_list = []
    for i in range(1, slides + 1):
        slide: dict[str, Any] = {
            "index": i,
            "text": {"title": f"Cold email tip {i}", "body": f"Keep it short, part {i}."},
        }
        if i == slides:
            slide["text"]["cta"] = "Follow for more"
        if with_images:
            request: dict[str, Any] = {"purpose": purpose, "prompt": f"Minimal desk scene {i}"}
            if slot_id:
                request["slotId"] = slot_id
            slide["images"] = [request]
        slide_list.append(slide)
    return {"version": 1, "globalStyle": global_style, "slides": slide_list}


@pytest.fixture
def make_plan():
    return _plan


# ─── Settings ────────────────────────────────────────────────────────────────


@pytest.fixture
def settings(monkeypatch):
    """The cached settings object; attributes may be monkeypatched per test."""
    s = get_settings()
    monkeypatch.setattr(s, "aesthetic_max_passes", 0)
    monkeypatch.setattr(s, "generation_debug", False)
    return s


# ─── Persistence ─────────────────────────────────────────────────────────────


class FakeRepository(CarouselRepository):
    """In-memory stand-in with the same method surface as the SQL repository."""

    def __init__(self) -> None:
        super().__init__(session_maker=None)
        self.carousels: dict[UUID, Carousel] = {}
        self.assets: list[CarouselAsset] = []
        self.templates: dict[str, dict[str, Any]] = {}
        self.progress_log: list[dict[str, Any]] = []
        self.fail_asset_insert_for: set[int] = set()
        self._asset_inserts = 0

    def add_carousel(self, *, owner_id: UUID, draft: dict[str, Any], **fields: Any) -> Carousel:
        carousel = Carousel(
            id=fields.pop("id", uuid4()),
            workspace_id=fields.pop("workspace_id", uuid4()),
            owner_id=owner_id,
            title=fields.pop("title", None),
            draft=draft,
            editor_state=fields.pop("editor_state", {}),
            element_locks=fields.pop("element_locks", {}),
            generation_status=fields.pop("generation_status", GenerationStatus.IDLE.value),
            generation_error=None,
            generation_meta=fields.pop("generation_meta", {}),
        )
        self.carousels[carousel.id] = carousel
        return carousel

    async def get(self, carousel_id):
        return self.carousels.get(carousel_id)

    async def list_assets(self, carousel_id, *, asset_type):
        return [a for a in self.assets if a.carousel_id == carousel_id and a.asset_type == asset_type]

    async def get_asset(self, carousel_id, asset_id):
        for asset in self.assets:
            if asset.id == asset_id and asset.carousel_id == carousel_id:
                return asset
        return None

    async def get_template_data(self, template_id):
        return self.templates.get(template_id)

    async def try_start_generation(self, carousel_id, owner_id, meta):
        carousel = self.carousels.get(carousel_id)
        if carousel is None or carousel.owner_id != owner_id:
            return False
        if carousel.generation_status == GenerationStatus.RUNNING.value:
            return False
        carousel.generation_status = GenerationStatus.RUNNING.value
        carousel.generation_error = None
        carousel.generation_meta = meta
        self.progress_log.append(meta)
        return True

    async def save_progress(self, carousel_id, meta):
        self.carousels[carousel_id].generation_meta = meta
        self.progress_log.append(meta)

    async def fail_generation(self, carousel_id, error, meta):
        carousel = self.carousels[carousel_id]
        carousel.generation_status = GenerationStatus.FAILED.value
        carousel.generation_error = error
        carousel.generation_meta = meta

    async def finish_generation(self, carousel_id, *, title, editor_state, meta):
        carousel = self.carousels[carousel_id]
        carousel.editor_state = editor_state
        carousel.generation_status = GenerationStatus.SUCCEEDED.value
        carousel.generation_error = None
        carousel.generation_meta = meta
        if title:
            carousel.title = title

    async def save_editor_state(self, carousel_id, editor_state, *, meta=None):
        carousel = self.carousels[carousel_id]
        carousel.editor_state = editor_state
        if meta is not None:
            carousel.generation_meta = meta

    async def save_locks(self, carousel_id, locks):
        self.carousels[carousel_id].element_locks = locks

    async def insert_generated_asset(self, carousel, *, bucket, path, mime_type, metadata):
        from sqlalchemy.exc import OperationalError

        self._asset_inserts += 1
        if self._asset_inserts in self.fail_asset_insert_for:
            raise OperationalError("INSERT carousel_assets", {}, Exception("db down"))
        asset = CarouselAsset(
            id=uuid4(),
            carousel_id=carousel.id,
            workspace_id=carousel.workspace_id,
            owner_id=carousel.owner_id,
            asset_type=AssetType.GENERATED.value,
            storage_bucket=bucket,
            storage_path=path,
            mime_type=mime_type,
            status="ready",
            metadata_=metadata,
        )
        self.assets.append(asset)
        return asset.id


@pytest.fixture
def repository():
    return FakeRepository()


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.fail_uploads = False

    async def download(self, bucket, path):
        try:
            return self.objects[(bucket, path)]
        except KeyError:
            raise AssetError(f"Download failed for {bucket}/{path}", kind="download") from None

    async def upload(self, bucket, path, data, content_type):
        if self.fail_uploads:
            raise AssetError(f"Upload failed for {bucket}/{path}", kind="failed_upload")
        self.objects[(bucket, path)] = data

    async def sign_url(self, bucket, path, ttl=None):
        return f"https://storage.test/{bucket}/{path}?ttl={ttl}"


@pytest.fixture
def storage():
    return FakeStorage()


# ─── Model SDK mocks ─────────────────────────────────────────────────────────


def chat_response(content: str):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=120, completion_tokens=480),
    )


@pytest.fixture
def openai_client():
    """Mocked AsyncOpenAI; queue replies with ``client.reply(*payloads)``."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.models.list = AsyncMock(return_value=SimpleNamespace(data=[]))

    def reply(*payloads):
        client.chat.completions.create.side_effect = [
            chat_response(p if isinstance(p, str) else json.dumps(p)) for p in payloads
        ]

    client.reply = reply
    return client


@pytest.fixture
def text_adapter(openai_client):
    return TextGenerationAdapter(client=openai_client, model="gemini-3.0-flash")


def image_response(data: bytes = PNG_BYTES, mime_type: str = "image/png"):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


def empty_image_response():
    return SimpleNamespace(candidates=[])


@pytest.fixture
def genai_client():
    """Mocked google-genai client; every call returns a valid PNG unless overridden."""
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=image_response())
    return client


@pytest.fixture
def image_adapter(genai_client):
    return ImageGenerationAdapter(client=genai_client)


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def sdk():
    """Builders for raw SDK replies, for tests that script failures."""
    return SimpleNamespace(
        chat=chat_response,
        image=image_response,
        empty_image=empty_image_response,
        png=PNG_BYTES,
    )
