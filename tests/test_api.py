"""HTTP tests: routes, identity, and error-to-status mapping."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from carousel_studio import deps
from carousel_studio.core.errors import (
    AccessDeniedError,
    AssetError,
    ConcurrencyError,
    ConfigurationError,
    ContractViolation,
    InvalidBriefError,
    InvalidDocumentError,
    NotFoundError,
    StudioError,
    TransportError,
)
from carousel_studio.main import app, status_for
from carousel_studio.models.carousel import CarouselAsset
from carousel_studio.schemas.document import Document
from carousel_studio.schemas.planner import validate_planner_output
from carousel_studio.services.compositor import compose_document
from carousel_studio.services.editing import EditingService
from carousel_studio.services.generation import GenerationOrchestrator
from carousel_studio.services.layouts import LAYOUT_CATALOG

BRIEF = {"topic": "cold email tips", "slidesCount": 3, "templateId": "builtin/background-overlay"}


@pytest.fixture
def client(settings, repository, storage, text_adapter, image_adapter):
    app.dependency_overrides[deps.get_repository] = lambda: repository
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_orchestrator] = lambda: GenerationOrchestrator(
        repository, storage, text_adapter=text_adapter, image_adapter=image_adapter,
    )
    app.dependency_overrides[deps.get_editing_service] = lambda: EditingService(
        repository, text_adapter=text_adapter,
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers(owner_id):
    return {"X-User-Id": str(owner_id)}


@pytest.fixture
def document(make_plan):
    plan = validate_planner_output(make_plan(3))
    return compose_document(plan, LAYOUT_CATALOG["builtin/background-overlay"])


@pytest.fixture
def carousel(repository, owner_id, document):
    return repository.add_carousel(owner_id=owner_id, draft=dict(BRIEF), editor_state=document.to_json_dict())


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class TestIdentity:
    def test_missing_user(self, client, carousel):
        response = client.get(f"/api/v1/carousels/{carousel.id}/progress")
        assert response.status_code == 401

    def test_malformed_user(self, client, carousel):
        response = client.get(f"/api/v1/carousels/{carousel.id}/progress", headers={"X-User-Id": "nope"})
        assert response.status_code == 401

    def test_other_owner(self, client, carousel):
        response = client.get(f"/api/v1/carousels/{carousel.id}/progress", headers={"X-User-Id": str(uuid4())})
        assert response.status_code == 403
        assert response.json() == {"error": "FORBIDDEN", "kind": "forbidden"}

    def test_unknown_carousel(self, client, headers):
        response = client.get(f"/api/v1/carousels/{uuid4()}/progress", headers=headers)
        assert response.status_code == 404


class TestGenerateRoute:
    def test_generate_and_poll(self, client, carousel, headers, openai_client, make_plan):
        openai_client.reply(make_plan(3))

        response = client.post(f"/api/v1/carousels/{carousel.id}/generate", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["title"] == "Cold email tip 1"

        state = client.get(f"/api/v1/carousels/{carousel.id}/progress", headers=headers).json()
        assert state["status"] == "succeeded"
        assert state["progress"]["jobId"] == body["jobId"]
        assert state["progress"]["images"]["done"] == 3

    def test_image_model_override(self, client, carousel, headers, openai_client, genai_client, settings, make_plan):
        openai_client.reply(make_plan(1))
        client.post(
            f"/api/v1/carousels/{carousel.id}/generate",
            headers=headers,
            json={"imageModel": settings.image_model_with_text},
        )
        assert genai_client.aio.models.generate_content.call_args.kwargs["model"] == settings.image_model_with_text

    def test_running_is_conflict(self, client, repository, owner_id, headers):
        carousel = repository.add_carousel(owner_id=owner_id, draft=BRIEF, generation_status="running")
        response = client.post(f"/api/v1/carousels/{carousel.id}/generate", headers=headers)
        assert response.status_code == 409
        assert response.json()["kind"] == "generation_running"

    def test_text_failure_is_bad_gateway(self, client, carousel, headers, openai_client):
        openai_client.reply("nope")
        response = client.post(f"/api/v1/carousels/{carousel.id}/generate", headers=headers)
        assert response.status_code == 502
        assert response.json() == {"error": "Text model reply is not valid JSON.", "kind": "non_json", "raw": "nope"}

    def test_empty_brief_is_unprocessable(self, client, repository, owner_id, headers):
        carousel = repository.add_carousel(owner_id=owner_id, draft={})
        response = client.post(f"/api/v1/carousels/{carousel.id}/generate", headers=headers)
        assert response.status_code == 422
        assert response.json()["kind"] == "invalid_brief"

    def test_progress_of_idle_carousel(self, client, carousel, headers):
        state = client.get(f"/api/v1/carousels/{carousel.id}/progress", headers=headers).json()
        assert state == {"status": "idle", "error": None, "progress": None}


class TestEditRoutes:
    def test_edit(self, client, carousel, headers, openai_client):
        openai_client.reply({"ops": [
            {"op": "set_text", "slideIndex": 2, "objectId": "title", "text": "Shorter"},
        ]})
        response = client.post(
            f"/api/v1/carousels/{carousel.id}/edit",
            headers=headers,
            json={"instruction": "shorten the title", "slideIndex": 2},
        )
        assert response.status_code == 200
        assert response.json() == {
            "applied": 1,
            "skippedLocked": 0,
            "skippedMissing": 0,
            "skippedPolicy": 0,
            "blockedByLock": 0,
            "summary": "Updated text/style",
        }
        assert Document.model_validate(carousel.editor_state).slides[1].find("title").text == "Shorter"

    def test_edit_requires_instruction(self, client, carousel, headers):
        response = client.post(f"/api/v1/carousels/{carousel.id}/edit", headers=headers, json={"instruction": ""})
        assert response.status_code == 422

    def test_cleanup_placeholders(self, client, carousel, headers):
        response = client.post(f"/api/v1/carousels/{carousel.id}/cleanup-placeholders", headers=headers)
        assert response.json() == {"hidden": 3}
        again = client.post(f"/api/v1/carousels/{carousel.id}/cleanup-placeholders", headers=headers)
        assert again.json() == {"hidden": 0}

    @pytest.mark.parametrize("locks", [{"slide_1": {"title": True}}, ["1:title"]])
    def test_replace_locks(self, client, carousel, headers, locks):
        response = client.put(f"/api/v1/carousels/{carousel.id}/locks", headers=headers, json=locks)
        assert response.status_code == 200
        assert carousel.element_locks == locks


class TestAssetUrl:
    def test_signed_url(self, client, repository, carousel, headers, settings):
        asset = CarouselAsset(
            id=uuid4(),
            carousel_id=carousel.id,
            workspace_id=carousel.workspace_id,
            owner_id=carousel.owner_id,
            asset_type="generated",
            storage_bucket="carousel-assets",
            storage_path="a/b.png",
            mime_type="image/png",
            status="ready",
            metadata_={},
        )
        repository.assets.append(asset)
        response = client.get(f"/api/v1/carousels/{carousel.id}/assets/{asset.id}/url", headers=headers)
        assert response.status_code == 200
        ttl = settings.signed_url_ttl_seconds
        assert response.json() == {
            "url": f"https://storage.test/carousel-assets/a/b.png?ttl={ttl}",
            "expiresIn": ttl,
        }

    def test_unknown_asset(self, client, carousel, headers):
        response = client.get(f"/api/v1/carousels/{carousel.id}/assets/{uuid4()}/url", headers=headers)
        assert response.status_code == 404


@pytest.mark.parametrize("error,code", [
    (ConcurrencyError(), 409),
    (NotFoundError(), 404),
    (AccessDeniedError(), 403),
    (InvalidBriefError("x"), 422),
    (InvalidDocumentError("x"), 422),
    (TransportError("x"), 502),
    (ContractViolation("x", kind="non_json"), 502),
    (AssetError("x"), 502),
    (ConfigurationError("x"), 500),
    (StudioError("x"), 500),
])
def test_status_for(error, code):
    assert status_for(error) == code
