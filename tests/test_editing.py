"""Tests for natural-language editing under the lock set."""

import itertools
import json
from unittest.mock import AsyncMock

import pytest

from carousel_studio.core.errors import ConcurrencyError, ContractViolation, InvalidDocumentError
from carousel_studio.schemas.document import Document, ImageObject, OtherObject, TextObject
from carousel_studio.schemas.generation import EDIT_HISTORY_LIMIT, EditRequest
from carousel_studio.schemas.planner import validate_planner_output
from carousel_studio.services.compositor import compose_document
from carousel_studio.services.editing import (
    LOCKED_ONLY_SUMMARY,
    EditingService,
    allowed_target_keys,
    editable_summary,
    infer_object_role,
    infer_requested_roles,
)
from carousel_studio.services.events import ProgressEventPublisher
from carousel_studio.services.layouts import LAYOUT_CATALOG


@pytest.fixture
def document(make_plan):
    plan = validate_planner_output(make_plan(3))
    return compose_document(plan, LAYOUT_CATALOG["builtin/background-overlay"])


@pytest.fixture
def redis():
    client = AsyncMock()
    client.incr.side_effect = itertools.count(1)
    return client


@pytest.fixture
def service(repository, text_adapter, redis):
    return EditingService(repository, text_adapter=text_adapter, publisher=ProgressEventPublisher(redis))


@pytest.fixture
def add(repository, owner_id, document):
    def _add(**fields):
        return repository.add_carousel(
            owner_id=owner_id,
            draft={"topic": "cold email tips"},
            editor_state=fields.pop("editor_state", document.to_json_dict()),
            generation_status=fields.pop("generation_status", "succeeded"),
            **fields,
        )

    return _add


def _style(slide_index, object_id="title", **style):
    return {"op": "set_style", "slideIndex": slide_index, "objectId": object_id, "style": style}


def _weight(carousel, slide_index, object_id="title"):
    return Document.model_validate(carousel.editor_state).slides[slide_index - 1].find(object_id).font_weight


# ─── Role inference ──────────────────────────────────────────────────────────


class TestRoleInference:
    @pytest.mark.parametrize("instruction,wants_all,roles", [
        ("make every title bolder", False, {"title"}),
        ("Shorten the body and the CTA", False, {"body", "cta"}),
        ("mude tudo para azul", True, set()),
        ("Rewrite the whole carousel", True, set()),
        ("swap the background image", False, {"image"}),
        ("deixe o texto mais curto", False, {"text"}),
        ("put text on the image", False, {"image"}),
        ("add a subtitle", False, {"tagline"}),
        ("make it pop", False, set()),
    ])
    def test_requested_roles(self, instruction, wants_all, roles):
        requested = infer_requested_roles(instruction)
        assert requested.wants_all is wants_all
        assert requested.roles == roles

    @pytest.mark.parametrize("obj,role", [
        (TextObject(id="title"), "title"),
        (TextObject(id="t1", variant="headline_title"), "title"),
        (TextObject(id="titulo_principal"), "title"),
        (TextObject(id="subtitle"), "tagline"),
        (TextObject(id="descricao"), "body"),
        (TextObject(id="cta"), "cta"),
        (TextObject(id="footnote"), "text"),
        (ImageObject(id="image_background"), "image"),
        (OtherObject(id="shape1", type="shape"), None),
    ])
    def test_object_roles(self, obj, role):
        assert infer_object_role(obj) == role

    def test_allowed_targets_by_role(self, document):
        keys = allowed_target_keys(document, infer_requested_roles("make every title bolder"), None)
        assert keys == ["1:title", "2:title", "3:title"]

    def test_allowed_targets_scoped_to_slide(self, document):
        keys = allowed_target_keys(document, infer_requested_roles("shorten the text"), 3)
        assert keys == ["3:title", "3:body", "3:cta"]

    def test_no_roles_allows_everything(self, document):
        keys = allowed_target_keys(document, infer_requested_roles("make it pop"), 1)
        assert keys == ["1:title", "1:body", "1:image_background"]

    def test_editable_summary_truncates_text(self, document):
        data = document.to_json_dict()
        data["slides"][0]["objects"][0]["text"] = "x" * 500
        summary = editable_summary(Document.model_validate(data))
        first = summary[0]["objects"][0]
        assert len(first["text"]) == 200
        assert summary[0]["slideId"] == "slide_1"
        assert summary[0]["objects"][-1]["slotId"] == "background"


# ─── Editing service ─────────────────────────────────────────────────────────


class TestEditingService:
    async def test_every_title_bolder_respects_lock(self, service, add, owner_id, openai_client, redis):
        carousel = add(element_locks={"slide_1": {"title": True}})
        openai_client.reply({
            "ops": [_style(1, fontWeight=800), _style(2, fontWeight=800), _style(3, fontWeight=800)],
            "summary": "Bolder titles",
        })

        response = await service.edit(carousel.id, owner_id, EditRequest(instruction="make every title bolder"))

        assert (response.applied, response.skipped_locked, response.blocked_by_lock) == (2, 1, 1)
        assert response.summary == "Bolder titles · Locks respected: 1"
        assert _weight(carousel, 1) == 700
        assert _weight(carousel, 2) == 800
        assert _weight(carousel, 3) == 800

        record = carousel.generation_meta["edits"][0]
        assert record["instruction"] == "make every title bolder"
        assert record["applied"] == 2
        assert record["skippedLocked"] == 1
        assert record["model"] == "gemini-3.0-flash"

        event = json.loads(redis.publish.call_args.args[1])
        assert event["type"] == "edit_applied"
        assert event["payload"] == {"applied": 2}

    async def test_lock_list_reaches_the_prompt(self, service, add, owner_id, openai_client):
        carousel = add(element_locks=["slide_2:body"])
        openai_client.reply({"ops": [_style(1, fontWeight=800)]})
        await service.edit(carousel.id, owner_id, EditRequest(instruction="make every title bolder"))
        user = openai_client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert '"objectId": "body"' in user
        assert '"1:title"' in user

    async def test_locked_only_request_skips_the_model(self, service, add, owner_id, openai_client):
        carousel = add(element_locks={"1.title": True})
        before = carousel.editor_state

        response = await service.edit(
            carousel.id, owner_id, EditRequest(instruction="make the title bigger", slide_index=1),
        )

        assert response.applied == 0
        assert response.blocked_by_lock == 1
        assert response.summary == LOCKED_ONLY_SUMMARY
        openai_client.chat.completions.create.assert_not_awaited()
        assert carousel.editor_state == before

    async def test_partially_locked_slide_still_calls_model(self, service, add, owner_id, openai_client):
        carousel = add(element_locks={"slide_1": {"title": True}})
        openai_client.reply({"ops": [_style(1, "body", fontWeight=800)]})
        response = await service.edit(
            carousel.id, owner_id, EditRequest(instruction="make the title and body bolder", slide_index=1),
        )
        assert response.applied == 1
        assert response.blocked_by_lock == 1
        assert response.summary == "Updated text/style · Locks respected: 1"

    async def test_ops_outside_scope_are_ignored(self, service, add, owner_id, openai_client):
        carousel = add()
        openai_client.reply({"ops": [
            {"op": "set_text", "slideIndex": 2, "objectId": "title", "text": "Short"},
            {"op": "set_text", "slideIndex": 1, "objectId": "title", "text": "Wrong slide"},
            _style(2, "body", fontWeight=800),
        ]})

        response = await service.edit(
            carousel.id, owner_id, EditRequest(instruction="shorten the title", slide_index=2),
        )

        assert response.applied == 1
        assert response.skipped_policy == 2
        assert response.summary == "Updated text/style · Ignored by policy: 2"
        doc = Document.model_validate(carousel.editor_state)
        assert doc.slides[1].find("title").text == "Short"
        assert doc.slides[0].find("title").text == "Cold email tip 1"

    async def test_unknown_targets_are_counted_missing(self, service, add, owner_id, openai_client):
        carousel = add()
        openai_client.reply({"ops": [
            {"op": "move", "slideIndex": 1, "objectId": "title", "x": 10, "y": 10},
            {"op": "move", "slideIndex": 9, "objectId": "title", "x": 10},
            {"op": "move", "slideIndex": 2, "objectId": "ghost", "x": 10},
        ]})
        response = await service.edit(carousel.id, owner_id, EditRequest(instruction="make it pop"))
        assert response.applied == 1
        assert response.skipped_missing == 2
        assert response.skipped_policy == 0
        assert response.summary == "Moved elements"

    async def test_unknown_target_on_scoped_slide_is_missing(self, service, add, owner_id, openai_client):
        carousel = add()
        openai_client.reply({"ops": [{"op": "set_text", "slideIndex": 2, "objectId": "ghost", "text": "x"}]})
        response = await service.edit(
            carousel.id, owner_id, EditRequest(instruction="shorten the title", slide_index=2),
        )
        assert (response.applied, response.skipped_missing, response.skipped_policy) == (0, 1, 0)

    async def test_conflicting_slide_reference_cannot_bypass_lock(self, service, add, owner_id, openai_client):
        carousel = add(element_locks={"2": {"title": True}})
        openai_client.reply({"ops": [
            {"op": "set_style", "slideId": "slide_2", "slideIndex": 1, "objectId": "title",
             "style": {"fontWeight": 900}},
        ]})
        response = await service.edit(carousel.id, owner_id, EditRequest(instruction="make every title bolder"))
        assert response.applied == 0
        assert response.skipped_missing == 1
        assert _weight(carousel, 1) == 700
        assert _weight(carousel, 2) == 700

    async def test_slide_id_only_op_is_locked_by_index(self, service, add, owner_id, openai_client):
        carousel = add(element_locks={"2": {"title": True}})
        openai_client.reply({"ops": [
            {"op": "set_style", "slideId": "slide_2", "objectId": "title", "style": {"fontWeight": 900}},
        ]})
        response = await service.edit(carousel.id, owner_id, EditRequest(instruction="make every title bolder"))
        assert response.applied == 0
        assert response.skipped_locked == 1
        assert _weight(carousel, 2) == 700

    async def test_unreadable_progress_still_records_edit(self, service, add, owner_id, openai_client):
        carousel = add(generation_meta={"stage": "not-a-stage", "jobId": "j1", "edits": "junk"})
        openai_client.reply({"ops": [_style(1, fontWeight=800)]})

        response = await service.edit(carousel.id, owner_id, EditRequest(instruction="make every title bolder"))

        assert response.applied == 1
        meta = carousel.generation_meta
        assert meta["jobId"] == "j1"
        assert meta["stage"] == "not-a-stage"
        assert [edit["instruction"] for edit in meta["edits"]] == ["make every title bolder"]

    async def test_history_is_capped(self, service, add, owner_id, openai_client):
        old = [{"at": "2026-01-01T00:00:00Z", "instruction": f"edit {i}"} for i in range(EDIT_HISTORY_LIMIT)]
        carousel = add(generation_meta={"stage": "done", "edits": old})
        openai_client.reply({"ops": [_style(1, fontWeight=800)]})

        await service.edit(carousel.id, owner_id, EditRequest(instruction="make every title bolder"))

        edits = carousel.generation_meta["edits"]
        assert len(edits) == EDIT_HISTORY_LIMIT
        assert edits[0]["instruction"] == "make every title bolder"
        assert edits[-1]["instruction"] == f"edit {EDIT_HISTORY_LIMIT - 2}"
        assert carousel.generation_meta["stage"] == "done"

    async def test_running_generation_blocks_edits(self, service, add, owner_id, openai_client):
        carousel = add(generation_status="running")
        with pytest.raises(ConcurrencyError):
            await service.edit(carousel.id, owner_id, EditRequest(instruction="make it pop"))
        openai_client.chat.completions.create.assert_not_awaited()

    async def test_invalid_document(self, service, add, owner_id):
        carousel = add(editor_state={"slides": [{"id": "broken"}]})
        with pytest.raises(InvalidDocumentError):
            await service.edit(carousel.id, owner_id, EditRequest(instruction="make it pop"))

    async def test_rejected_patch_changes_nothing(self, service, add, owner_id, openai_client):
        carousel = add()
        before = carousel.editor_state
        openai_client.reply({"ops": [{"op": "set_style", "slideIndex": 1, "objectId": "title", "style": {"id": "x"}}]})
        with pytest.raises(ContractViolation) as exc:
            await service.edit(carousel.id, owner_id, EditRequest(instruction="make it pop"))
        assert exc.value.kind == "schema_mismatch"
        assert carousel.editor_state == before
