"""Tests for composing, merging and cleaning canvas documents."""

import json

import pytest

from carousel_studio.schemas.document import Document, ImageObject, TextObject
from carousel_studio.schemas.planner import validate_planner_output
from carousel_studio.services.compositor import compose_document, hide_unfilled_slots, merge_into_skeleton
from carousel_studio.services.layouts import LAYOUT_CATALOG

BACKGROUND = LAYOUT_CATALOG["builtin/background-overlay"]
SPLIT = LAYOUT_CATALOG["builtin/split-left-text-right-image"]


@pytest.fixture
def plan(make_plan):
    return validate_planner_output(make_plan(5))


def _by_id(slide, object_id):
    return next(obj for obj in slide["objects"] if obj.get("id") == object_id)


class TestComposeDocument:
    def test_one_slide_per_plan_slide(self, plan):
        doc = compose_document(plan, BACKGROUND)
        assert [s.id for s in doc.slides] == [f"slide_{i}" for i in range(1, 6)]
        assert all(s.width == 1080 and s.height == 1080 for s in doc.slides)

    def test_text_objects_follow_zones(self, plan):
        doc = compose_document(plan, BACKGROUND)
        first = doc.slides[0]
        assert [o.id for o in first.text_objects] == ["title", "body"]
        title = first.find("title")
        assert isinstance(title, TextObject)
        assert (title.x, title.y, title.width, title.height) == (86, 216, 907, 238)
        assert title.font_weight == 700
        assert title.fill == "#ff5500"
        # Only the last slide carries a CTA.
        assert doc.slides[-1].find("cta").text == "Follow for more"
        assert first.find("cta") is None

    def test_every_slot_gets_an_unfilled_image(self, plan):
        doc = compose_document(plan, BACKGROUND)
        for slide in doc.slides:
            image = slide.image_for_slot("background")
            assert isinstance(image, ImageObject)
            assert image.asset_id is None
            assert (image.width, image.height) == (1080, 1080)

    def test_global_block(self, plan):
        doc = compose_document(plan, BACKGROUND)
        assert doc.global_.template_id == "builtin/background-overlay"
        assert doc.global_.template_data["id"] == "builtin/background-overlay"
        assert doc.global_.palette_data.accent == "#ff5500"
        assert doc.global_.typography.cta_size == 28
        assert doc.global_.background.overlay.enabled is True

    def test_is_byte_identical_across_calls(self, plan):
        first = json.dumps(compose_document(plan, BACKGROUND).to_json_dict(), sort_keys=True)
        second = json.dumps(compose_document(plan, BACKGROUND).to_json_dict(), sort_keys=True)
        assert first == second


class TestMergeIntoSkeleton:
    @pytest.fixture
    def skeleton(self, make_plan):
        original = validate_planner_output(make_plan(3))
        data = compose_document(original, BACKGROUND).to_json_dict()
        first = data["slides"][0]
        _by_id(first, "title").update({"x": 12, "y": 34, "width": 500, "customFlag": True})
        _by_id(first, "image_background")["assetId"] = "old-asset"
        first["objects"].append({"id": "image_logo", "type": "image", "slotId": "logo", "assetId": "logo-asset"})
        first["objects"].append({"id": "badge", "type": "shape", "fill": "#000"})
        return data

    def test_text_replaced_geometry_kept(self, make_plan, skeleton):
        data = make_plan(3)
        data["slides"][0]["text"]["title"] = "Brand new title"
        doc = merge_into_skeleton(validate_planner_output(data), BACKGROUND, skeleton).to_json_dict()
        title = _by_id(doc["slides"][0], "title")
        assert title["text"] == "Brand new title"
        assert (title["x"], title["y"], title["width"]) == (12, 34, 500)
        assert title["customFlag"] is True

    def test_absent_text_is_hidden_not_deleted(self, make_plan, skeleton):
        data = make_plan(3)
        del data["slides"][0]["text"]["body"]
        doc = merge_into_skeleton(validate_planner_output(data), BACKGROUND, skeleton).to_json_dict()
        body = _by_id(doc["slides"][0], "body")
        assert body["hidden"] is True
        assert body["text"] == ""

    def test_declared_slots_lose_their_asset(self, make_plan, skeleton):
        doc = merge_into_skeleton(validate_planner_output(make_plan(3)), BACKGROUND, skeleton).to_json_dict()
        first = doc["slides"][0]
        assert _by_id(first, "image_background")["assetId"] is None
        # A slot the layout does not declare is left alone.
        assert _by_id(first, "image_logo")["assetId"] == "logo-asset"
        assert _by_id(first, "badge")["type"] == "shape"

    def test_skeleton_slide_count_wins(self, make_plan, skeleton):
        doc = merge_into_skeleton(validate_planner_output(make_plan(2)), BACKGROUND, skeleton)
        assert len(doc.slides) == 3
        # Slide 3 has no plan: its text is left as authored.
        assert doc.slides[2].find("title").text == "Cold email tip 3"

    def test_missing_slot_objects_are_added(self, make_plan):
        skeleton = {
            "version": 1,
            "slides": [{"id": "a", "width": 1080, "height": 1080, "objects": [
                {"id": "title", "type": "text", "text": "old", "x": 1, "y": 2},
            ]}],
        }
        doc = merge_into_skeleton(validate_planner_output(make_plan(1, slot_id="hero", purpose="slot")), SPLIT, skeleton)
        slide = doc.slides[0]
        assert slide.id == "a"
        assert slide.find("title").text == "Cold email tip 1"
        hero = slide.image_for_slot("hero")
        assert hero is not None and hero.asset_id is None
        assert doc.global_.template_id == SPLIT.id

    def test_empty_skeleton_uses_fresh_slides(self, plan):
        doc = merge_into_skeleton(plan, BACKGROUND, {"version": 1, "slides": []})
        assert len(doc.slides) == 5

    def test_does_not_mutate_skeleton(self, plan, skeleton):
        before = json.dumps(skeleton, sort_keys=True)
        merge_into_skeleton(plan, BACKGROUND, skeleton)
        assert json.dumps(skeleton, sort_keys=True) == before


class TestHideUnfilledSlots:
    def test_hides_only_unfilled_images(self, plan):
        data = compose_document(plan, BACKGROUND).to_json_dict()
        _by_id(data["slides"][0], "image_background")["assetId"] = "a1"
        doc, hidden = hide_unfilled_slots(Document.model_validate(data))
        assert hidden == 4
        assert doc.slides[0].image_for_slot("background").hidden is False
        assert all(s.image_for_slot("background").hidden for s in doc.slides[1:])

    def test_second_pass_hides_nothing(self, plan):
        doc, _ = hide_unfilled_slots(compose_document(plan, BACKGROUND))
        _, hidden = hide_unfilled_slots(doc)
        assert hidden == 0
