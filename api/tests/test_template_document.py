"""Unit tests for TemplateDocument and the canvas node variants."""

import pytest
from pydantic import ValidationError

from schemas import (
    BindableNode,
    StaticNode,
    TemplateDocument,
    TemplateValidationError,
    VerificationCodeNode,
)
from tests.factories import canvas_json, qr_object, rect_object, text_object


@pytest.mark.unit
class TestTemplateDocumentInvariant:
    def test_bound_keys_must_be_declared(self):
        with pytest.raises(ValidationError, match="Course"):
            TemplateDocument(
                id="t1",
                canvas_graph=[BindableNode(dynamic_key="Name"), BindableNode(dynamic_key="Course")],
                placeholder_keys={"Name"},
            )

    def test_extra_placeholder_keys_are_allowed(self):
        doc = TemplateDocument(
            id="t1",
            canvas_graph=[BindableNode(dynamic_key="Name")],
            placeholder_keys={"Name", "Date"},
        )
        assert doc.bound_keys == {"Name"}

    def test_bindable_defaults_to_placeholder_text(self):
        node = BindableNode(dynamic_key="Name")
        assert node.text == "{{Name}}"
        assert node.is_placeholder is True

    def test_explicit_empty_text_is_kept(self):
        assert BindableNode(dynamic_key="Name", text="").text == ""

    def test_fabric_textbox_without_text_gets_placeholder(self):
        obj = text_object("Course", text="")
        doc = TemplateDocument.from_canvas_json("t1", canvas_json(obj))
        assert doc.canvas_graph[0].text == "{{Course}}"

    def test_nodes_parse_by_kind(self):
        doc = TemplateDocument.model_validate(
            {
                "id": "t1",
                "placeholder_keys": ["Name"],
                "canvas_graph": [
                    {"kind": "bindable", "dynamic_key": "Name"},
                    {"kind": "verification_code", "size": 150},
                    {"kind": "static", "shape": "rect"},
                ],
            }
        )
        assert [type(n) for n in doc.canvas_graph] == [
            BindableNode,
            VerificationCodeNode,
            StaticNode,
        ]
        assert doc.has_verification_code


@pytest.mark.unit
class TestFromCanvasJson:
    def test_converts_editor_objects(self):
        doc = TemplateDocument.from_canvas_json(
            "t1",
            canvas_json(rect_object(), text_object(text="Awarded to"), text_object("Name"), qr_object(size=150)),
        )

        border, heading, name, code = doc.canvas_graph
        assert isinstance(border, StaticNode) and border.shape == "rect"
        assert isinstance(heading, StaticNode) and heading.text == "Awarded to"
        assert isinstance(name, BindableNode) and name.dynamic_key == "Name"
        assert name.font_size == 36
        assert name.origin_x == "center"
        assert isinstance(code, VerificationCodeNode) and code.size == 150

    def test_placeholder_keys_default_to_bound_keys(self):
        doc = TemplateDocument.from_canvas_json(
            "t1", canvas_json(text_object("Name"), text_object("Course"))
        )
        assert doc.placeholder_keys == {"Name", "Course"}

    def test_explicit_placeholder_keys_are_checked(self):
        with pytest.raises(TemplateValidationError, match="Course"):
            TemplateDocument.from_canvas_json(
                "t1",
                canvas_json(text_object("Name"), text_object("Course")),
                placeholder_keys={"Name"},
            )

    def test_invalid_json(self):
        with pytest.raises(TemplateValidationError, match="not valid JSON"):
            TemplateDocument.from_canvas_json("t1", "{not json")

    def test_missing_objects_list(self):
        with pytest.raises(TemplateValidationError, match="objects"):
            TemplateDocument.from_canvas_json("t1", '{"version": "5.3.0"}')

    def test_scale_is_applied_to_size(self):
        doc = TemplateDocument.from_canvas_json(
            "t1", canvas_json(qr_object(size=100, scaleX=1.5, scaleY=1.5))
        )
        assert doc.canvas_graph[0].size == 150

    def test_background_is_kept(self):
        doc = TemplateDocument.from_canvas_json(
            "t1", canvas_json(rect_object(), background="#fdf6e3")
        )
        assert doc.background == "#fdf6e3"
