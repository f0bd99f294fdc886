"""
Tests for the ImageStream projections used by the image listings.

Run from the backend/ directory:
    python -m pytest tests/test_image_projector.py -v
"""
from __future__ import annotations
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from factories import image_stream
from nbimage.constants import ImageAnnotation
from nbimage.schemas.image import PackageRef
from nbimage.services.image_projector import (
    get_tag_info, primary_tag, project_cre_image, project_image_info,
)


class TestProjectImageInfo:

    def test_defaults(self):
        info = project_image_info(image_stream("s2i-minimal"))
        assert info.name == "s2i-minimal"
        assert info.display_name == "s2i-minimal"
        assert info.description == ""
        assert info.url == ""
        assert info.order == 100
        assert info.docker_image_repo == "registry.local/ns/s2i-minimal"

    def test_annotations(self):
        info = project_image_info(image_stream(
            "s2i-minimal", display_name="Minimal Python", description="Small", order="3",
        ))
        assert info.display_name == "Minimal Python"
        assert info.description == "Small"
        assert info.order == 3

    def test_wire_names(self):
        dumped = project_image_info(image_stream("x")).model_dump(by_alias=True)
        assert "dockerImageRepo" in dumped
        assert "display_name" in dumped


class TestTagInfo:

    def test_only_live_tags(self):
        stream = image_stream(
            "x",
            tags=[{"name": "py39", "annotations": {}}, {"name": "py38", "annotations": {}}],
            live_tags=["py39"],
        )
        assert [t.name for t in get_tag_info(stream)] == ["py39"]

    def test_no_tags(self):
        assert get_tag_info(image_stream("x", tags=[])) == []

    def test_tag_annotations_decoded(self):
        stream = image_stream("x", tags=[{"name": "py39", "annotations": {
            ImageAnnotation.RECOMMENDED: "true",
            ImageAnnotation.SOFTWARE: '[{"name": "Python", "version": "v3.9"}]',
            ImageAnnotation.DEPENDENCIES: "not json",
        }}])
        tag = get_tag_info(stream)[0]
        assert tag.recommended is True
        assert tag.default is False
        assert tag.content.software == [PackageRef(name="Python", version="v3.9")]
        assert tag.content.dependencies == []


class TestPrimaryTag:

    def test_first_live_tag(self):
        stream = image_stream(
            "x",
            tags=[{"name": "a"}, {"name": "b"}],
            live_tags=["b"],
        )
        assert primary_tag(stream)["name"] == "b"

    def test_first_declared_while_no_status(self):
        stream = image_stream("x", tags=[{"name": "a"}, {"name": "b"}], live_tags=[])
        assert primary_tag(stream)["name"] == "a"

    def test_none_without_tags(self):
        assert primary_tag(image_stream("x", tags=[])) is None


class TestProjectCREImage:

    def test_fields(self):
        stream = image_stream(
            "cre-1",
            cre=True,
            display_name="My Image",
            description="Built",
            phase="Succeeded",
            messages=["boom"],
            creator="alice",
            tags=[{"name": "latest", "annotations": {
                ImageAnnotation.DEPENDENCIES: '[{"name": "numpy", "version": "1.26"}]',
            }}],
        )
        details = project_cre_image(stream)
        assert details.id == "cre-1"
        assert details.name == "My Image"
        assert details.phase == "Succeeded"
        assert details.visible is True
        assert details.error == ["boom"]
        assert details.user == "alice"
        assert details.package_annotations == [PackageRef(name="numpy", version="1.26")]
        assert details.software_annotations == []
        assert details.uploaded == "2024-01-01T00:00:00Z"

    def test_hidden_and_untagged(self):
        details = project_cre_image(image_stream("cre-2", cre=True, visible=False, tags=[]))
        assert details.visible is False
        assert details.package_annotations is None
        assert details.software_annotations is None
        assert details.error == []
