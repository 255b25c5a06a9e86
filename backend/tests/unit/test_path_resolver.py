#!/usr/bin/env python3
"""
Unit tests for PathResolver: every path must stay inside the places root.
"""

import pytest

from gallery.constants import MAX_ID_VALUE
from gallery.enums import PathErrorReason
from gallery.exceptions import NotFoundError, PathValidationError
from gallery.services.path_resolver import (
    PathResolver,
    sanitize_path_component,
    validate_id,
)


@pytest.mark.unit
class TestValidateId:
    @pytest.mark.parametrize("value", [1, 42, MAX_ID_VALUE])
    def test_accepts_valid_ids(self, value):
        assert validate_id(value) == value

    @pytest.mark.parametrize("value", [0, -1, MAX_ID_VALUE + 1])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(PathValidationError) as exc_info:
            validate_id(value)
        assert exc_info.value.reason == PathErrorReason.INVALID_ID

    @pytest.mark.parametrize("value", ["42", 4.2, None, True])
    def test_rejects_non_integers(self, value):
        with pytest.raises(PathValidationError) as exc_info:
            validate_id(value)
        assert exc_info.value.reason == PathErrorReason.INVALID_ID


@pytest.mark.unit
class TestSanitizePathComponent:
    @pytest.mark.parametrize(
        "component",
        ["../etc/passwd", "a/b.jpg", "a\\b.jpg", "C:evil.jpg", ".hidden", "", None, "a\x00.jpg"],
    )
    def test_rejects_dangerous_components(self, component):
        with pytest.raises(PathValidationError) as exc_info:
            sanitize_path_component(component)
        assert exc_info.value.reason == PathErrorReason.INVALID_PATH

    def test_accepts_plain_file_name(self):
        assert sanitize_path_component("abc123.jpg") == "abc123.jpg"


@pytest.mark.unit
class TestPathResolver:
    def test_resolve_directory(self, path_resolver, places_root):
        assert path_resolver.resolve_directory(42) == places_root.resolve() / "42"

    def test_resolve_path(self, path_resolver, places_root):
        path = path_resolver.resolve_path(42, "abc.jpg")
        assert path == places_root.resolve() / "42" / "abc.jpg"

    def test_traversal_in_file_name_is_rejected(self, path_resolver):
        with pytest.raises(PathValidationError):
            path_resolver.resolve_path(42, "../../secret.txt")

    def test_symlink_escape_is_denied(self, path_resolver, places_root, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (places_root / "7").symlink_to(outside, target_is_directory=True)

        with pytest.raises(PathValidationError) as exc_info:
            path_resolver.resolve_path(7, "photo.jpg")
        assert exc_info.value.reason == PathErrorReason.ACCESS_DENIED

    def test_resolve_existing_path(self, path_resolver):
        directory = path_resolver.create_directory(3)
        (directory / "present.jpg").write_bytes(b"x")

        assert path_resolver.resolve_existing_path(3, "present.jpg").is_file()
        with pytest.raises(NotFoundError):
            path_resolver.resolve_existing_path(3, "missing.jpg")

    def test_create_and_delete_directory(self, path_resolver):
        directory = path_resolver.create_directory(5)
        assert directory.is_dir()
        # Creating twice is fine
        path_resolver.create_directory(5)
        (directory / "a.jpg").write_bytes(b"x")

        assert path_resolver.delete_directory(5) is True
        assert not directory.exists()
        assert path_resolver.delete_directory(5) is False

    def test_places_root_defaults_to_settings(self):
        from gallery.config import settings

        assert PathResolver().places_root() == settings.places_directory.resolve()
