"""Tests for promixel.core.normalizer: upstream response shapes."""

from __future__ import annotations

import pytest

from promixel.core.normalizer import (
    Base64ImageList,
    ImageUriList,
    SingleBase64,
    Unrecognized,
    normalize,
    parse_variant,
    to_data_url,
)


class TestParseVariant:
    """Each known shape is recognised by its own parser."""

    def test_base64_images(self):
        variant = parse_variant({"base64_images": ["AAAA"]})
        assert isinstance(variant, Base64ImageList)
        assert variant.image_url == "data:image/png;base64,AAAA"

    def test_image_uri_list_of_strings(self):
        variant = parse_variant({"images": ["https://cdn.example.com/a.png"]})
        assert isinstance(variant, ImageUriList)
        assert variant.image_url == "https://cdn.example.com/a.png"

    def test_image_uri_list_of_objects(self):
        variant = parse_variant({"images": [{"url": "https://cdn.example.com/b.png"}]})
        assert isinstance(variant, ImageUriList)

    def test_single_base64_field(self):
        variant = parse_variant({"base64_image": "AAAA"})
        assert isinstance(variant, SingleBase64)

    def test_priority_order_prefers_base64_list(self):
        variant = parse_variant(
            {"base64_images": ["AAAA"], "images": ["https://cdn.example.com/a.png"]}
        )
        assert isinstance(variant, Base64ImageList)

    def test_falls_through_invalid_base64_list(self):
        """A broken higher-priority field does not hide a valid lower one."""
        variant = parse_variant({"base64_images": ["!!not base64!!"], "image": "AAAA"})
        assert isinstance(variant, SingleBase64)

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"base64_images": []},
            {"base64_images": [None]},
            {"images": ["ftp://example.com/a.png"]},
            {"status": "ok"},
            ["AAAA"],
            None,
            "AAAA",
        ],
    )
    def test_unrecognized(self, body):
        assert isinstance(parse_variant(body), Unrecognized)


class TestNormalize:
    def test_success_result_with_credits(self):
        result = normalize({"base64_images": ["AAAA"], "remaining_credits": 42}, prompt="pixel cat")
        assert result.success is True
        assert result.image_url == "data:image/png;base64,AAAA"
        assert result.remaining_credits == 42
        assert result.prompt == "pixel cat"

    def test_whitespace_in_base64_is_removed(self):
        result = normalize({"base64_images": ["AA\nAA "]})
        assert result.image_url == "data:image/png;base64,AAAA"

    def test_missing_field_is_failure_not_exception(self):
        result = normalize({"something_else": True})
        assert result.success is False
        assert "Invalid response" in result.message
        assert "unrecognized response format" in result.message
        assert result.image_url.startswith("data:image/png;base64,")

    def test_non_integer_credits_dropped(self):
        result = normalize({"base64_images": ["AAAA"], "remaining_credits": "lots"})
        assert result.remaining_credits is None


def test_to_data_url():
    assert to_data_url("AAAA", "image/gif") == "data:image/gif;base64,AAAA"
