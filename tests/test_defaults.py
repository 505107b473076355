"""Tests for the default document and derived lookups."""

import pytest

from storesync.defaults import (
    DEFAULT_SETTINGS,
    default_document,
    enabled_social_links,
    format_price,
    merge_with_defaults,
    shipping_cost,
)


class TestDefaultDocument:
    """Tests for the built-in document."""

    def test_sections_present(self):
        """Test that the default carries every storefront section."""
        for section in ("branding", "splashScreen", "header", "footer", "countries",
                        "socialMediaList", "categories", "policies", "homeDesign"):
            assert section in DEFAULT_SETTINGS

    def test_copy_is_independent(self):
        """Test that editing a copy leaves the defaults untouched."""
        document = default_document()
        document["branding"]["fallbackText"] = "Changed"

        assert DEFAULT_SETTINGS["branding"]["fallbackText"] == "Wonder"


class TestMergeWithDefaults:
    """Tests for merge_with_defaults."""

    def test_fills_missing_keys(self):
        """Test nested filling of absent keys."""
        merged = merge_with_defaults(
            {"a": {"x": 1}},
            {"a": {"x": 0, "y": 2}, "b": 3},
        )

        assert merged == {"a": {"x": 1, "y": 2}, "b": 3}

    def test_document_values_win(self):
        """Test that present values, lists included, are not merged."""
        merged = merge_with_defaults({"items": [1]}, {"items": [1, 2, 3]})

        assert merged == {"items": [1]}

    def test_scalar_replaces_mapping(self):
        """Test that a non-mapping value overrides a default mapping."""
        merged = merge_with_defaults({"a": None}, {"a": {"x": 1}})

        assert merged == {"a": None}

    def test_uses_builtin_defaults(self):
        """Test merging against the built-in document."""
        merged = merge_with_defaults({"branding": {"fallbackText": "Y"}})

        assert merged["branding"]["fallbackText"] == "Y"
        assert merged["countries"]["uk"]["currency"]["symbol"] == "£"

    def test_inputs_not_mutated(self):
        """Test that neither argument is modified."""
        document = {"a": {"x": 1}}
        defaults = {"a": {"y": 2}}

        merge_with_defaults(document, defaults)

        assert document == {"a": {"x": 1}}
        assert defaults == {"a": {"y": 2}}


class TestLookups:
    """Tests for price and shipping helpers."""

    def test_shipping_below_threshold(self):
        assert shipping_cost(DEFAULT_SETTINGS, "india", 1000) == 99

    def test_shipping_free_at_threshold(self):
        assert shipping_cost(DEFAULT_SETTINGS, "india", 1999) == 0
        assert shipping_cost(DEFAULT_SETTINGS, "uk", 150) == 0

    def test_unknown_country(self):
        with pytest.raises(KeyError):
            shipping_cost(DEFAULT_SETTINGS, "mars", 10)

    def test_format_price(self):
        assert format_price(DEFAULT_SETTINGS, "uk", 4.99) == "£4.99"
        assert format_price(DEFAULT_SETTINGS, "india", 1999) == "₹1999.00"

    def test_enabled_social_links(self):
        """Test that disabled or empty links are filtered out."""
        document = {
            "socialMediaList": [
                {"platform": "instagram", "url": "https://instagram.com", "enabled": True},
                {"platform": "facebook", "url": "https://facebook.com", "enabled": False},
                {"platform": "youtube", "url": "", "enabled": True},
            ]
        }

        links = enabled_social_links(document)

        assert [link["platform"] for link in links] == ["instagram"]
