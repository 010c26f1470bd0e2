"""Tests for category masks and type labels."""

import pytest

from logsink.categories import (
    CategoryMask,
    category_for_label,
    parse_categories,
    type_label,
)
from logsink.errors import ConfigurationError


class TestCategoryMask:
    def test_bit_values(self):
        assert CategoryMask.ERROR == 0x8
        assert CategoryMask.WARNING == 0x10
        assert CategoryMask.DEBUG == 0x20
        assert CategoryMask.INFORMATION == 0x8000
        assert CategoryMask.EXCEPTION == 0x20000
        assert CategoryMask.ALL == 0xFFFFFFFF

    def test_all_contains_every_category(self):
        for cat in (CategoryMask.PROTOCOL, CategoryMask.ERROR, CategoryMask.CUSTOM):
            assert CategoryMask.ALL & cat == cat

    def test_none_matches_nothing(self):
        assert not (CategoryMask.NONE & CategoryMask.ERROR)


class TestTypeLabel:
    def test_single_bits(self):
        assert type_label(CategoryMask.ERROR) == "Error"
        assert type_label(CategoryMask.WARNING) == "Warning"
        assert type_label(CategoryMask.DEBUG) == "Debug"
        assert type_label(CategoryMask.INFORMATION) == "Information"
        assert type_label(CategoryMask.OPERATOR_ATTENTION) == "OperatorAttention"

    def test_combined_mask_uses_most_severe_bit(self):
        assert type_label(CategoryMask.DEBUG | CategoryMask.ERROR) == "Error"
        assert type_label(CategoryMask.INFORMATION | CategoryMask.WARNING) == "Warning"

    def test_empty_mask_defaults_to_information(self):
        assert type_label(CategoryMask.NONE) == "Information"

    def test_label_round_trip(self):
        for cat in (CategoryMask.ERROR, CategoryMask.HISTORY, CategoryMask.ARGUMENT):
            assert category_for_label(type_label(cat)) == cat

    def test_unknown_label_maps_to_none(self):
        assert category_for_label("Bogus") == CategoryMask.NONE


class TestParseCategories:
    def test_comma_separated_labels(self):
        assert parse_categories("Error,Warning") == CategoryMask.ERROR | CategoryMask.WARNING

    def test_pipe_separated_member_names(self):
        assert parse_categories("error|debug") == CategoryMask.ERROR | CategoryMask.DEBUG

    def test_all(self):
        assert parse_categories("All") == CategoryMask.ALL

    def test_member_name_and_label_forms(self):
        assert parse_categories("operator_attention") == CategoryMask.OPERATOR_ATTENTION
        assert parse_categories("OperatorAttention") == CategoryMask.OPERATOR_ATTENTION

    def test_int_and_list(self):
        assert parse_categories(8) == CategoryMask.ERROR
        assert parse_categories(["debug", "Information"]) == (
            CategoryMask.DEBUG | CategoryMask.INFORMATION
        )

    def test_blank_parts_ignored(self):
        assert parse_categories("Error, ,") == CategoryMask.ERROR

    def test_unknown_name_raises(self):
        with pytest.raises(ConfigurationError):
            parse_categories("Error,Loud")

    def test_unsupported_type_raises(self):
        with pytest.raises(ConfigurationError):
            parse_categories(1.5)
