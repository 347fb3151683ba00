"""
Order Type Classifier Tests

Covers label normalization, the priority-ordered variant table and the
derived flags that travel with the primary category.
"""

import pytest

from order_engine.classifier import (
    classify_order_type,
    describe_order_type,
    is_service_label,
    normalize_label,
)
from order_engine.models import OrderCategory


class TestNormalizeLabel:
    """Label normalization before matching."""

    def test_trims_and_collapses_whitespace(self):
        """Extra spaces anywhere in the label are collapsed."""
        assert normalize_label("  03.   Đổi  điểm ") == "03. đổi điểm"

    def test_casefolds(self):
        """Case differences do not matter."""
        assert normalize_label("THƯỜNG") == normalize_label("thường")

    def test_decomposed_input_is_composed(self):
        """NFD input (combining marks) normalizes to the same text as NFC."""
        import unicodedata
        decomposed = unicodedata.normalize("NFD", "Đổi vỏ")
        assert normalize_label(decomposed) == normalize_label("Đổi vỏ")

    def test_empty_label(self):
        """None and blank labels normalize to an empty string."""
        assert normalize_label(None) == ""
        assert normalize_label("   ") == ""


class TestClassifyOrderType:
    """Variant table lookups."""

    @pytest.mark.parametrize("label,expected", [
        ("03. Đổi điểm", OrderCategory.LOYALTY_POINT_EXCHANGE),
        ("03.Đổi điểm", OrderCategory.LOYALTY_POINT_EXCHANGE),
        ("04. Đổi DV", OrderCategory.NORMAL_EXCHANGE),
        ("04.Đổi DV", OrderCategory.NORMAL_EXCHANGE),
        ("05. Tặng sinh nhật", OrderCategory.BIRTHDAY_GIFT),
        ("Tặng sinh nhật", OrderCategory.BIRTHDAY_GIFT),
        ("06. Đầu tư", OrderCategory.INVESTMENT),
        ("Đầu tư", OrderCategory.INVESTMENT),
        ("08. Tách thẻ", OrderCategory.CARD_SEPARATION),
        ("08.Tách thẻ", OrderCategory.CARD_SEPARATION),
        ("Đổi vỏ", OrderCategory.BOTTLE_EXCHANGE),
        ("02. Làm dịch vụ", OrderCategory.SERVICE),
        ("Làm dịch vụ", OrderCategory.SERVICE),
    ])
    def test_known_variants(self, label, expected):
        """Every spelling of a category maps to that category."""
        assert classify_order_type(label) == expected

    def test_variants_tolerate_spacing_and_case(self):
        """Spacing and case variants classify the same as the canonical label."""
        assert classify_order_type("  03.  ĐỔI ĐIỂM  ") == OrderCategory.LOYALTY_POINT_EXCHANGE

    @pytest.mark.parametrize("label", ["01. Thường", "Bán lẻ", "something else", "", None])
    def test_unrecognized_defaults_to_normal(self, label):
        """Unrecognized labels are NORMAL."""
        assert classify_order_type(label) == OrderCategory.NORMAL

    def test_account_sale_and_marketplace_are_normal(self):
        """Account-sale and marketplace labels keep the NORMAL category."""
        assert classify_order_type("07. Bán tài khoản") == OrderCategory.NORMAL
        assert classify_order_type("9. Sàn TMĐT") == OrderCategory.NORMAL


class TestServicePredicate:
    """Service family membership."""

    @pytest.mark.parametrize("label", ["02. Làm dịch vụ", "04. Đổi DV", "08. Tách thẻ", "Đổi thẻ KEEP->Thẻ DV"])
    def test_service_family(self, label):
        assert is_service_label(label) is True

    @pytest.mark.parametrize("label", ["01. Thường", "03. Đổi điểm", "Đổi vỏ"])
    def test_not_service(self, label):
        assert is_service_label(label) is False


class TestDescribeOrderType:
    """Category plus derived flags."""

    def test_sale_return_source_overrides_label(self):
        """A SALE_RETURN source type wins over any label."""
        flags = describe_order_type("02. Làm dịch vụ", "sale_return")
        assert flags.category == OrderCategory.SALE_RETURN
        assert flags.is_sale_return

    def test_marketplace_flag(self):
        flags = describe_order_type("9. Sàn TMĐT")
        assert flags.category == OrderCategory.NORMAL
        assert flags.is_marketplace
        assert not flags.is_account_sale

    def test_account_sale_flag(self):
        flags = describe_order_type("07. Bán tài khoản")
        assert flags.is_account_sale
        assert not flags.is_marketplace

    def test_normal_label_flag(self):
        """Labels starting with 01. or reading Thường are normal-labelled."""
        assert describe_order_type("01. Thường").is_normal_label
        assert describe_order_type("Thường").is_normal_label
        assert not describe_order_type("02. Làm dịch vụ").is_normal_label

    def test_loyalty_flag(self):
        flags = describe_order_type("03. Đổi điểm")
        assert flags.is_loyalty
        assert not flags.is_service
