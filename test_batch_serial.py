"""
Batch / Serial Resolver Tests

Lot vs serial selection, truncation families and raw identifier fallback.
"""

import pytest

from order_engine.batch_serial import pick_raw_identifier, resolve_batch_serial, truncate_lot_code


class TestResolveBatchSerial:
    """Lot/serial selection."""

    def test_batch_tracked_uses_lot(self):
        result = resolve_batch_serial(True, False, "LOT123")
        assert result.lot_code == "LOT123"
        assert result.serial_code is None

    def test_serial_tracked_uses_serial(self):
        result = resolve_batch_serial(False, True, "SN-0001")
        assert result.serial_code == "SN-0001"
        assert result.lot_code is None

    def test_batch_wins_when_both_flags_set(self):
        """trackBatch and trackSerial both true: lot only."""
        result = resolve_batch_serial(True, True, "ABC12345")
        assert result.lot_code == "ABC12345"
        assert result.serial_code is None

    def test_untracked_falls_back_to_serial(self):
        result = resolve_batch_serial(False, False, "X1")
        assert result.serial_code == "X1"
        assert result.lot_code is None

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_raw_value(self, raw):
        """No identifier means neither field is set."""
        result = resolve_batch_serial(True, True, raw)
        assert result.lot_code is None
        assert result.serial_code is None

    @pytest.mark.parametrize("track_batch,track_serial", [
        (True, True), (True, False), (False, True), (False, False),
    ])
    def test_never_both_populated(self, track_batch, track_serial):
        result = resolve_batch_serial(track_batch, track_serial, "RAWVALUE123", "TPCN")
        assert not (result.lot_code and result.serial_code)


class TestTruncation:
    """Category truncation families."""

    def test_eight_char_family(self):
        """TPCN keeps exactly the last 8 characters."""
        result = resolve_batch_serial(True, False, "2024ABCD12345678", "TPCN")
        assert result.lot_code == "12345678"

    @pytest.mark.parametrize("category", ["SKIN", "GIFT"])
    def test_four_char_family(self, category):
        """SKIN and GIFT keep exactly the last 4 characters."""
        result = resolve_batch_serial(True, False, "LOT-2024-9876", category)
        assert result.lot_code == "9876"

    def test_short_value_kept(self):
        """Values shorter than the family length are not cut."""
        assert truncate_lot_code("ABC", "TPCN") == "ABC"

    def test_exact_length_kept(self):
        assert truncate_lot_code("12345678", "TPCN") == "12345678"

    def test_other_category_not_truncated(self):
        assert truncate_lot_code("LONGLOTCODE0001", "DIVU") == "LONGLOTCODE0001"

    def test_serials_are_not_truncated(self):
        """Truncation only applies to lot codes."""
        result = resolve_batch_serial(False, True, "SERIAL0000012345", "TPCN")
        assert result.serial_code == "SERIAL0000012345"


class TestPickRawIdentifier:
    """Raw identifier fallback order."""

    def test_movement_value_first(self):
        assert pick_raw_identifier("MV1", "LINE1") == "MV1"

    def test_line_value_second(self):
        assert pick_raw_identifier(None, " LINE1 ") == "LINE1"

    def test_card_reference_fallback(self):
        """Card materials fall back to the reference material code."""
        assert pick_raw_identifier(None, None, "94", "REF01") == "REF01"

    def test_reference_ignored_for_other_materials(self):
        assert pick_raw_identifier(None, None, "10", "REF01") is None
