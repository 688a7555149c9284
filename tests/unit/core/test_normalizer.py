"""Unit tests for identity key normalization."""

import pytest

from hub_port_mapper.core.mapping.normalizer import (
    KEY_PATTERN,
    extract_chip_prefix,
    extract_port_index,
    is_valid_key,
    normalize_location,
    split_key,
)

USB3_PARENT = "USB\\VID_2109&PID_0822\\9&238498F1&0&3"
USB2_PARENT = "USB\\VID_2109&PID_2822\\9&238498F1&0&3"


class TestExtractChipPrefix:
    """Tests for extract_chip_prefix."""

    def test_extracts_prefix_from_hub_instance_id(self):
        assert extract_chip_prefix(USB3_PARENT) == "9&238498F1"

    def test_uppercases_hex(self):
        assert extract_chip_prefix("USB\\VID_2109&PID_0822\\9&238498f1&0&3") == "9&238498F1"

    def test_usb2_and_usb3_nodes_share_prefix(self):
        assert extract_chip_prefix(USB2_PARENT) == extract_chip_prefix(USB3_PARENT)

    @pytest.mark.parametrize("parent", [None, "", "USB\\ROOT_HUB30", "9&238498F1&0&3", "USB\\VID_2109\\XYZ&Q&",
                                        "USB\\VID_2109&PID_0822\\٩&238498F1&0&3"])
    def test_returns_none_without_match(self, parent):
        assert extract_chip_prefix(parent) is None


class TestExtractPortIndex:
    """Tests for extract_port_index."""

    @pytest.mark.parametrize("location,expected", [
        ("Port_#0002.Hub_#0008", "2"),
        ("Port_#0003", "3"),
        ("port_#0007.hub_#0001", "7"),
        ("Port_#0000.Hub_#0004", "0"),
        ("Port_#0012.Hub_#0004", "12"),
    ])
    def test_strips_leading_zeros(self, location, expected):
        assert extract_port_index(location) == expected

    @pytest.mark.parametrize("location", [None, "", "Hub_#0008", "Port_#.Hub_#0008", "Port_#٠٢.Hub_#0008"])
    def test_returns_none_without_match(self, location):
        assert extract_port_index(location) is None


class TestNormalizeLocation:
    """Tests for normalize_location."""

    def test_builds_key(self):
        assert normalize_location("Port_#0002.Hub_#0008", USB3_PARENT) == "9&238498F1|2"

    def test_same_slot_same_key_at_either_speed(self):
        """The hub number differs between speeds; the key must not."""
        usb3 = normalize_location("Port_#0002.Hub_#0008", USB3_PARENT)
        usb2 = normalize_location("Port_#0002.Hub_#0005", USB2_PARENT)
        assert usb3 == usb2 == "9&238498F1|2"

    def test_port_zero_is_valid(self):
        assert normalize_location("Port_#0000.Hub_#0008", USB3_PARENT) == "9&238498F1|0"

    def test_missing_parent(self):
        assert normalize_location("Port_#0002.Hub_#0008", None) is None

    def test_missing_location(self):
        assert normalize_location(None, USB3_PARENT) is None

    def test_is_deterministic(self):
        keys = {normalize_location("Port_#0004.Hub_#0008", USB3_PARENT) for _ in range(5)}
        assert keys == {"9&238498F1|4"}

    def test_result_matches_key_pattern(self):
        key = normalize_location("Port_#0005.Hub_#0008", USB3_PARENT)
        assert KEY_PATTERN.fullmatch(key)


class TestKeyHelpers:
    """Tests for split_key and is_valid_key."""

    def test_split_key(self):
        assert split_key("9&238498F1|2") == ("9&238498F1", "2")

    @pytest.mark.parametrize("key", ["9&238498F1|2", "12&abc|7", "0&0|0"])
    def test_valid_keys(self, key):
        assert is_valid_key(key)

    @pytest.mark.parametrize("key", [
        "", "9&238498F1", "9&238498F1|", "|2", "9-238498F1|2", "9&XYZ|2", 42, None,
        "9&238498F1|3\n", "٩&238498F1|٣",
    ])
    def test_invalid_keys(self, key):
        assert not is_valid_key(key)
