"""Unit tests for PortMapper."""

import pytest

from hub_port_mapper.core.errors import InvalidPortError, NormalizationError
from hub_port_mapper.core.mapping import CalibrationDocument, PortMapper
from tests.infrastructure.mocks.device_mocks import (
    FOREIGN_PARENT,
    PRIMARY_CHIP,
    PRIMARY_PARENT,
    PRIMARY_PARENT_USB2,
    SECONDARY_CHIP,
    SECONDARY_PARENT,
)


def _location(port: int) -> str:
    return f"Port_#{port:04d}.Hub_#0008"


class TestLookups:
    """Read-side lookups never raise."""

    def test_get_physical_port(self):
        mapper = PortMapper({f"{PRIMARY_CHIP}|2": 5})
        assert mapper.get_physical_port(_location(2), PRIMARY_PARENT) == 5

    def test_lookup_is_speed_independent(self):
        mapper = PortMapper({f"{PRIMARY_CHIP}|2": 5})
        assert mapper.get_physical_port("Port_#0002.Hub_#0003", PRIMARY_PARENT_USB2) == 5

    def test_unmapped_returns_none(self):
        mapper = PortMapper({f"{PRIMARY_CHIP}|2": 5})
        assert mapper.get_physical_port(_location(3), PRIMARY_PARENT) is None

    def test_unnormalizable_returns_none(self):
        mapper = PortMapper({f"{PRIMARY_CHIP}|2": 5})
        assert mapper.get_physical_port(None, PRIMARY_PARENT) is None
        assert mapper.get_physical_port(_location(2), "garbage") is None
        assert not mapper.has_mapping("", "")
        assert mapper.get_existing_port(None, None) is None

    def test_has_mapping(self):
        mapper = PortMapper({f"{PRIMARY_CHIP}|2": 5})
        assert mapper.has_mapping(_location(2), PRIMARY_PARENT)
        assert not mapper.has_mapping(_location(3), PRIMARY_PARENT)

    def test_is_known_chip(self):
        mapper = PortMapper({f"{PRIMARY_CHIP}|2": 5})
        assert mapper.is_known_chip(_location(6), PRIMARY_PARENT)
        assert not mapper.is_known_chip(_location(2), FOREIGN_PARENT)
        assert not mapper.is_known_chip(_location(2), None)

    def test_constructor_copies_mapping(self):
        source = {f"{PRIMARY_CHIP}|1": 1}
        mapper = PortMapper(source)
        source[f"{PRIMARY_CHIP}|2"] = 2
        assert mapper.get_mapping_count() == 1

    def test_from_document(self):
        doc = CalibrationDocument(mappings={f"{PRIMARY_CHIP}|1": 1})
        assert PortMapper.from_document(doc).get_mapping_count() == 1
        assert PortMapper.from_document(None).get_mapping_count() == 0


class TestAddMapping:
    """Tests for add_mapping, the only mutating call."""

    def test_returns_key(self):
        mapper = PortMapper()
        key = mapper.add_mapping("Port_#0002.Hub_#0008", PRIMARY_PARENT, 3)
        assert key == "9&238498F1|2"
        assert mapper.get_physical_port("Port_#0002.Hub_#0008", PRIMARY_PARENT) == 3

    def test_overwrites_existing_key(self):
        mapper = PortMapper()
        mapper.add_mapping(_location(2), PRIMARY_PARENT, 3)
        mapper.add_mapping(_location(2), PRIMARY_PARENT, 4)
        assert mapper.get_all_mappings() == {f"{PRIMARY_CHIP}|2": 4}

    def test_unnormalizable_raises(self):
        mapper = PortMapper()
        with pytest.raises(NormalizationError):
            mapper.add_mapping("Hub_#0008", PRIMARY_PARENT, 1)
        assert mapper.get_mapping_count() == 0

    @pytest.mark.parametrize("port", [0, 8, -1, 2.0, "3", True, None])
    def test_invalid_port_raises(self, port):
        mapper = PortMapper()
        with pytest.raises(InvalidPortError):
            mapper.add_mapping(_location(2), PRIMARY_PARENT, port)
        assert mapper.get_mapping_count() == 0

    def test_invalid_port_error_is_value_error(self):
        with pytest.raises(ValueError):
            PortMapper().add_mapping(_location(2), PRIMARY_PARENT, 9)


class TestQueries:
    """Tests for calibration completeness and chip queries."""

    def test_is_calibrated_requires_seven_entries(self, full_mappings):
        partial = dict(list(full_mappings.items())[:6])
        assert not PortMapper(partial).is_calibrated()
        assert PortMapper(full_mappings).is_calibrated()

    def test_is_calibrated_with_more_than_seven_entries(self, full_mappings):
        mappings = dict(full_mappings)
        mappings[f"{SECONDARY_CHIP}|1"] = 5
        mapper = PortMapper(mappings)

        assert mapper.get_mapping_count() == 8
        assert mapper.is_calibrated()
        assert mapper.missing_ports() == []

    def test_missing_ports(self):
        mapper = PortMapper({f"{PRIMARY_CHIP}|1": 1, f"{PRIMARY_CHIP}|3": 4})
        assert mapper.missing_ports() == [2, 3, 5, 6, 7]

    def test_get_all_mappings_is_a_copy(self):
        mapper = PortMapper({f"{PRIMARY_CHIP}|1": 1})
        mappings = mapper.get_all_mappings()
        mappings["0&0|0"] = 7
        assert mapper.get_mapping_count() == 1

    def test_known_chips_in_first_seen_order(self):
        mapper = PortMapper()
        mapper.add_mapping(_location(1), SECONDARY_PARENT, 5)
        mapper.add_mapping(_location(1), PRIMARY_PARENT, 1)
        mapper.add_mapping(_location(2), SECONDARY_PARENT, 6)
        assert mapper.get_known_chips() == [SECONDARY_CHIP, PRIMARY_CHIP]

    def test_empty_mapper(self):
        mapper = PortMapper()
        assert mapper.get_mapping_count() == 0
        assert mapper.get_known_chips() == []
        assert not mapper.is_calibrated()
        assert mapper.missing_ports() == [1, 2, 3, 4, 5, 6, 7]
