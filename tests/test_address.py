"""Tests for cell identifiers, the address space and range expansion."""

from __future__ import annotations

import pytest

from gridcalc.address import (
    DEFAULT_SPACE,
    AddressSpace,
    expand_range,
    make_addr,
    parse_addr,
)


class TestParseAddr:
    def test_round_trip(self) -> None:
        assert parse_addr("A1") == (0, 0)
        assert parse_addr("J5") == (4, 9)
        assert make_addr(4, 9) == "J5"

    @pytest.mark.parametrize("bad", ["", "1A", "AA1", "a1", "A0", "A", "A01"])
    def test_malformed(self, bad: str) -> None:
        with pytest.raises(ValueError):
            parse_addr(bad)


class TestAddressSpace:
    def test_default_bounds(self) -> None:
        assert DEFAULT_SPACE.columns == 10
        assert DEFAULT_SPACE.rows == 5
        assert DEFAULT_SPACE.size == 50
        assert DEFAULT_SPACE.column_letters[-1] == "J"

    @pytest.mark.parametrize("ref", ["A1", "J5", "E3"])
    def test_contains_valid(self, ref: str) -> None:
        assert DEFAULT_SPACE.contains(ref)

    @pytest.mark.parametrize("ref", ["Z1", "A0", "A6", "K1", "AA1", "1A", "", None, 5])
    def test_rejects_outside(self, ref: object) -> None:
        assert not DEFAULT_SPACE.contains(ref)

    def test_custom_space(self) -> None:
        space = AddressSpace(columns=26, rows=100)
        assert space.contains("Z100")
        assert not space.contains("Z101")

    @pytest.mark.parametrize("columns,rows", [(0, 5), (27, 5), (10, 0)])
    def test_invalid_bounds(self, columns: int, rows: int) -> None:
        with pytest.raises(ValueError):
            AddressSpace(columns=columns, rows=rows)

    def test_cell_id(self) -> None:
        assert DEFAULT_SPACE.cell_id(0, 0) == "A1"
        assert DEFAULT_SPACE.cell_id(2, 1) == "B3"
        with pytest.raises(ValueError, match="Invalid cell position"):
            DEFAULT_SPACE.cell_id(5, 0)

    def test_iter_ids_row_major(self) -> None:
        ids = AddressSpace(columns=2, rows=2).iter_ids()
        assert ids == ["A1", "B1", "A2", "B2"]


class TestExpandRange:
    def test_vertical(self) -> None:
        assert expand_range("A1", "A3") == ["A1", "A2", "A3"]

    def test_horizontal(self) -> None:
        assert expand_range("A1", "C1") == ["A1", "B1", "C1"]

    def test_reversed_endpoints(self) -> None:
        assert expand_range("A3", "A1") == ["A1", "A2", "A3"]
        assert expand_range("C2", "A2") == ["A2", "B2", "C2"]

    def test_single_cell(self) -> None:
        assert expand_range("B2", "B2") == ["B2"]

    def test_rectangular_is_empty(self) -> None:
        assert expand_range("A1", "B2") == []

    def test_malformed_is_empty(self) -> None:
        assert expand_range("A1", "?") == []
