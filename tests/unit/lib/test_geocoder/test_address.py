"""Unit tests for address normalization and simplification."""

import pytest

from listing_geocoder.lib.geocoder.address import normalize_address, simplify_address


class TestNormalizeAddress:
    """Tests for normalize_address."""

    def test_trims_collapses_and_lowercases(self) -> None:
        assert normalize_address("  221B  Baker Street,  London ") == "221b baker street, london"

    def test_strips_unit_and_rewrites_usa(self) -> None:
        assert normalize_address("123 Main St Apt 4, Springfield, USA") == "123 main st springfield, us"

    @pytest.mark.parametrize(
        "raw",
        [
            "5 Elm Rd Unit 3-A, Leeds",
            "5 Elm Rd #3, Leeds",
            "5 Elm Rd apartment 12b, Leeds",
            "5 Elm Rd Apt. 7, Leeds",
        ],
    )
    def test_unit_designators_removed(self, raw: str) -> None:
        assert normalize_address(raw) == "5 elm rd leeds"

    def test_words_containing_unit_are_kept(self) -> None:
        assert normalize_address("1 United Way, Community Plaza") == "1 united way, community plaza"

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_input(self, raw: str | None) -> None:
        assert normalize_address(raw) == ""

    def test_idempotent(self) -> None:
        once = normalize_address("  Flat 2, 14 High St ,  Bath, USA ")
        assert normalize_address(once) == once


class TestSimplifyAddress:
    """Tests for simplify_address."""

    def test_full_address_first(self) -> None:
        variants = simplify_address("10 downing street, london")
        assert variants[0] == "10 downing street, london"
        assert variants[1] == "10 downing street"
        assert variants[-1] == "10"

    def test_bounded_variants(self) -> None:
        variants = simplify_address("123 main st springfield, us", max_variants=2)
        assert variants == ["123 main st springfield, us", "123 main st springfield", "123 main st"]

    def test_zero_simplifications_keeps_only_full_address(self) -> None:
        assert simplify_address("a b c", max_variants=0) == ["a b c"]

    def test_empty(self) -> None:
        assert simplify_address("") == []
