"""Tests for lossless amounts and asset map helpers."""

from decimal import Decimal

import pytest

from smartwallet.value import (
    LOVELACE,
    Value,
    ada_to_lovelace,
    asset_map,
    format_ada,
    lovelace_to_ada,
    reserve_ada_to_lovelace,
    split_asset_id,
    sum_asset_maps,
)


class TestValue:
    def test_accepts_int_decimal_hex_and_value(self):
        assert Value(42) == 42
        assert Value("42") == 42
        assert Value("0x2a") == 42
        assert Value(Value(42)) == 42

    @pytest.mark.parametrize("bad", [-1, "-5", 1.5, True, "abc", "", None, [1]])
    def test_rejects_lossy_or_invalid_input(self, bad):
        with pytest.raises(ValueError):
            Value(bad)

    def test_increase_beyond_64_bits_is_exact(self):
        total = Value(2**63)
        total.increase(2**63)
        total.increase(Value(2**64 + 7))
        assert int(total) == 2**65 + 7

    def test_add_returns_new_value(self):
        a = Value(10)
        b = a.add(5)
        assert a == 10
        assert b == 15

    def test_comparison_and_hash(self):
        assert Value(3) < 4
        assert Value(3) <= Value(3)
        assert Value(5) > "4"
        assert Value(5) >= 5
        assert len({Value(1), Value(1), Value(2)}) == 2
        assert Value(1) != True  # noqa: E712

    def test_str_and_repr(self):
        big = 2**300
        assert str(Value(big)) == str(big)
        assert repr(Value(7)) == "Value(7)"


class TestAssetMaps:
    def test_sum_is_keywise_and_does_not_alias(self):
        first = asset_map({LOVELACE: 2**63, "policy.tok": 1})
        second = asset_map({LOVELACE: 2**63, "other.tok": 5})
        total = sum_asset_maps([first, second])

        assert total[LOVELACE] == 2**64
        assert total["policy.tok"] == 1
        assert total["other.tok"] == 5
        assert first[LOVELACE] == 2**63

    def test_split_asset_id(self):
        assert split_asset_id("ab" * 28 + ".746f6b656e") == ("ab" * 28, "746f6b656e")
        with pytest.raises(ValueError):
            split_asset_id(LOVELACE)
        with pytest.raises(ValueError):
            split_asset_id("no-separator")


class TestAdaConversion:
    def test_amounts_round_up_and_reserves_round_down(self):
        assert ada_to_lovelace("1.0000001") == 1_000_001
        assert reserve_ada_to_lovelace("1.0000009") == 1_000_000
        assert reserve_ada_to_lovelace(8) == 8_000_000

    def test_lovelace_to_ada(self):
        assert lovelace_to_ada(2_500_000) == Decimal("2.500000")
        assert format_ada(1) == "0.000001 ADA"
