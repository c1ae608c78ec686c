"""
test_fair_lp.py - Unit tests for fair LP valuation and fixed-point helpers
"""

import pytest
from decimal import Decimal

from bondledger import (
    WAD, mul_div, mul_div_up, sqrt, to_wad, from_wad, rescale,
    calculate_fair_pool_value_wad, calculate_share_value_wad, calculate_fair_share_value,
    value_lp_position, StaticPoolReader, StaticPriceOracle, LedgerPoolReader,
    InvalidPoolState, InvalidPrice, MissingPriceFeed,
    Move, SYSTEM_WALLET, build_transaction,
)
from tests.factories import T0


class TestFixedPoint:

    def test_mul_div_full_width(self):
        a = 2 ** 255
        assert mul_div(a, 2 ** 200, 2 ** 200) == a

    def test_mul_div_floors_and_up_ceils(self):
        assert mul_div(10, 10, 3) == 33
        assert mul_div_up(10, 10, 3) == 34
        assert mul_div_up(10, 9, 3) == 30

    def test_mul_div_zero_denominator(self):
        with pytest.raises(ZeroDivisionError):
            mul_div(1, 1, 0)

    def test_sqrt(self):
        assert sqrt(10 ** 36) == 10 ** 18
        assert sqrt(15) == 3

    def test_wad_conversion(self):
        assert to_wad(Decimal("1.5")) == 15 * 10 ** 17
        assert to_wad(Decimal("1e-19")) == 0
        assert from_wad(25 * 10 ** 17) == Decimal("2.5")

    def test_rescale(self):
        assert rescale(123, 8) == 123 * 10 ** 10
        assert rescale(123 * 10 ** 10, 18, 8) == 123
        assert rescale(1999, 21, 18) == 1


class TestFairPoolValue:

    def test_balanced_pool(self):
        # 100 WETH @ 2500 and 250,000 USDC @ 1 -> 500,000
        value = calculate_fair_pool_value_wad(100 * WAD, 250_000 * WAD, 2500 * WAD, WAD)
        assert value == 500_000 * WAD

    def test_skewed_reserves_same_product(self):
        balanced = calculate_fair_pool_value_wad(100 * WAD, 250_000 * WAD, 2500 * WAD, WAD)
        skewed = calculate_fair_pool_value_wad(400 * WAD, 62_500 * WAD, 2500 * WAD, WAD)
        assert skewed == balanced

    def test_naive_value_would_move(self):
        # the same skew would value the pool at 400*2500 + 62,500 = 1,062,500 if reserves were trusted
        skewed = calculate_fair_pool_value_wad(400 * WAD, 62_500 * WAD, 2500 * WAD, WAD)
        assert skewed < 1_062_500 * WAD

    @pytest.mark.parametrize("r0, r1", [(0, WAD), (WAD, 0)])
    def test_empty_reserves(self, r0, r1):
        with pytest.raises(InvalidPoolState):
            calculate_fair_pool_value_wad(r0, r1, WAD, WAD)

    def test_bad_price(self):
        with pytest.raises(InvalidPrice):
            calculate_fair_pool_value_wad(WAD, WAD, 0, WAD)

    def test_share_value(self):
        assert calculate_share_value_wad(500_000 * WAD, 10 * WAD, 1000 * WAD) == 5000 * WAD

    def test_zero_supply(self):
        with pytest.raises(InvalidPoolState, match="no outstanding"):
            calculate_share_value_wad(WAD, 0, 0)

    def test_shares_above_supply(self):
        with pytest.raises(InvalidPoolState):
            calculate_share_value_wad(WAD, 2, 1)

    def test_decimal_wrapper(self):
        value = calculate_fair_share_value(
            Decimal("100"), Decimal("250000"), Decimal("2500"), Decimal("1"),
            Decimal("1"), Decimal("1000"),
        )
        assert value == Decimal("500")


class TestValueLpPosition:

    def test_values_shares_in_base_units(self):
        pool = StaticPoolReader("WETH", "USDC", Decimal("100"), Decimal("250000"), Decimal("1000"))
        oracle = StaticPriceOracle({"WETH": Decimal("2500"), "DAI": Decimal("1")})
        value = value_lp_position(pool, oracle, Decimal("2"), T0, feeds={"USDC": "DAI"})
        assert value == Decimal("1000")

    def test_missing_underlying_feed(self):
        pool = StaticPoolReader("WETH", "USDC", Decimal("100"), Decimal("250000"), Decimal("1000"))
        with pytest.raises(MissingPriceFeed):
            value_lp_position(pool, StaticPriceOracle({"WETH": Decimal("2500")}), Decimal("1"), T0)

    def test_ledger_pool_reader(self, ledger):
        ledger.register_wallet("pool")
        ledger.execute(build_transaction(ledger, [
            Move(Decimal("100"), "WETH", SYSTEM_WALLET, "pool", "seed"),
            Move(Decimal("250000"), "USDC", SYSTEM_WALLET, "pool", "seed"),
            Move(Decimal("1000"), "LP", SYSTEM_WALLET, "alice", "seed"),
        ]), strict=True)
        reader = LedgerPoolReader(ledger, "pool", "LP", "WETH", "USDC")
        assert reader.total_shares() == Decimal("1000")
        assert reader.get_reserves()[:2] == (Decimal("100"), Decimal("250000"))
        oracle = StaticPriceOracle({"WETH": Decimal("2500"), "USDC": Decimal("1")})
        assert value_lp_position(reader, oracle, Decimal("10"), T0) == Decimal("5000")
