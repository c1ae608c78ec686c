"""
test_collaborators.py - Unit tests for swap router, mint authority and pool readers
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from bondledger import (
    LedgerSwapRouter, LedgerMintAuthority, StaticPoolReader,
    PoolReader, SwapRouter, MintAuthority,
    SwapFailed, MintFailed, TransferError,
)
from tests.factories import T0, fund


@pytest.fixture
def router(ledger):
    ledger.register_wallet("custody")
    fund(ledger, "custody", "WETH", Decimal("5"))
    fund(ledger, "amm", "USDC", Decimal("10000"))
    router = LedgerSwapRouter(ledger, payer="custody", liquidity_wallet="amm")
    router.set_rate("WETH", "USDC", Decimal("2500"))
    return router


class TestProtocols:

    def test_implementations_satisfy_protocols(self, ledger, router):
        assert isinstance(router, SwapRouter)
        assert isinstance(LedgerMintAuthority(ledger, "NATIVE", "engine"), MintAuthority)
        assert isinstance(StaticPoolReader("A", "B", 1, 1, 1), PoolReader)


class TestLedgerSwapRouter:

    def test_quote(self, router):
        assert router.quote("WETH", Decimal("2"), "USDC") == Decimal("5000")

    def test_swap_moves_both_legs(self, ledger, router):
        out = router.swap_exact_in("WETH", Decimal("2"), "USDC", Decimal("4999"), T0 + timedelta(minutes=5))
        assert out == Decimal("5000")
        assert ledger.get_balance("custody", "WETH") == Decimal("3")
        assert ledger.get_balance("custody", "USDC") == Decimal("5000")
        assert ledger.get_balance("amm", "WETH") == Decimal("2")
        assert ledger.transaction_log[-1].origin.event_type == "SWAP"

    def test_repeated_swaps_are_distinct(self, ledger, router):
        deadline = T0 + timedelta(minutes=5)
        router.swap_exact_in("WETH", Decimal("1"), "USDC", Decimal("0"), deadline)
        router.swap_exact_in("WETH", Decimal("1"), "USDC", Decimal("0"), deadline)
        assert ledger.get_balance("custody", "USDC") == Decimal("5000")

    def test_no_route(self, router):
        with pytest.raises(SwapFailed, match="no route"):
            router.quote("USDC", Decimal("1"), "WETH")

    def test_deadline_passed(self, router):
        with pytest.raises(SwapFailed, match="deadline"):
            router.swap_exact_in("WETH", Decimal("1"), "USDC", Decimal("0"), T0 - timedelta(seconds=1))

    def test_min_out(self, ledger, router):
        with pytest.raises(SwapFailed, match="below minimum"):
            router.swap_exact_in("WETH", Decimal("1"), "USDC", Decimal("2500.01"), T0)
        assert ledger.get_balance("custody", "WETH") == Decimal("5")

    def test_liquidity_shortfall(self, ledger, router):
        with pytest.raises(SwapFailed, match="failed"):
            router.swap_exact_in("WETH", Decimal("5"), "USDC", Decimal("0"), T0)
        assert ledger.get_balance("custody", "WETH") == Decimal("5")
        assert ledger.get_balance("amm", "USDC") == Decimal("10000")

    def test_rate_must_be_positive(self, router):
        with pytest.raises(ValueError):
            router.set_rate("WETH", "DAI", Decimal("0"))


class TestLedgerMintAuthority:

    def test_mint_issues_from_system(self, ledger):
        minter = LedgerMintAuthority(ledger, "NATIVE", minter="engine")
        minter.mint("alice", Decimal("12.5"))
        minter.mint("alice", Decimal("12.5"))
        assert ledger.get_balance("alice", "NATIVE") == Decimal("25")
        assert minter.total_minted() == Decimal("25")
        assert minter.minted_to("alice") == Decimal("25")
        assert minter.minted_to("bob") == Decimal("0")

    def test_mint_registers_new_account(self, ledger):
        LedgerMintAuthority(ledger, "NATIVE", minter="engine").mint("carol", Decimal("1"))
        assert ledger.get_balance("carol", "NATIVE") == Decimal("1")

    def test_revoked_minter(self, ledger):
        minter = LedgerMintAuthority(ledger, "NATIVE", minter="engine")
        minter.revoke("engine")
        with pytest.raises(MintFailed, match="not authorized"):
            minter.mint("alice", Decimal("1"))
        assert ledger.get_balance("alice", "NATIVE") == Decimal("0")

    def test_supply_cap(self, ledger):
        minter = LedgerMintAuthority(ledger, "NATIVE", minter="engine", supply_cap=Decimal("10"))
        minter.mint("alice", Decimal("10"))
        with pytest.raises(MintFailed, match="supply cap"):
            minter.mint("bob", Decimal("0.000000000000000001"))

    def test_unregistered_asset(self, ledger):
        with pytest.raises(MintFailed):
            LedgerMintAuthority(ledger, "GOV", minter="engine").mint("alice", Decimal("1"))

    def test_mint_failed_is_transfer_error(self):
        assert issubclass(MintFailed, TransferError)


class TestStaticPoolReader:

    def test_set_reserves(self):
        pool = StaticPoolReader("WETH", "USDC", Decimal("100"), Decimal("250000"), Decimal("1000"))
        pool.set_reserves(Decimal("400"), Decimal("62500"), T0)
        assert pool.get_reserves() == (Decimal("400"), Decimal("62500"), T0)
        assert pool.underlying_assets() == ("WETH", "USDC")
        assert pool.total_shares() == Decimal("1000")
