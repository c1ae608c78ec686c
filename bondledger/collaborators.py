"""
collaborators.py - External collaborator interfaces

The bonding engine talks to three collaborators besides the price oracle:

- PoolReader: reserves, share supply and underlying assets of a
  constant-product liquidity pool (used for fair LP valuation)
- SwapRouter: converts non-whitelisted collateral into a conversion target
- MintAuthority: issues the native asset when vested bonds are claimed

Each is a small Protocol. The Ledger* implementations settle through the
ledger itself, so their effects are logged and unwound together with the
rest of a bond or claim; the Static* implementation is a deterministic
stand-in for tests and quotes.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Protocol, Set, Tuple, runtime_checkable

from .core import (
    Move, TransactionOrigin, OriginType, SYSTEM_WALLET,
    LedgerError, SwapFailed, MintFailed, InvalidPoolState,
    build_transaction, to_decimal,
)
from .ledger import Ledger


# ============================================================================
# POOL READER
# ============================================================================

@runtime_checkable
class PoolReader(Protocol):
    """Read-only view of a two-asset constant-product pool."""

    def get_reserves(self) -> Tuple[Decimal, Decimal, datetime]:
        """(reserve0, reserve1, last update time)"""
        ...

    def total_shares(self) -> Decimal:
        """Total supply of pool shares."""
        ...

    def underlying_assets(self) -> Tuple[str, str]:
        """(asset0, asset1)"""
        ...


class StaticPoolReader:
    """
    Pool reader over fixed numbers.

    set_reserves() lets tests move the pool along (or off) its curve.
    """

    def __init__(
        self,
        asset0: str,
        asset1: str,
        reserve0: Decimal,
        reserve1: Decimal,
        total_shares: Decimal,
        timestamp: Optional[datetime] = None,
    ):
        self.assets = (asset0, asset1)
        self.reserve0 = to_decimal(reserve0)
        self.reserve1 = to_decimal(reserve1)
        self.shares = to_decimal(total_shares)
        self.timestamp = timestamp or datetime(1970, 1, 1)

    def get_reserves(self) -> Tuple[Decimal, Decimal, datetime]:
        return self.reserve0, self.reserve1, self.timestamp

    def total_shares(self) -> Decimal:
        return self.shares

    def underlying_assets(self) -> Tuple[str, str]:
        return self.assets

    def set_reserves(self, reserve0: Decimal, reserve1: Decimal, timestamp: Optional[datetime] = None):
        self.reserve0 = to_decimal(reserve0)
        self.reserve1 = to_decimal(reserve1)
        if timestamp is not None:
            self.timestamp = timestamp

    def __repr__(self):
        return (f"StaticPoolReader({self.assets[0]}/{self.assets[1]}, "
                f"reserves=({self.reserve0}, {self.reserve1}), shares={self.shares})")


class LedgerPoolReader:
    """
    Pool reader over ledger balances.

    Reserves are the pool wallet's balances of the two underlying assets.
    Shares of the pool are an asset issued from the system wallet, so the
    outstanding supply is the negated system balance.
    """

    def __init__(self, ledger: Ledger, pool_wallet: str, share_asset: str, asset0: str, asset1: str):
        self.ledger = ledger
        self.pool_wallet = pool_wallet
        self.share_asset = share_asset
        self.assets = (asset0, asset1)

    def get_reserves(self) -> Tuple[Decimal, Decimal, datetime]:
        return (
            self.ledger.get_balance(self.pool_wallet, self.assets[0]),
            self.ledger.get_balance(self.pool_wallet, self.assets[1]),
            self.ledger.current_time,
        )

    def total_shares(self) -> Decimal:
        outstanding = -self.ledger.get_balance(SYSTEM_WALLET, self.share_asset)
        if outstanding < 0:
            raise InvalidPoolState(f"{self.share_asset}: negative share supply {outstanding}")
        return outstanding

    def underlying_assets(self) -> Tuple[str, str]:
        return self.assets


# ============================================================================
# SWAP ROUTER
# ============================================================================

@runtime_checkable
class SwapRouter(Protocol):
    """Exact-input swap. Returns the amount of asset_out received."""

    def quote(self, asset_in: str, amount_in: Decimal, asset_out: str) -> Decimal:
        """Expected output of a swap, without executing it."""
        ...

    def swap_exact_in(
        self,
        asset_in: str,
        amount_in: Decimal,
        asset_out: str,
        min_out: Decimal,
        deadline: datetime,
    ) -> Decimal:
        ...


class LedgerSwapRouter:
    """
    Fixed-rate router settling against a liquidity wallet in the ledger.

    The router trades on behalf of one payer wallet (the engine's custody
    wallet): asset_in moves payer -> liquidity, asset_out moves
    liquidity -> payer, in one ledger transaction.

    Example:
        router = LedgerSwapRouter(ledger, payer="custody", liquidity_wallet="amm")
        router.set_rate("WETH", "USDC", Decimal("3000"))
    """

    def __init__(self, ledger: Ledger, payer: str, liquidity_wallet: str,
                 rates: Optional[Dict[Tuple[str, str], Decimal]] = None):
        self.ledger = ledger
        self.payer = payer
        self.liquidity_wallet = liquidity_wallet
        self.rates: Dict[Tuple[str, str], Decimal] = {
            pair: to_decimal(rate) for pair, rate in (rates or {}).items()
        }

    def set_rate(self, asset_in: str, asset_out: str, rate: Decimal) -> None:
        """Units of asset_out paid per unit of asset_in."""
        rate = to_decimal(rate)
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        self.rates[(asset_in, asset_out)] = rate

    def quote(self, asset_in: str, amount_in: Decimal, asset_out: str) -> Decimal:
        rate = self.rates.get((asset_in, asset_out))
        if rate is None:
            raise SwapFailed(f"no route {asset_in} -> {asset_out}")
        return self.ledger.get_asset(asset_out).round(to_decimal(amount_in) * rate)

    def swap_exact_in(
        self,
        asset_in: str,
        amount_in: Decimal,
        asset_out: str,
        min_out: Decimal,
        deadline: datetime,
    ) -> Decimal:
        """
        Raises:
            SwapFailed: On missing route, expired deadline, output below
                min_out or a transfer the ledger rejects
        """
        if self.ledger.current_time > deadline:
            raise SwapFailed(f"swap deadline {deadline} has passed")
        amount_out = self.quote(asset_in, amount_in, asset_out)
        if amount_out <= 0:
            raise SwapFailed(f"swap of {amount_in} {asset_in} yields nothing")
        if amount_out < to_decimal(min_out):
            raise SwapFailed(f"swap output {amount_out} below minimum {min_out}")

        reference = f"swap:{asset_in}->{asset_out}:{self.ledger.next_sequence}"
        pending = build_transaction(self.ledger, [
            Move(to_decimal(amount_in), asset_in, self.payer, self.liquidity_wallet, reference),
            Move(amount_out, asset_out, self.liquidity_wallet, self.payer, reference),
        ], origin=TransactionOrigin(OriginType.EXTERNAL, "swap_router", asset=asset_in, event_type="SWAP"))
        try:
            self.ledger.execute(pending, strict=True)
        except LedgerError as e:
            raise SwapFailed(f"swap {asset_in} -> {asset_out} failed: {e}") from e
        return amount_out


# ============================================================================
# MINT AUTHORITY
# ============================================================================

@runtime_checkable
class MintAuthority(Protocol):
    """Issues native units to an account."""

    def mint(self, to: str, amount: Decimal) -> None:
        ...


class LedgerMintAuthority:
    """
    Issues the native asset from the system wallet.

    Only authorized minters may mint; an optional supply cap bounds the
    total ever issued through this authority.
    """

    def __init__(self, ledger: Ledger, asset: str, minter: str,
                 authorized_minters: Optional[Set[str]] = None,
                 supply_cap: Optional[Decimal] = None):
        self.ledger = ledger
        self.asset = asset
        self.minter = minter
        self.authorized_minters = set(authorized_minters) if authorized_minters is not None else {minter}
        self.supply_cap = to_decimal(supply_cap) if supply_cap is not None else None

    def revoke(self, minter: str) -> None:
        self.authorized_minters.discard(minter)

    def _is_mint(self, tx, move) -> bool:
        return (tx.origin.source_id == self.minter and tx.origin.event_type == "MINT"
                and move.asset == self.asset and move.source == SYSTEM_WALLET)

    def total_minted(self) -> Decimal:
        """Native issued through this authority, read back from the audit log."""
        return sum(
            (m.quantity for tx in self.ledger.transaction_log for m in tx.moves if self._is_mint(tx, m)),
            Decimal("0"),
        )

    def minted_to(self, account: str) -> Decimal:
        return sum(
            (m.quantity for tx in self.ledger.transaction_log for m in tx.moves
             if self._is_mint(tx, m) and m.dest == account),
            Decimal("0"),
        )

    def mint(self, to: str, amount: Decimal) -> None:
        """
        Raises:
            MintFailed: If the minter is unauthorized, the cap would be
                exceeded or the ledger rejects the issuance
        """
        amount = to_decimal(amount)
        if self.minter not in self.authorized_minters:
            raise MintFailed(f"{self.minter} is not authorized to mint {self.asset}")
        if self.supply_cap is not None and self.total_minted() + amount > self.supply_cap:
            raise MintFailed(f"minting {amount} {self.asset} would exceed supply cap {self.supply_cap}")
        self.ledger.ensure_wallet(to)
        pending = build_transaction(
            self.ledger,
            [Move(amount, self.asset, SYSTEM_WALLET, to, f"mint:{to}:{self.ledger.next_sequence}")],
            origin=TransactionOrigin(OriginType.EXTERNAL, self.minter, asset=self.asset, event_type="MINT"),
        )
        try:
            self.ledger.execute(pending, strict=True)
        except LedgerError as e:
            raise MintFailed(f"mint of {amount} {self.asset} to {to} failed: {e}") from e
