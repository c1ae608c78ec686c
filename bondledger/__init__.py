"""
bondledger - Multi-Collateral Bonding and Vesting Ledger

Sells a protocol's native asset at a tier-dependent discount against
whitelisted collateral, and unlocks it linearly over a vesting period.

Usage:
    from bondledger import (
        Ledger, token, BondingConfig, BondingEngine, Tier,
        StaticPriceOracle, LedgerMintAuthority, Move, build_transaction, SYSTEM_WALLET,
    )

    ledger = Ledger("main")
    ledger.register_asset(token("USDC", "USD Coin", decimals=6))
    ledger.register_asset(token("NATIVE", "Native Token"))
    ledger.register_wallet("alice")

    # Fund alice via SYSTEM_WALLET (proper issuance)
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("5000"), "USDC", SYSTEM_WALLET, "alice", "faucet")
    ]))

    engine = BondingEngine(
        ledger,
        BondingConfig(native_asset="NATIVE", base_asset="USD", treasury_wallet="treasury"),
        oracle=StaticPriceOracle({"NATIVE": Decimal("100")}),
        mint_authority=LedgerMintAuthority(ledger, "NATIVE", minter="bond_engine"),
    )
    engine.initialize(owner="dao")
    engine.add_collateral("dao", "USDC", Tier.TIER_2, discount_bonus=500, pegged_to_base=True)

    owed = engine.bond("alice", "USDC", Decimal("1000"))    # 12.5 NATIVE, vesting 7 days
    ...
    engine.claim_all("alice")
"""

# Core types
from .core import (
    LedgerView,
    Move,
    StateChange,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    ExecuteResult,
    Asset,
    build_transaction,
    with_request_id,
    token,
    to_decimal,
    SYSTEM_WALLET,
    BPS_DENOMINATOR,
    WAD,
    MAX_POSITIONS_PER_CLAIM,
    # Exceptions
    BondingError,
    PolicyViolation,
    NotWhitelisted,
    CapacityExceeded,
    ExceedsMaxBond,
    BondTooSmall,
    SlippageExceeded,
    TooManyPositions,
    Unauthorized,
    ReentrantCall,
    UnknownPosition,
    UpstreamDataError,
    InvalidPrice,
    StalePrice,
    MissingPriceFeed,
    InvalidPoolState,
    SwapFailed,
    NothingToClaim,
    LedgerError,
    InsufficientFunds,
    TransferError,
    MintFailed,
    StaleState,
    AssetNotRegistered,
    WalletNotRegistered,
)

# Ledger
from .ledger import Ledger

# Fixed point
from .fixed_point import mul_div, mul_div_up, sqrt, to_wad, from_wad, rescale

# Price feeds
from .oracle import PriceReading, PriceOracle, StaticPriceOracle, TimeSeriesPriceOracle

# Collaborators
from .collaborators import (
    PoolReader, StaticPoolReader, LedgerPoolReader,
    SwapRouter, LedgerSwapRouter,
    MintAuthority, LedgerMintAuthority,
)

# Collateral registry
from .registry import (
    Tier,
    CollateralEntry,
    DEFAULT_TIER_DISCOUNTS,
    UNBOUNDED,
    load_collateral,
    load_tier_table,
    is_whitelisted,
    get_discount,
    get_available_capacity,
    calculate_discount,
    calculate_available_capacity,
    compute_record_bond,
    compute_initialize_registry,
    compute_add_collateral,
    compute_remove_collateral,
    compute_update_tier_discount,
    compute_set_capacity,
    compute_set_conversion_target,
    compute_set_discount_bonus,
    compute_set_price_feed,
    compute_transfer_ownership,
)

# Valuation
from .valuation import (
    validate_reading,
    read_price_wad,
    calculate_value_in_base_units,
    price_in_base_units,
    value_in_base_units,
    compute_value_in_base_units,
)

# Fair LP valuation
from .fair_lp import (
    calculate_fair_pool_value_wad,
    calculate_share_value_wad,
    calculate_fair_share_value,
    value_lp_position,
)

# Epoch rate limiter
from .epoch import (
    EpochState,
    calculate_advance,
    calculate_record,
    load_epoch_state,
    get_epoch_total,
    compute_advance_if_needed,
    compute_record_and_check,
)

# Vesting ledger
from .vesting import (
    BondPosition,
    ClaimPlan,
    calculate_vested,
    calculate_claimable,
    calculate_claim,
    load_position,
    load_positions,
    load_totals,
    get_claimable,
    compute_open_position,
    compute_claim,
)

# Engine
from .engine import BondingConfig, BondQuote, BondingEngine, calculate_native_out


__all__ = [
    # Core
    'LedgerView', 'Move', 'StateChange', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'ExecuteResult', 'Asset',
    'build_transaction', 'with_request_id', 'token', 'to_decimal',
    'SYSTEM_WALLET', 'BPS_DENOMINATOR', 'WAD', 'MAX_POSITIONS_PER_CLAIM',
    # Exceptions
    'BondingError', 'PolicyViolation', 'NotWhitelisted', 'CapacityExceeded', 'ExceedsMaxBond',
    'BondTooSmall', 'SlippageExceeded', 'TooManyPositions', 'Unauthorized', 'UnknownPosition', 'ReentrantCall',
    'UpstreamDataError', 'InvalidPrice', 'StalePrice', 'MissingPriceFeed', 'InvalidPoolState',
    'SwapFailed', 'NothingToClaim', 'LedgerError', 'InsufficientFunds', 'TransferError',
    'MintFailed', 'StaleState', 'AssetNotRegistered', 'WalletNotRegistered',
    # Ledger
    'Ledger',
    # Fixed point
    'mul_div', 'mul_div_up', 'sqrt', 'to_wad', 'from_wad', 'rescale',
    # Price feeds
    'PriceReading', 'PriceOracle', 'StaticPriceOracle', 'TimeSeriesPriceOracle',
    # Collaborators
    'PoolReader', 'StaticPoolReader', 'LedgerPoolReader', 'SwapRouter', 'LedgerSwapRouter',
    'MintAuthority', 'LedgerMintAuthority',
    # Registry
    'Tier', 'CollateralEntry', 'DEFAULT_TIER_DISCOUNTS', 'UNBOUNDED',
    'load_collateral', 'load_tier_table', 'is_whitelisted', 'get_discount', 'get_available_capacity',
    'calculate_discount', 'calculate_available_capacity', 'compute_record_bond',
    'compute_initialize_registry', 'compute_add_collateral', 'compute_remove_collateral',
    'compute_update_tier_discount', 'compute_set_capacity', 'compute_set_conversion_target',
    'compute_set_discount_bonus', 'compute_set_price_feed', 'compute_transfer_ownership',
    # Valuation
    'validate_reading', 'read_price_wad', 'calculate_value_in_base_units',
    'price_in_base_units', 'value_in_base_units', 'compute_value_in_base_units',
    # Fair LP
    'calculate_fair_pool_value_wad', 'calculate_share_value_wad', 'calculate_fair_share_value',
    'value_lp_position',
    # Epoch
    'EpochState', 'calculate_advance', 'calculate_record', 'load_epoch_state', 'get_epoch_total',
    'compute_advance_if_needed', 'compute_record_and_check',
    # Vesting
    'BondPosition', 'ClaimPlan', 'calculate_vested', 'calculate_claimable', 'calculate_claim',
    'load_position', 'load_positions', 'load_totals', 'get_claimable',
    'compute_open_position', 'compute_claim',
    # Engine
    'BondingConfig', 'BondQuote', 'BondingEngine', 'calculate_native_out',
]

__version__ = '0.1.0'
