"""Fixed-layout Solend account parsing (reserves and obligations).

Offsets come from the on-chain program's account schema and are kept in one
table per account version. Parsing fails fast with DecodeFailedError on an
unknown version or a buffer shorter than the schema requires; nothing is ever
read out of bounds or defaulted to zero.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from solders.pubkey import Pubkey

from services.api.src.lending_api.domain.decoder import WAD
from services.api.src.lending_api.domain.errors import DecodeFailedError

PUBKEY_LEN = 32
FIELD_SIZES = {"u8": 1, "bool": 1, "u16": 2, "u32": 4, "u64": 8, "u128": 16, "pubkey": PUBKEY_LEN}


@dataclass(frozen=True)
class AccountLayout:
    name: str
    version: int
    length: int
    fields: dict[str, tuple[int, str]]

    def end_of(self, name: str) -> int:
        offset, kind = self.fields[name]
        return offset + FIELD_SIZES[kind]


RESERVE_LAYOUTS: dict[int, AccountLayout] = {
    1: AccountLayout(
        name="reserve",
        version=1,
        length=619,
        fields={
            "version": (0, "u8"),
            "last_update_slot": (1, "u64"),
            "last_update_stale": (9, "bool"),
            "lending_market": (10, "pubkey"),
            "liquidity_mint": (42, "pubkey"),
            "liquidity_mint_decimals": (74, "u8"),
            "liquidity_supply": (75, "pubkey"),
            "pyth_oracle": (107, "pubkey"),
            "switchboard_oracle": (139, "pubkey"),
            "available_amount": (171, "u64"),
            "borrowed_amount_wads": (179, "u128"),
            "cumulative_borrow_rate_wads": (195, "u128"),
            "market_price": (211, "u128"),
            "collateral_mint": (227, "pubkey"),
            "collateral_mint_total_supply": (259, "u64"),
            "collateral_supply": (267, "pubkey"),
            "optimal_utilization_rate": (299, "u8"),
            "loan_to_value_ratio": (300, "u8"),
            "liquidation_bonus": (301, "u8"),
            "liquidation_threshold": (302, "u8"),
            "min_borrow_rate": (303, "u8"),
            "optimal_borrow_rate": (304, "u8"),
            "max_borrow_rate": (305, "u8"),
            "borrow_fee_wad": (306, "u64"),
            "flash_loan_fee_wad": (314, "u64"),
            "host_fee_percentage": (322, "u8"),
            "deposit_limit": (323, "u64"),
            "borrow_limit": (331, "u64"),
            "fee_receiver": (339, "pubkey"),
        },
    ),
}

OBLIGATION_LAYOUTS: dict[int, AccountLayout] = {
    1: AccountLayout(
        name="obligation",
        version=1,
        length=1300,
        fields={
            "version": (0, "u8"),
            "last_update_slot": (1, "u64"),
            "last_update_stale": (9, "bool"),
            "lending_market": (10, "pubkey"),
            "owner": (42, "pubkey"),
            "deposited_value": (74, "u128"),
            "borrowed_value": (90, "u128"),
            "allowed_borrow_value": (106, "u128"),
            "unhealthy_borrow_value": (122, "u128"),
            # 64 bytes padding
            "deposits_len": (202, "u8"),
            "borrows_len": (203, "u8"),
        },
    ),
}

OBLIGATION_DATA_OFFSET = 204
OBLIGATION_OWNER_OFFSET = OBLIGATION_LAYOUTS[1].fields["owner"][0]
OBLIGATION_MARKET_OFFSET = OBLIGATION_LAYOUTS[1].fields["lending_market"][0]
OBLIGATION_LEN = OBLIGATION_LAYOUTS[1].length

DEPOSIT_LAYOUT = AccountLayout(
    name="obligation_collateral",
    version=1,
    length=88,
    fields={
        "deposit_reserve": (0, "pubkey"),
        "deposited_amount": (32, "u64"),
        "market_value": (40, "u128"),
    },
)

BORROW_LAYOUT = AccountLayout(
    name="obligation_liquidity",
    version=1,
    length=112,
    fields={
        "borrow_reserve": (0, "pubkey"),
        "cumulative_borrow_rate_wads": (32, "u128"),
        "borrowed_amount_wads": (48, "u128"),
        "market_value": (64, "u128"),
    },
)


# --- primitive readers ---------------------------------------------------------


def read_uint(data: bytes, offset: int, bits: int) -> int:
    """Little-endian unsigned integer of 8/16/32/64/128 bits."""
    size = bits // 8
    if offset < 0 or offset + size > len(data):
        raise DecodeFailedError(
            f"Read of u{bits} at offset {offset} overruns {len(data)}-byte buffer"
        )
    return int.from_bytes(data[offset : offset + size], "little")


def read_pubkey(data: bytes, offset: int) -> str:
    if offset < 0 or offset + PUBKEY_LEN > len(data):
        raise DecodeFailedError(
            f"Read of pubkey at offset {offset} overruns {len(data)}-byte buffer"
        )
    return str(Pubkey.from_bytes(bytes(data[offset : offset + PUBKEY_LEN])))


def read_field(data: bytes, layout: AccountLayout, name: str, base: int = 0) -> Any:
    offset, kind = layout.fields[name]
    offset += base
    if kind == "pubkey":
        return read_pubkey(data, offset)
    value = read_uint(data, offset, FIELD_SIZES[kind] * 8)
    if kind == "bool":
        return value != 0
    return value


def _select_layout(data: bytes, layouts: dict[int, AccountLayout]) -> AccountLayout:
    kind = next(iter(layouts.values())).name
    if not data:
        raise DecodeFailedError(f"Empty {kind} account data")

    version = data[0]
    layout = layouts.get(version)
    if layout is None:
        raise DecodeFailedError(f"Unsupported {kind} account version {version}")
    if len(data) < layout.length:
        raise DecodeFailedError(
            f"{kind.capitalize()} data too short: {len(data)} bytes, "
            f"v{version} requires {layout.length}"
        )
    return layout


# --- reserve -------------------------------------------------------------------


@dataclass
class SolendReserve:
    version: int
    last_update_slot: int
    last_update_stale: bool
    lending_market: str
    liquidity_mint: str
    liquidity_mint_decimals: int
    available_amount: int
    borrowed_amount_wads: int
    cumulative_borrow_rate_wads: int
    market_price: int  # WAD-scaled USD
    collateral_mint: str
    collateral_mint_total_supply: int
    # Rate curve and risk params, all in whole percent
    optimal_utilization_rate: int
    loan_to_value_ratio: int
    liquidation_bonus: int
    liquidation_threshold: int
    min_borrow_rate: int
    optimal_borrow_rate: int
    max_borrow_rate: int
    deposit_limit: int = 0
    borrow_limit: int = 0

    @property
    def borrowed_amount(self) -> int:
        """Borrowed liquidity in native units (WADs truncated)."""
        return self.borrowed_amount_wads // int(WAD)

    @property
    def total_liquidity(self) -> int:
        return self.available_amount + self.borrowed_amount

    @property
    def market_price_usd(self) -> Decimal:
        return Decimal(self.market_price) / WAD

    @property
    def utilization(self) -> Decimal:
        """Borrowed / total liquidity as a fraction (0..1)."""
        total = Decimal(self.available_amount) + Decimal(self.borrowed_amount_wads) / WAD
        if total == 0:
            return Decimal("0")
        return (Decimal(self.borrowed_amount_wads) / WAD) / total

    @property
    def collateral_exchange_rate(self) -> Decimal:
        """Liquidity units per collateral (cToken) unit."""
        if self.collateral_mint_total_supply == 0:
            return Decimal("1")
        return Decimal(self.total_liquidity) / Decimal(self.collateral_mint_total_supply)

    def compute_borrow_rate(self, utilization: Decimal | None = None) -> Decimal:
        """Annual borrow rate (fraction) on the reserve's kinked rate curve."""
        u = self.utilization if utilization is None else utilization
        optimal = Decimal(self.optimal_utilization_rate) / 100
        min_rate = Decimal(self.min_borrow_rate) / 100
        optimal_rate = Decimal(self.optimal_borrow_rate) / 100
        max_rate = Decimal(self.max_borrow_rate) / 100

        if self.optimal_utilization_rate == 100 or u < optimal:
            normalized = u / optimal if optimal > 0 else Decimal("0")
            return min_rate + normalized * (optimal_rate - min_rate)

        normalized = (u - optimal) / (Decimal("1") - optimal)
        return optimal_rate + normalized * (max_rate - optimal_rate)

    def compute_supply_rate(self) -> Decimal:
        return self.compute_borrow_rate() * self.utilization


def parse_reserve(data: bytes) -> SolendReserve:
    layout = _select_layout(data, RESERVE_LAYOUTS)
    values = {name: read_field(data, layout, name) for name in layout.fields}
    return SolendReserve(
        version=values["version"],
        last_update_slot=values["last_update_slot"],
        last_update_stale=values["last_update_stale"],
        lending_market=values["lending_market"],
        liquidity_mint=values["liquidity_mint"],
        liquidity_mint_decimals=values["liquidity_mint_decimals"],
        available_amount=values["available_amount"],
        borrowed_amount_wads=values["borrowed_amount_wads"],
        cumulative_borrow_rate_wads=values["cumulative_borrow_rate_wads"],
        market_price=values["market_price"],
        collateral_mint=values["collateral_mint"],
        collateral_mint_total_supply=values["collateral_mint_total_supply"],
        optimal_utilization_rate=values["optimal_utilization_rate"],
        loan_to_value_ratio=values["loan_to_value_ratio"],
        liquidation_bonus=values["liquidation_bonus"],
        liquidation_threshold=values["liquidation_threshold"],
        min_borrow_rate=values["min_borrow_rate"],
        optimal_borrow_rate=values["optimal_borrow_rate"],
        max_borrow_rate=values["max_borrow_rate"],
        deposit_limit=values["deposit_limit"],
        borrow_limit=values["borrow_limit"],
    )


# --- obligation ----------------------------------------------------------------


@dataclass
class ObligationCollateral:
    deposit_reserve: str
    deposited_amount: int  # collateral (cToken) units
    market_value: int  # WAD-scaled USD


@dataclass
class ObligationLiquidity:
    borrow_reserve: str
    cumulative_borrow_rate_wads: int
    borrowed_amount_wads: int
    market_value: int  # WAD-scaled USD

    @property
    def borrowed_amount(self) -> int:
        return self.borrowed_amount_wads // int(WAD)


@dataclass
class SolendObligation:
    version: int
    lending_market: str
    owner: str
    deposited_value: int  # WAD-scaled USD
    borrowed_value: int
    allowed_borrow_value: int
    unhealthy_borrow_value: int
    deposits: list[ObligationCollateral] = field(default_factory=list)
    borrows: list[ObligationLiquidity] = field(default_factory=list)

    @property
    def deposited_value_usd(self) -> Decimal:
        return Decimal(self.deposited_value) / WAD

    @property
    def borrowed_value_usd(self) -> Decimal:
        return Decimal(self.borrowed_value) / WAD

    @property
    def unhealthy_borrow_value_usd(self) -> Decimal:
        """Deposits weighted by each reserve's liquidation threshold."""
        return Decimal(self.unhealthy_borrow_value) / WAD


def parse_obligation(data: bytes) -> SolendObligation:
    layout = _select_layout(data, OBLIGATION_LAYOUTS)
    deposits_len = read_field(data, layout, "deposits_len")
    borrows_len = read_field(data, layout, "borrows_len")

    end = OBLIGATION_DATA_OFFSET + deposits_len * DEPOSIT_LAYOUT.length + borrows_len * BORROW_LAYOUT.length
    if end > len(data):
        raise DecodeFailedError(
            f"Obligation lists {deposits_len} deposits and {borrows_len} borrows, "
            f"which overruns {len(data)}-byte buffer"
        )

    deposits = []
    base = OBLIGATION_DATA_OFFSET
    for _ in range(deposits_len):
        deposits.append(
            ObligationCollateral(
                deposit_reserve=read_field(data, DEPOSIT_LAYOUT, "deposit_reserve", base),
                deposited_amount=read_field(data, DEPOSIT_LAYOUT, "deposited_amount", base),
                market_value=read_field(data, DEPOSIT_LAYOUT, "market_value", base),
            )
        )
        base += DEPOSIT_LAYOUT.length

    borrows = []
    for _ in range(borrows_len):
        borrows.append(
            ObligationLiquidity(
                borrow_reserve=read_field(data, BORROW_LAYOUT, "borrow_reserve", base),
                cumulative_borrow_rate_wads=read_field(
                    data, BORROW_LAYOUT, "cumulative_borrow_rate_wads", base
                ),
                borrowed_amount_wads=read_field(data, BORROW_LAYOUT, "borrowed_amount_wads", base),
                market_value=read_field(data, BORROW_LAYOUT, "market_value", base),
            )
        )
        base += BORROW_LAYOUT.length

    return SolendObligation(
        version=read_field(data, layout, "version"),
        lending_market=read_field(data, layout, "lending_market"),
        owner=read_field(data, layout, "owner"),
        deposited_value=read_field(data, layout, "deposited_value"),
        borrowed_value=read_field(data, layout, "borrowed_value"),
        allowed_borrow_value=read_field(data, layout, "allowed_borrow_value"),
        unhealthy_borrow_value=read_field(data, layout, "unhealthy_borrow_value"),
        deposits=deposits,
        borrows=borrows,
    )
