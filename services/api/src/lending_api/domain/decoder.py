"""Unit decoding: fixed-point encodings, reserve bitmaps and raw EVM call results.

Everything in here is pure and deterministic. Native token amounts are handled
as Python ints (arbitrary precision) and only turned into floats at the very
end, when producing percentages or display values.
"""

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from services.api.src.lending_api.domain.errors import DecodeFailedError

RAY = Decimal(10) ** 27
WAD = Decimal(10) ** 18
PERCENTAGE_FACTOR = Decimal(10_000)  # basis points, 10000 = 100%
LAMPORTS_PER_SOL = Decimal(10) ** 9
SECONDS_PER_YEAR = 31_536_000

WORD_HEX_LEN = 64

_DECIMAL_RE = re.compile(r"^-?\d+(\.\d+)?$")
_EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def _to_decimal(value: int | str | Decimal) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise DecodeFailedError(f"Not a number: {value!r}")


# --- fixed point -------------------------------------------------------------


def ray_to_percentage(ray: int | str) -> float:
    """RAY-scaled rate (1e27 = 1) to percent."""
    return float(_to_decimal(ray) / RAY * 100)


def calculate_apy(rate_ray: int | str, periods_per_year: int = SECONDS_PER_YEAR) -> float:
    """Compound a RAY-scaled annual rate per period and return APY in percent.

    apy = (1 + rate / n) ** n - 1, with n = periods_per_year. Evaluated as
    expm1(n * log1p(rate / n)) in double precision; the result is an
    approximation good to ~1e-12 relative, which is below display precision.
    """
    rate = float(_to_decimal(rate_ray) / RAY)
    return annual_rate_to_apy(rate, periods_per_year)


def annual_rate_to_apy(rate: float, periods_per_year: int) -> float:
    """Same compounding as calculate_apy for a plain fractional annual rate."""
    if rate == 0:
        return 0.0
    try:
        return math.expm1(periods_per_year * math.log1p(rate / periods_per_year)) * 100
    except OverflowError:
        raise DecodeFailedError(
            f"APY out of range for annual rate {rate!r}",
            context={"rate": rate, "periods_per_year": periods_per_year},
        )


def format_units(amount: int | str, decimals: int) -> str:
    """Native integer units to a decimal string ("1500000", 6 -> "1.5").

    Exact integer arithmetic; whole amounts keep one fractional digit ("2.0").
    """
    try:
        value = int(amount)
    except (TypeError, ValueError):
        raise DecodeFailedError(f"Failed to format units with {decimals} decimals: {amount!r}")

    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10**decimals)
    frac_str = str(frac).zfill(decimals).rstrip("0") if decimals else ""
    return f"{sign}{whole}.{frac_str or '0'}"


def parse_units(amount: str, decimals: int) -> str:
    """Decimal string to native integer units ("1.5", 6 -> "1500000")."""
    amount = amount.strip()
    if not _DECIMAL_RE.match(amount):
        raise DecodeFailedError(f"Failed to parse units: {amount!r}")

    sign = -1 if amount.startswith("-") else 1
    whole, _, frac = amount.lstrip("-").partition(".")
    frac = frac.rstrip("0")
    if len(frac) > decimals:
        raise DecodeFailedError(
            f"Failed to parse units: {amount!r} has more than {decimals} decimals"
        )
    value = int(whole) * 10**decimals + int(frac.ljust(decimals, "0") or "0")
    return str(sign * value)


def calculate_utilization(total_borrow: int | str, total_supply: int | str) -> float:
    """Borrowed / supplied in percent; 0 when nothing is supplied."""
    supply = _to_decimal(total_supply)
    if supply == 0:
        return 0.0
    return float(_to_decimal(total_borrow) / supply * 100)


def bps_to_percentage(bps: int) -> float:
    """Basis points to percent (8250 -> 82.5)."""
    return float(Decimal(bps) / PERCENTAGE_FACTOR * 100)


def lamports_to_sol(lamports: int | str) -> float:
    return float(_to_decimal(lamports) / LAMPORTS_PER_SOL)


def sol_to_lamports(sol: int | str | float) -> str:
    return str(int(_to_decimal(sol) * LAMPORTS_PER_SOL))


def calculate_health_factor(
    collateral_value: float, debt_value: float, liquidation_threshold_percent: float
) -> float:
    """(collateral * threshold%) / debt; +inf when there is no debt."""
    if debt_value == 0:
        return math.inf
    return (collateral_value * liquidation_threshold_percent / 100) / debt_value


# --- Aave reserve configuration bitmap ----------------------------------------

LTV_START, LTV_BITS = 0, 16
LIQUIDATION_THRESHOLD_START = 16
LIQUIDATION_BONUS_START = 32
DECIMALS_START, DECIMALS_BITS = 48, 8
ACTIVE_BIT = 56
FROZEN_BIT = 57
BORROWING_BIT = 58
STABLE_BORROWING_BIT = 59
PAUSED_BIT = 60
RESERVE_FACTOR_START = 64


@dataclass(frozen=True)
class ReserveConfiguration:
    ltv: float  # percent
    liquidation_threshold: float  # percent
    liquidation_bonus: float  # percent, 10500 bps -> 105.0
    decimals: int
    is_active: bool
    is_frozen: bool
    borrowing_enabled: bool
    stable_borrowing_enabled: bool
    is_paused: bool
    reserve_factor: float  # percent


def _bits(bitmap: int, start: int, length: int = 16) -> int:
    return (bitmap >> start) & ((1 << length) - 1)


def _bit(bitmap: int, position: int) -> bool:
    return (bitmap >> position) & 1 == 1


def decode_reserve_config_bitmap(bitmap: int) -> ReserveConfiguration:
    if bitmap < 0 or bitmap >= 1 << 256:
        raise DecodeFailedError(f"Reserve configuration is not a uint256: {bitmap}")
    return ReserveConfiguration(
        ltv=_bits(bitmap, LTV_START, LTV_BITS) / 100,
        liquidation_threshold=_bits(bitmap, LIQUIDATION_THRESHOLD_START) / 100,
        liquidation_bonus=_bits(bitmap, LIQUIDATION_BONUS_START) / 100,
        decimals=_bits(bitmap, DECIMALS_START, DECIMALS_BITS),
        is_active=_bit(bitmap, ACTIVE_BIT),
        is_frozen=_bit(bitmap, FROZEN_BIT),
        borrowing_enabled=_bit(bitmap, BORROWING_BIT),
        stable_borrowing_enabled=_bit(bitmap, STABLE_BORROWING_BIT),
        is_paused=_bit(bitmap, PAUSED_BIT),
        reserve_factor=_bits(bitmap, RESERVE_FACTOR_START) / 100,
    )


# --- raw eth_call results ------------------------------------------------------


def hex_to_int(value: str) -> int:
    if not value or value == "0x":
        return 0
    try:
        return int(value, 16)
    except ValueError:
        raise DecodeFailedError(f"Failed to decode hex to int: {value!r}")


def hex_to_bool(value: str) -> bool:
    return hex_to_int(value) != 0


def hex_to_address(value: str) -> str:
    """Last 20 bytes of a hex word as a lowercase 0x address."""
    return word_to_address(hex_to_int(value))


def decode_words(result: str, min_words: int) -> list[int]:
    """Split an ABI-encoded static return value into uint256 words.

    Raises:
        DecodeFailedError: if the payload is malformed or shorter than
            min_words words (usually a wrong contract or ABI version).
    """
    payload = result[2:] if result.startswith("0x") else result
    if len(payload) % WORD_HEX_LEN:
        raise DecodeFailedError(f"Call result is not word aligned ({len(payload)} hex chars)")

    words = [
        hex_to_int(payload[i : i + WORD_HEX_LEN])
        for i in range(0, len(payload), WORD_HEX_LEN)
    ]
    if len(words) < min_words:
        raise DecodeFailedError(f"Expected at least {min_words} words, got {len(words)}")
    return words


def word_to_int(words: list[int], index: int) -> int:
    try:
        return words[index]
    except IndexError:
        raise DecodeFailedError(f"Word {index} missing from {len(words)}-word result")


def word_to_address(word: int) -> str:
    return "0x" + format(word & ((1 << 160) - 1), "040x")


def encode_address_arg(address: str) -> str:
    """Left-pad an address into one 32-byte ABI word (hex, no 0x)."""
    if not is_evm_address(address):
        raise DecodeFailedError(f"Not an EVM address: {address!r}")
    return address[2:].lower().zfill(WORD_HEX_LEN)


def is_evm_address(address: str) -> bool:
    return bool(_EVM_ADDRESS_RE.match(address))


def is_solana_address(address: str) -> bool:
    return bool(_BASE58_RE.match(address))
