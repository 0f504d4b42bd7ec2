from decimal import Decimal

import pytest

from fakes import SOL_MINT, SOL_RESERVE, SOLEND_MARKET, USDC_RESERVE, WAD, pubkey, solend_obligation_bytes, solend_reserve_bytes
from services.api.src.lending_api.domain.errors import DecodeFailedError
from services.api.src.lending_api.domain.solend_layout import (
    OBLIGATION_DATA_OFFSET,
    OBLIGATION_LEN,
    RESERVE_LAYOUTS,
    parse_obligation,
    parse_reserve,
    read_uint,
)


class TestParseReserve:
    def test_decodes_fields_at_their_offsets(self):
        reserve = parse_reserve(solend_reserve_bytes())

        assert reserve.version == 1
        assert reserve.last_update_slot == 250_000_000
        assert reserve.lending_market == SOLEND_MARKET
        assert reserve.liquidity_mint == SOL_MINT
        assert reserve.liquidity_mint_decimals == 9
        assert reserve.available_amount == 600 * 10**9
        assert reserve.borrowed_amount == 400 * 10**9
        assert reserve.market_price_usd == Decimal(100)
        assert reserve.collateral_mint == pubkey(9)
        assert reserve.optimal_utilization_rate == 80
        assert reserve.liquidation_threshold == 80

    def test_derived_values(self):
        reserve = parse_reserve(solend_reserve_bytes())

        assert reserve.total_liquidity == 1000 * 10**9
        assert reserve.utilization == Decimal("0.4")
        assert reserve.collateral_exchange_rate == Decimal("1.25")

    def test_empty_reserve_has_zero_utilization(self):
        reserve = parse_reserve(solend_reserve_bytes(available_amount=0, borrowed_amount_wads=0))
        assert reserve.utilization == 0
        assert reserve.compute_supply_rate() == 0

    def test_extra_trailing_bytes_are_ignored(self):
        reserve = parse_reserve(solend_reserve_bytes() + b"\x00" * 100)
        assert reserve.available_amount == 600 * 10**9

    def test_short_buffer_fails(self):
        data = solend_reserve_bytes()[: RESERVE_LAYOUTS[1].length - 1]
        with pytest.raises(DecodeFailedError, match="too short"):
            parse_reserve(data)

    def test_unknown_version_fails(self):
        with pytest.raises(DecodeFailedError, match="version 7"):
            parse_reserve(solend_reserve_bytes(version=7))

    def test_empty_data_fails(self):
        with pytest.raises(DecodeFailedError):
            parse_reserve(b"")


class TestRateCurve:
    def test_below_kink(self):
        reserve = parse_reserve(solend_reserve_bytes())
        # 0.4 / 0.8 of the way from 0% to 8%
        assert reserve.compute_borrow_rate() == Decimal("0.04")
        assert reserve.compute_supply_rate() == Decimal("0.016")

    def test_above_kink(self):
        reserve = parse_reserve(solend_reserve_bytes())
        # halfway from 8% to 100%
        assert reserve.compute_borrow_rate(Decimal("0.9")) == Decimal("0.54")

    def test_at_kink(self):
        reserve = parse_reserve(solend_reserve_bytes())
        assert reserve.compute_borrow_rate(Decimal("0.8")) == Decimal("0.08")

    def test_full_utilization_hits_max(self):
        reserve = parse_reserve(solend_reserve_bytes())
        assert reserve.compute_borrow_rate(Decimal("1")) == Decimal("1")

    def test_optimal_at_hundred_stays_on_first_segment(self):
        reserve = parse_reserve(solend_reserve_bytes(optimal_utilization_rate=100))
        assert reserve.compute_borrow_rate(Decimal("1")) == Decimal("0.08")

    def test_min_rate_applies_at_zero(self):
        reserve = parse_reserve(solend_reserve_bytes(min_borrow_rate=2))
        assert reserve.compute_borrow_rate(Decimal("0")) == Decimal("0.02")


class TestParseObligation:
    def test_decodes_header_and_lists(self):
        owner = pubkey(7)
        data = solend_obligation_bytes(
            owner,
            deposits=[(SOL_RESERVE, 10 * 10**9, 1250 * WAD)],
            borrows=[(USDC_RESERVE, 300 * 10**6 * WAD, 300 * WAD)],
            deposited_value=1250 * WAD,
            borrowed_value=300 * WAD,
            unhealthy_borrow_value=1000 * WAD,
        )

        obligation = parse_obligation(data)

        assert obligation.owner == owner
        assert obligation.lending_market == SOLEND_MARKET
        assert obligation.deposited_value_usd == Decimal(1250)
        assert obligation.borrowed_value_usd == Decimal(300)
        assert obligation.unhealthy_borrow_value_usd == Decimal(1000)

        [deposit] = obligation.deposits
        assert deposit.deposit_reserve == SOL_RESERVE
        assert deposit.deposited_amount == 10 * 10**9
        assert deposit.market_value == 1250 * WAD

        [borrow] = obligation.borrows
        assert borrow.borrow_reserve == USDC_RESERVE
        assert borrow.borrowed_amount == 300 * 10**6
        assert borrow.cumulative_borrow_rate_wads == WAD

    def test_borrows_follow_deposits(self):
        data = solend_obligation_bytes(
            pubkey(7),
            deposits=[(SOL_RESERVE, 1, 0), (USDC_RESERVE, 2, 0)],
            borrows=[(SOL_RESERVE, 3 * WAD, 0)],
        )
        obligation = parse_obligation(data)

        assert [d.deposited_amount for d in obligation.deposits] == [1, 2]
        assert obligation.borrows[0].borrowed_amount == 3

    def test_empty_obligation(self):
        obligation = parse_obligation(solend_obligation_bytes(pubkey(7)))
        assert obligation.deposits == []
        assert obligation.borrows == []

    def test_list_lengths_overrunning_buffer_fail(self):
        # 13 deposits of 88 bytes starting at 204 need 1348 bytes
        data = solend_obligation_bytes(pubkey(7), deposits_len=13)
        assert len(data) == OBLIGATION_LEN
        assert OBLIGATION_DATA_OFFSET + 13 * 88 > OBLIGATION_LEN
        with pytest.raises(DecodeFailedError, match="overruns"):
            parse_obligation(data)

    def test_short_buffer_fails(self):
        with pytest.raises(DecodeFailedError):
            parse_obligation(solend_obligation_bytes(pubkey(7))[:500])


class TestReadUint:
    def test_little_endian(self):
        assert read_uint(b"\x01\x02", 0, 16) == 0x0201

    def test_overrun(self):
        with pytest.raises(DecodeFailedError):
            read_uint(b"\x00" * 7, 0, 64)
