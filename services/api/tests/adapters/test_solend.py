"""Tests for the Solend adapter against packed reserve and obligation accounts."""

import math

import pytest

from fakes import (
    SOL_RESERVE,
    SOLEND_MARKET,
    SOLEND_PROGRAM,
    USDC_MINT,
    USDC_RESERVE,
    WAD,
    pubkey,
    solend_obligation_bytes,
    solend_reserve_bytes,
)
from services.api.src.lending_api.adapters.solend import SLOTS_PER_YEAR, SolendAdapter, reserve_rates
from services.api.src.lending_api.domain.decoder import annual_rate_to_apy
from services.api.src.lending_api.domain.errors import QueryFailedError
from services.api.src.lending_api.domain.models import Chain
from services.api.src.lending_api.domain.solend_layout import parse_reserve
from services.api.src.lending_api.providers.prices import StaticPriceOracle

WALLET = pubkey(7)


def usdc_reserve_bytes(**overrides):
    values = {
        "liquidity_mint": USDC_MINT,
        "liquidity_mint_decimals": 6,
        "available_amount": 700_000 * 10**6,
        "borrowed_amount_wads": 300_000 * 10**6 * WAD,
        "market_price": WAD,
        "collateral_mint_total_supply": 1_000_000 * 10**6,
    }
    values.update(overrides)
    return solend_reserve_bytes(**values)


@pytest.fixture
def adapter(registry, provider):
    return SolendAdapter(registry, provider, StaticPriceOracle())


def test_reserve_rates_compound_per_slot():
    rates = reserve_rates(parse_reserve(solend_reserve_bytes()))

    assert rates["borrow_apr"] == pytest.approx(4.0)
    assert rates["supply_apr"] == pytest.approx(1.6)
    assert rates["supply_apy"] == pytest.approx(annual_rate_to_apy(0.016, SLOTS_PER_YEAR))
    assert rates["borrow_apy"] == pytest.approx((math.exp(0.04) - 1) * 100, rel=1e-6)


class TestFetchRates:
    async def test_sol_rate(self, adapter, provider):
        provider.set_response(Chain.SOLANA, SOL_RESERVE, "getAccountInfo", solend_reserve_bytes())

        [rate] = await adapter.fetch_rates(Chain.SOLANA, "SOL")

        assert rate.asset.symbol == "SOL"
        assert rate.utilization_rate == pytest.approx(40.0)
        assert rate.total_supply == str(1000 * 10**9)
        assert rate.total_borrow == str(400 * 10**9)
        assert rate.total_supply_usd == pytest.approx(100_000.0)
        assert rate.total_borrow_usd == pytest.approx(40_000.0)
        assert rate.borrow_apr == pytest.approx(4.0)
        assert rate.supply_apr == pytest.approx(1.6)
        assert rate.price_available is True

    async def test_failed_reserve_is_dropped(self, adapter, provider):
        provider.set_response(Chain.SOLANA, SOL_RESERVE, "getAccountInfo", solend_reserve_bytes())

        rates = await adapter.fetch_rates(Chain.SOLANA)

        assert [r.asset.symbol for r in rates] == ["SOL"]

    async def test_reserve_holding_wrong_mint_is_decode_failure(self, adapter, provider):
        provider.set_response(Chain.SOLANA, USDC_RESERVE, "getAccountInfo", solend_reserve_bytes())

        with pytest.raises(QueryFailedError) as exc_info:
            await adapter.fetch_rates(Chain.SOLANA, "USDC")

        [error] = exc_info.value.context["errors"]
        assert error["code"] == "DECODE_FAILED"

    async def test_truncated_reserve_is_decode_failure(self, adapter, provider):
        provider.set_response(Chain.SOLANA, SOL_RESERVE, "getAccountInfo", solend_reserve_bytes()[:300])

        with pytest.raises(QueryFailedError) as exc_info:
            await adapter.fetch_rates(Chain.SOLANA, "SOL")

        [error] = exc_info.value.context["errors"]
        assert error["code"] == "DECODE_FAILED"

    async def test_missing_market_price_uses_oracle(self, registry, provider):
        provider.set_response(Chain.SOLANA, SOL_RESERVE, "getAccountInfo", solend_reserve_bytes(market_price=0))
        adapter = SolendAdapter(registry, provider, StaticPriceOracle({"SOL": 150.0}))

        [rate] = await adapter.fetch_rates(Chain.SOLANA, "SOL")

        assert rate.total_supply_usd == pytest.approx(150_000.0)

    async def test_no_price_anywhere(self, adapter, provider):
        provider.set_response(Chain.SOLANA, SOL_RESERVE, "getAccountInfo", solend_reserve_bytes(market_price=0))

        [rate] = await adapter.fetch_rates(Chain.SOLANA, "SOL")

        assert rate.total_supply_usd == 0.0
        assert rate.price_available is False

    async def test_zero_oracle_price_is_no_price(self, registry, provider):
        provider.set_response(Chain.SOLANA, SOL_RESERVE, "getAccountInfo", solend_reserve_bytes(market_price=0))
        adapter = SolendAdapter(registry, provider, StaticPriceOracle({"SOL": 0.0}))

        [rate] = await adapter.fetch_rates(Chain.SOLANA, "SOL")

        assert rate.total_supply_usd == 0.0
        assert rate.price_available is False


class TestFetchUserPositions:
    async def test_obligation_positions(self, adapter, provider):
        obligation = solend_obligation_bytes(
            WALLET,
            deposits=[(SOL_RESERVE, 8 * 10**9, 1000 * WAD)],
            borrows=[(USDC_RESERVE, 300 * 10**6 * WAD, 300 * WAD)],
            deposited_value=1000 * WAD,
            borrowed_value=300 * WAD,
            unhealthy_borrow_value=800 * WAD,
        )
        provider.set_response(Chain.SOLANA, SOLEND_PROGRAM, "getProgramAccounts", [(pubkey(11), obligation)])
        provider.set_response(Chain.SOLANA, SOL_RESERVE, "getAccountInfo", solend_reserve_bytes())
        provider.set_response(Chain.SOLANA, USDC_RESERVE, "getAccountInfo", usdc_reserve_bytes())

        positions = await adapter.fetch_user_positions(Chain.SOLANA, WALLET)

        assert positions.collateral_usd == pytest.approx(1000.0)
        assert positions.liquidation_collateral_usd == pytest.approx(800.0)
        assert positions.debt_usd == pytest.approx(300.0)
        assert positions.health_factor == pytest.approx(800 / 300)

        [supply] = positions.supply_positions
        assert supply.asset.symbol == "SOL"
        # 8 cTokens at 1.25 SOL each
        assert supply.supplied_amount == str(10 * 10**9)
        assert supply.supplied_amount_usd == pytest.approx(1000.0)
        assert supply.current_apy == pytest.approx(
            reserve_rates(parse_reserve(solend_reserve_bytes()))["supply_apy"]
        )

        [borrow] = positions.borrow_positions
        assert borrow.asset.symbol == "USDC"
        assert borrow.borrowed_amount == str(300 * 10**6)
        assert borrow.borrowed_amount_usd == pytest.approx(300.0)
        assert borrow.accrued_interest == "0"
        assert borrow.health_factor == pytest.approx(800 / 300)

    async def test_queries_obligations_by_owner_and_market(self, adapter, provider):
        provider.set_response(Chain.SOLANA, SOLEND_PROGRAM, "getProgramAccounts", [])

        await adapter.fetch_user_positions(Chain.SOLANA, WALLET)

        [(chain, address, method, params)] = provider.call_history
        assert (chain, address, method) == (Chain.SOLANA, SOLEND_PROGRAM, "getProgramAccounts")
        assert params == (
            {"dataSize": 1300},
            {"memcmp": {"offset": 42, "bytes": WALLET}},
            {"memcmp": {"offset": 10, "bytes": SOLEND_MARKET}},
        )

    async def test_no_obligations(self, adapter, provider):
        provider.set_response(Chain.SOLANA, SOLEND_PROGRAM, "getProgramAccounts", [])

        positions = await adapter.fetch_user_positions(Chain.SOLANA, WALLET)

        assert positions.supply_positions == []
        assert positions.borrow_positions == []
        assert positions.health_factor is None

    async def test_unreadable_reserve_skips_its_positions(self, adapter, provider):
        unknown_reserve = pubkey(5)
        obligation = solend_obligation_bytes(
            WALLET,
            deposits=[(SOL_RESERVE, 8 * 10**9, 1000 * WAD)],
            borrows=[(unknown_reserve, 10 * WAD, 10 * WAD)],
            deposited_value=1000 * WAD,
            borrowed_value=10 * WAD,
            unhealthy_borrow_value=800 * WAD,
        )
        provider.set_response(Chain.SOLANA, SOLEND_PROGRAM, "getProgramAccounts", [(pubkey(11), obligation)])
        provider.set_response(Chain.SOLANA, SOL_RESERVE, "getAccountInfo", solend_reserve_bytes())

        positions = await adapter.fetch_user_positions(Chain.SOLANA, WALLET)

        assert [p.asset.symbol for p in positions.supply_positions] == ["SOL"]
        assert positions.borrow_positions == []
        # account-level totals still count the debt
        assert positions.debt_usd == pytest.approx(10.0)

    async def test_undecodable_obligation_is_skipped(self, adapter, provider):
        good = solend_obligation_bytes(
            WALLET,
            deposits=[(SOL_RESERVE, 8 * 10**9, 1000 * WAD)],
            deposited_value=1000 * WAD,
            unhealthy_borrow_value=800 * WAD,
        )
        unknown_version = solend_obligation_bytes(WALLET, version=2)
        provider.set_response(
            Chain.SOLANA,
            SOLEND_PROGRAM,
            "getProgramAccounts",
            [(pubkey(11), good), (pubkey(12), unknown_version)],
        )
        provider.set_response(Chain.SOLANA, SOL_RESERVE, "getAccountInfo", solend_reserve_bytes())

        positions = await adapter.fetch_user_positions(Chain.SOLANA, WALLET)

        [supply] = positions.supply_positions
        assert supply.asset.symbol == "SOL"
        assert supply.supplied_amount_usd == pytest.approx(1000.0)
        assert positions.collateral_usd == pytest.approx(1000.0)

    async def test_every_obligation_undecodable_raises(self, adapter, provider):
        provider.set_response(
            Chain.SOLANA,
            SOLEND_PROGRAM,
            "getProgramAccounts",
            [(pubkey(11), solend_obligation_bytes(WALLET, version=2)), (pubkey(12), b"")],
        )

        with pytest.raises(QueryFailedError) as exc_info:
            await adapter.fetch_user_positions(Chain.SOLANA, WALLET)

        errors = exc_info.value.context["errors"]
        assert [e["source"] for e in errors] == [pubkey(11), pubkey(12)]
        assert {e["code"] for e in errors} == {"DECODE_FAILED"}
