import math

import pytest

from fakes import SOL_MINT, FakeAdapter
from services.api.src.lending_api.domain.errors import QueryFailedError
from services.api.src.lending_api.domain.models import (
    Asset,
    Chain,
    Protocol,
    ProtocolPositions,
    UserBorrowPosition,
    UserSupplyPosition,
)
from services.api.src.lending_api.registry.protocols import (
    AssetConfig,
    ProtocolAddresses,
    ProtocolDeployment,
    ProtocolRegistry,
)
from services.api.src.lending_api.services.positions import PositionEngine, net_apy

EVM_WALLET = "0x" + "b" * 40
SOL_WALLET = SOL_MINT


def supply(chain, usd, apy, protocol=Protocol.AAVE):
    asset = Asset(symbol="USDC", name="USD Coin", decimals=6, address="0xusdc", chain=chain)
    return UserSupplyPosition(
        asset=asset,
        chain=chain,
        protocol=protocol,
        supplied_amount=str(int(usd * 10**6)),
        supplied_amount_usd=usd,
        current_apy=apy,
    )


def borrow(chain, usd, apy, protocol=Protocol.AAVE):
    asset = Asset(symbol="ETH", name="Ether", decimals=18, address="0xweth", chain=chain)
    return UserBorrowPosition(
        asset=asset,
        chain=chain,
        protocol=protocol,
        borrowed_amount="1",
        borrowed_amount_usd=usd,
        current_apy=apy,
    )


def protocol_positions(chain, protocol, supplies=(), borrows=(), liquidation_collateral=0.0, health_factor=None):
    return ProtocolPositions(
        chain=chain,
        protocol=protocol,
        supply_positions=list(supplies),
        borrow_positions=list(borrows),
        collateral_usd=sum(s.supplied_amount_usd for s in supplies),
        liquidation_collateral_usd=liquidation_collateral,
        debt_usd=sum(b.borrowed_amount_usd for b in borrows),
        health_factor=health_factor,
    )


@pytest.fixture
def two_chain_registry():
    """Aave on Ethereum and Arbitrum."""
    asset = AssetConfig(symbol="USDC", name="USD Coin", address="0x" + "c" * 40, decimals=6)
    addresses = ProtocolAddresses(pool="0x" + "1" * 40, data_provider="0x" + "2" * 40)
    return ProtocolRegistry(
        deployments=[
            ProtocolDeployment(protocol=Protocol.AAVE, chain=chain, addresses=addresses, assets=[asset])
            for chain in (Chain.ETHEREUM, Chain.ARBITRUM)
        ]
    )


class TestNetApy:
    def test_weighted_by_supply(self):
        positions = [
            protocol_positions(
                Chain.ETHEREUM,
                Protocol.AAVE,
                supplies=[supply(Chain.ETHEREUM, 1000.0, 4.0)],
                borrows=[borrow(Chain.ETHEREUM, 500.0, 6.0)],
            )
        ]
        # (1000 * 4 - 500 * 6) / 1000
        assert net_apy(positions) == pytest.approx(1.0)

    def test_no_supply_is_zero(self):
        positions = [
            protocol_positions(Chain.ETHEREUM, Protocol.AAVE, borrows=[borrow(Chain.ETHEREUM, 500.0, 6.0)])
        ]
        assert net_apy(positions) == 0.0


class TestGetUserPositions:
    async def test_evm_wallet_only_queries_evm_chains(self, registry):
        aave = FakeAdapter(Protocol.AAVE, positions={Chain.ETHEREUM: protocol_positions(Chain.ETHEREUM, Protocol.AAVE)})
        solend = FakeAdapter(Protocol.SOLEND)
        engine = PositionEngine(registry, {Protocol.AAVE: aave, Protocol.SOLEND: solend})

        await engine.get_user_positions(EVM_WALLET)

        assert aave.call_history == [("fetch_user_positions", Chain.ETHEREUM, EVM_WALLET)]
        assert solend.call_history == []

    async def test_solana_wallet_only_queries_solana(self, registry):
        aave = FakeAdapter(Protocol.AAVE)
        solend = FakeAdapter(Protocol.SOLEND, positions={Chain.SOLANA: protocol_positions(Chain.SOLANA, Protocol.SOLEND)})
        engine = PositionEngine(registry, {Protocol.AAVE: aave, Protocol.SOLEND: solend})

        await engine.get_user_positions(SOL_WALLET)

        assert aave.call_history == []
        assert solend.call_history == [("fetch_user_positions", Chain.SOLANA, SOL_WALLET)]

    async def test_combines_health_factor_across_chains(self, two_chain_registry):
        # Ethereum alone: 825 / 300 = 2.75. Arbitrum alone: 400 / 500 = 0.8.
        aave = FakeAdapter(
            Protocol.AAVE,
            positions={
                Chain.ETHEREUM: protocol_positions(
                    Chain.ETHEREUM,
                    Protocol.AAVE,
                    supplies=[supply(Chain.ETHEREUM, 1000.0, 3.0)],
                    borrows=[borrow(Chain.ETHEREUM, 300.0, 5.0)],
                    liquidation_collateral=825.0,
                    health_factor=2.75,
                ),
                Chain.ARBITRUM: protocol_positions(
                    Chain.ARBITRUM,
                    Protocol.AAVE,
                    supplies=[supply(Chain.ARBITRUM, 500.0, 3.0)],
                    borrows=[borrow(Chain.ARBITRUM, 500.0, 5.0)],
                    liquidation_collateral=400.0,
                    health_factor=0.8,
                ),
            },
        )
        engine = PositionEngine(two_chain_registry, {Protocol.AAVE: aave})

        result = await engine.get_user_positions(EVM_WALLET)

        assert result.health_factor == pytest.approx(1225.0 / 800.0)
        assert result.total_supplied_usd == 1500.0
        assert result.total_borrowed_usd == 800.0
        assert len(result.supply_positions) == 2
        assert len(result.borrow_positions) == 2
        assert result.net_apy == pytest.approx((1500 * 3.0 - 800 * 5.0) / 1500)

    async def test_failed_source_is_dropped(self, two_chain_registry):
        aave = FakeAdapter(
            Protocol.AAVE,
            positions={
                Chain.ETHEREUM: protocol_positions(
                    Chain.ETHEREUM,
                    Protocol.AAVE,
                    supplies=[supply(Chain.ETHEREUM, 1000.0, 3.0)],
                    liquidation_collateral=825.0,
                ),
                Chain.ARBITRUM: QueryFailedError("arbitrum rpc down"),
            },
        )
        engine = PositionEngine(two_chain_registry, {Protocol.AAVE: aave})

        result = await engine.get_user_positions(EVM_WALLET)

        assert result.total_supplied_usd == 1000.0
        assert result.health_factor == math.inf

    async def test_nothing_collected_has_no_health_factor(self, registry):
        aave = FakeAdapter(Protocol.AAVE, positions={Chain.ETHEREUM: QueryFailedError("down")})
        engine = PositionEngine(registry, {Protocol.AAVE: aave})

        result = await engine.get_user_positions(EVM_WALLET)

        assert result.health_factor is None
        assert result.supply_positions == []
        assert result.net_apy == 0.0


class TestGetUserHealthFactor:
    async def test_risk_and_borrow_capacity(self, registry):
        aave = FakeAdapter(
            Protocol.AAVE,
            positions={
                Chain.ETHEREUM: protocol_positions(
                    Chain.ETHEREUM,
                    Protocol.AAVE,
                    supplies=[supply(Chain.ETHEREUM, 1000.0, 3.0)],
                    borrows=[borrow(Chain.ETHEREUM, 500.0, 5.0)],
                    liquidation_collateral=825.0,
                )
            },
        )
        engine = PositionEngine(registry, {Protocol.AAVE: aave})

        health = await engine.get_user_health_factor(EVM_WALLET)

        assert health.health_factor == pytest.approx(1.65)
        assert health.risk_level == "moderate"
        assert health.collateral_usd == 1000.0
        assert health.debt_usd == 500.0
        assert health.available_to_borrow_usd == pytest.approx(300.0)
        assert health.liquidation_threshold == 1.0

    async def test_no_positions_is_safe_and_infinite(self, registry):
        engine = PositionEngine(registry, {})

        health = await engine.get_user_health_factor(EVM_WALLET)

        assert health.health_factor == math.inf
        assert health.risk_level == "safe"
        assert health.available_to_borrow_usd == 0.0
