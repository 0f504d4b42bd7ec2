import pytest

from fakes import (
    AAVE_DATA_PROVIDER,
    AAVE_ORACLE,
    AAVE_POOL,
    SOL_MINT,
    SOL_RESERVE,
    SOLEND_MARKET,
    SOLEND_PROGRAM,
    USDC,
    USDC_MINT,
    USDC_RESERVE,
    WETH,
    FakeChainDataProvider,
)
from services.api.src.lending_api.domain.models import Chain, Protocol
from services.api.src.lending_api.registry.protocols import (
    AssetConfig,
    ProtocolAddresses,
    ProtocolDeployment,
    ProtocolRegistry,
)


@pytest.fixture
def registry():
    """Aave on Ethereum (ETH, USDC) and Solend on Solana (SOL, USDC)."""
    return ProtocolRegistry(
        deployments=[
            ProtocolDeployment(
                protocol=Protocol.AAVE,
                chain=Chain.ETHEREUM,
                addresses=ProtocolAddresses(
                    pool=AAVE_POOL, data_provider=AAVE_DATA_PROVIDER, oracle=AAVE_ORACLE
                ),
                assets=[
                    AssetConfig(symbol="ETH", name="Wrapped Ether", address=WETH, decimals=18),
                    AssetConfig(symbol="USDC", name="USD Coin", address=USDC, decimals=6),
                ],
            ),
            ProtocolDeployment(
                protocol=Protocol.SOLEND,
                chain=Chain.SOLANA,
                addresses=ProtocolAddresses(program_id=SOLEND_PROGRAM, lending_market=SOLEND_MARKET),
                assets=[
                    AssetConfig(symbol="SOL", name="Wrapped SOL", address=SOL_MINT, decimals=9),
                    AssetConfig(symbol="USDC", name="USD Coin", address=USDC_MINT, decimals=6),
                ],
                reserve_accounts={"SOL": SOL_RESERVE, "USDC": USDC_RESERVE},
            ),
        ]
    )


@pytest.fixture
def provider():
    return FakeChainDataProvider()
