"""Static registry of supported (chain, protocol) deployments and their assets."""

from pydantic import BaseModel, ConfigDict, Field

from services.api.src.lending_api.config import Settings, get_settings
from services.api.src.lending_api.domain.decoder import is_evm_address, is_solana_address
from services.api.src.lending_api.domain.models import Asset, Chain, Protocol


class AssetConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    name: str
    address: str = Field(..., description="ERC-20 address or SPL mint")
    decimals: int
    coingecko_id: str | None = None


class ProtocolAddresses(BaseModel):
    model_config = ConfigDict(frozen=True)

    # EVM deployments
    pool: str | None = None
    data_provider: str | None = None
    oracle: str | None = None
    # Solana deployments
    program_id: str | None = None
    lending_market: str | None = None


class ProtocolDeployment(BaseModel):
    model_config = ConfigDict(frozen=True)

    protocol: Protocol
    chain: Chain
    addresses: ProtocolAddresses
    assets: list[AssetConfig]
    # Asset symbol -> reserve account (Solana protocols only)
    reserve_accounts: dict[str, str] = {}


class ProtocolRegistry(BaseModel):
    """Lookups over the configured deployments. Read-only after startup."""

    model_config = ConfigDict(frozen=True)

    deployments: list[ProtocolDeployment]

    def get_deployment(self, chain: Chain, protocol: Protocol) -> ProtocolDeployment | None:
        for deployment in self.deployments:
            if deployment.chain == chain and deployment.protocol == protocol:
                return deployment
        return None

    def is_supported(self, chain: Chain, protocol: Protocol) -> bool:
        return self.get_deployment(chain, protocol) is not None

    def assets_for(self, chain: Chain, protocol: Protocol) -> list[Asset]:
        deployment = self.get_deployment(chain, protocol)
        if deployment is None:
            return []
        return [
            Asset(
                symbol=a.symbol,
                name=a.name,
                decimals=a.decimals,
                address=a.address,
                chain=chain,
            )
            for a in deployment.assets
        ]

    def addresses_for(self, chain: Chain, protocol: Protocol) -> ProtocolAddresses | None:
        deployment = self.get_deployment(chain, protocol)
        return deployment.addresses if deployment else None

    def find_asset(self, chain: Chain, protocol: Protocol, symbol: str) -> Asset | None:
        """Case-insensitive symbol lookup."""
        wanted = symbol.upper()
        for asset in self.assets_for(chain, protocol):
            if asset.symbol.upper() == wanted:
                return asset
        return None

    def find_asset_by_address(self, chain: Chain, protocol: Protocol, address: str) -> Asset | None:
        for asset in self.assets_for(chain, protocol):
            if chain.is_evm and asset.address.lower() == address.lower():
                return asset
            if not chain.is_evm and asset.address == address:
                return asset
        return None

    def reserve_account_for(self, chain: Chain, protocol: Protocol, symbol: str) -> str | None:
        deployment = self.get_deployment(chain, protocol)
        if deployment is None:
            return None
        return deployment.reserve_accounts.get(symbol.upper())

    def supported_pairs(self) -> list[tuple[Chain, Protocol]]:
        return [(d.chain, d.protocol) for d in self.deployments]

    def chains(self) -> list[Chain]:
        return [c for c in Chain if any(d.chain == c for d in self.deployments)]

    def protocols(self) -> list[Protocol]:
        return [p for p in Protocol if any(d.protocol == p for d in self.deployments)]


def address_matches_chain(address: str, chain: Chain) -> bool:
    """True if the address has the format used by the chain's family."""
    if chain.is_evm:
        return is_evm_address(address)
    return is_solana_address(address)


def get_default_registry(settings: Settings | None = None) -> ProtocolRegistry:
    """Mainnet deployments: Aave V3 on Ethereum and Solend main pool on Solana."""
    settings = settings or get_settings()
    return ProtocolRegistry(
        deployments=[
            ProtocolDeployment(
                protocol=Protocol.AAVE,
                chain=Chain.ETHEREUM,
                addresses=ProtocolAddresses(
                    pool=settings.aave_eth_pool,
                    data_provider=settings.aave_eth_data_provider,
                    oracle=settings.aave_eth_oracle,
                ),
                assets=[
                    AssetConfig(
                        symbol="ETH",
                        name="Wrapped Ether",
                        address="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
                        decimals=18,
                        coingecko_id="ethereum",
                    ),
                    AssetConfig(
                        symbol="USDC",
                        name="USD Coin",
                        address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
                        decimals=6,
                        coingecko_id="usd-coin",
                    ),
                    AssetConfig(
                        symbol="USDT",
                        name="Tether USD",
                        address="0xdAC17F958D2ee523a2206206994597C13D831ec7",
                        decimals=6,
                        coingecko_id="tether",
                    ),
                    AssetConfig(
                        symbol="DAI",
                        name="Dai Stablecoin",
                        address="0x6B175474E89094C44Da98b954EedeAC495271d0F",
                        decimals=18,
                        coingecko_id="dai",
                    ),
                    AssetConfig(
                        symbol="WBTC",
                        name="Wrapped BTC",
                        address="0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599",
                        decimals=8,
                        coingecko_id="wrapped-bitcoin",
                    ),
                ],
            ),
            ProtocolDeployment(
                protocol=Protocol.SOLEND,
                chain=Chain.SOLANA,
                addresses=ProtocolAddresses(
                    program_id=settings.solend_program_id,
                    lending_market=settings.solend_main_pool,
                ),
                assets=[
                    AssetConfig(
                        symbol="SOL",
                        name="Wrapped SOL",
                        address="So11111111111111111111111111111111111111112",
                        decimals=9,
                        coingecko_id="solana",
                    ),
                    AssetConfig(
                        symbol="USDC",
                        name="USD Coin",
                        address="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
                        decimals=6,
                        coingecko_id="usd-coin",
                    ),
                    AssetConfig(
                        symbol="USDT",
                        name="Tether USD",
                        address="Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
                        decimals=6,
                        coingecko_id="tether",
                    ),
                ],
                reserve_accounts={
                    "SOL": "8PbodeaosQP19SjYFx855UMqWxH2HynZLdBXmsrbac36",
                    "USDC": "BgxfHJDzm44T7XG68MYKx7YisTjZu73tVovyZSjJMpmw",
                    "USDT": "8K9WC8xoh2rtQNY7iEGXtPvfbDCi563SdWhCAhuMP2xE",
                },
            ),
        ]
    )
