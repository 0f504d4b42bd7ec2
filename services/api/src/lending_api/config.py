import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> str | None:
    """Find .env file, preferring .env.local for local development."""
    # Check for .env.local first (local overrides)
    for env_file in [".env.local", ".env"]:
        # Check in current directory and project root
        for base in [".", os.environ.get("REPO_ROOT", "")]:
            if base:
                path = Path(base) / env_file
                if path.exists():
                    return str(path)
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # RPC endpoints; an empty URL means the chain is not configured
    ethereum_rpc_url: str = ""
    solana_rpc_url: str = ""
    polygon_rpc_url: str = ""
    arbitrum_rpc_url: str = ""
    rpc_timeout_seconds: float = 15.0

    # Contract / program address overrides (mainnet defaults)
    aave_eth_pool: str = "0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2"
    aave_eth_data_provider: str = "0x7B4EB56E7CD4b454BA8ff71E4518426369a138a3"
    aave_eth_oracle: str = "0x54586bE62E3c3580375aE3723C145253060Ca0C2"
    solend_program_id: str = "So1endDq2YkqhipRh3WViPa8hdiSpxWy6z3Z6tMCpAo"
    solend_main_pool: str = "4UpD2fh7xH3VP9QQaXtsS1YY3bxzWhtfpks7FatyKvdY"

    # Symbol -> USD fallback prices, e.g. PRICE_OVERRIDES='{"USDC": 1.0}'.
    # Empty by default: no price is ever assumed.
    price_overrides: dict[str, float] = {}

    frontend_url: str = "http://localhost:3000"
    cors_origin: str | None = None
    environment: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def get_settings() -> Settings:
    return Settings()
