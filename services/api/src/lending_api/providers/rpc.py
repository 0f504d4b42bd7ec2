"""JSON-RPC chain data provider over a shared httpx.AsyncClient."""

import base64
import binascii
import logging
from typing import Any, Sequence

import httpx

from services.api.src.lending_api.domain.decoder import encode_address_arg
from services.api.src.lending_api.domain.errors import QueryFailedError
from services.api.src.lending_api.domain.models import Chain

logger = logging.getLogger(__name__)

# View-function selectors (first 4 bytes of keccak256 of the signature)
EVM_SELECTORS = {
    "getReserveData": "0x35ea6a75",  # getReserveData(address)
    "getAssetPrice": "0xb3596f07",  # getAssetPrice(address)
    "getUserAccountData": "0xbf92857c",  # getUserAccountData(address)
    "getUserReserveData": "0x28dd2d01",  # getUserReserveData(address,address)
}

SOLANA_METHODS = ("getAccountInfo", "getProgramAccounts")


def encode_call_data(method: str, params: Sequence[str]) -> str:
    """Selector followed by each address argument as one 32-byte word."""
    selector = EVM_SELECTORS.get(method)
    if selector is None:
        raise QueryFailedError(f"Unknown contract method: {method}")
    return selector + "".join(encode_address_arg(p) for p in params)


def _decode_account_data(account: dict[str, Any], address: str) -> bytes:
    data = account.get("data")
    if not isinstance(data, list) or len(data) != 2 or data[1] != "base64":
        raise QueryFailedError(
            f"Unexpected account data encoding for {address}",
            context={"account": address},
        )
    try:
        return base64.b64decode(data[0])
    except (binascii.Error, ValueError) as e:
        raise QueryFailedError(
            f"Invalid base64 account data for {address}: {e}",
            context={"account": address},
        ) from e


class JsonRpcChainDataProvider:
    """ChainDataProvider speaking raw JSON-RPC to one endpoint per chain."""

    def __init__(self, rpc_urls: dict[Chain, str], client: httpx.AsyncClient):
        self.rpc_urls = {chain: url for chain, url in rpc_urls.items() if url}
        self.client = client
        self._request_id = 0

    def is_configured(self, chain: Chain) -> bool:
        return chain in self.rpc_urls

    async def call(
        self,
        chain: Chain,
        address: str,
        method: str,
        params: Sequence[Any] = (),
    ) -> Any:
        if chain.is_evm:
            return await self._eth_call(chain, address, method, params)
        if method == "getAccountInfo":
            return await self._get_account_info(chain, address)
        if method == "getProgramAccounts":
            return await self._get_program_accounts(chain, address, params)
        raise QueryFailedError(
            f"Unsupported {chain.value} method: {method}",
            context={"chain": chain.value, "method": method},
        )

    async def _rpc(self, chain: Chain, method: str, params: list[Any]) -> Any:
        url = self.rpc_urls.get(chain)
        if not url:
            raise QueryFailedError(
                f"No RPC endpoint configured for {chain.value}",
                context={"chain": chain.value},
            )

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        logger.debug("rpc %s %s %s", chain.value, method, params)

        try:
            response = await self.client.post(url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise QueryFailedError(
                f"{chain.value} RPC {method} failed: {e}",
                context={"chain": chain.value, "method": method},
            ) from e
        except ValueError as e:
            raise QueryFailedError(
                f"{chain.value} RPC {method} returned invalid JSON",
                context={"chain": chain.value, "method": method},
            ) from e

        if "error" in body:
            error = body["error"] or {}
            raise QueryFailedError(
                f"{chain.value} RPC {method} error: {error.get('message', error)}",
                context={"chain": chain.value, "method": method, "rpc_error": error},
            )
        return body.get("result")

    async def _eth_call(
        self, chain: Chain, contract: str, method: str, params: Sequence[str]
    ) -> str:
        data = encode_call_data(method, params)
        result = await self._rpc(chain, "eth_call", [{"to": contract, "data": data}, "latest"])
        if not isinstance(result, str) or len(result) <= 2:
            raise QueryFailedError(
                f"Empty result from {method} on {contract}",
                context={"chain": chain.value, "contract": contract, "method": method},
            )
        return result

    async def _get_account_info(self, chain: Chain, account: str) -> bytes:
        result = await self._rpc(chain, "getAccountInfo", [account, {"encoding": "base64"}])
        value = (result or {}).get("value")
        if value is None:
            raise QueryFailedError(
                f"Account not found: {account}",
                context={"chain": chain.value, "account": account},
            )
        return _decode_account_data(value, account)

    async def _get_program_accounts(
        self, chain: Chain, program_id: str, filters: Sequence[dict[str, Any]]
    ) -> list[tuple[str, bytes]]:
        result = await self._rpc(
            chain,
            "getProgramAccounts",
            [program_id, {"encoding": "base64", "filters": list(filters)}],
        )
        if not isinstance(result, list):
            raise QueryFailedError(
                f"Unexpected getProgramAccounts result for {program_id}",
                context={"chain": chain.value, "program": program_id},
            )
        return [
            (item["pubkey"], _decode_account_data(item["account"], item["pubkey"]))
            for item in result
        ]
