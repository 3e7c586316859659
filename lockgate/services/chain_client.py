"""
JSON-RPC chain client

Raw eth_call / eth_getBalance over httpx with fallback endpoints. Calldata is
built with eth-abi; results are decoded to Python ints/addresses so all
comparisons downstream are exact integer math.
"""
import itertools
import logging
from typing import List, Optional, Sequence

import httpx
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


# Function selectors used by the verifiers
BALANCE_OF = selector("balanceOf(address)")
BALANCE_OF_MULTI = selector("balanceOf(address,uint256)")   # ERC-1155
OWNER_OF = selector("ownerOf(uint256)")                     # ERC-721
TOKEN_OWNER_OF = selector("tokenOwnerOf(bytes32)")          # LSP8
IS_VALID_SIGNATURE = selector("isValidSignature(bytes32,bytes)")  # ERC-1271
ERC1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")


class ChainLookupError(Exception):
    """Transport or node failure; the answer is unknown"""


class ContractReverted(ChainLookupError):
    """The node answered and the call reverted (e.g. token id does not exist)"""


def parse_item_id(item_id: str) -> int:
    """Decimal or 0x-prefixed hex token id to int"""
    text = item_id.strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text, 10)


class JsonRpcClient:
    """
    JSON-RPC client with fallback endpoints

    Endpoints are tried in order starting from the last one that worked.
    A revert is a definitive answer and is not retried on other endpoints.
    """

    def __init__(self, rpc_urls: Sequence[str], name: str, timeout: float = 10.0,
                 http_client: Optional[httpx.AsyncClient] = None):
        if not rpc_urls:
            raise ValueError(f"No RPC endpoints configured for {name}")
        self.rpc_urls: List[str] = list(rpc_urls)
        self.name = name
        self.timeout = timeout
        self.http_client = http_client
        self._current = 0
        self._ids = itertools.count(1)

    async def call(self, method: str, params: list) -> object:
        last_error: Optional[Exception] = None

        for attempt in range(len(self.rpc_urls)):
            index = (self._current + attempt) % len(self.rpc_urls)
            rpc_url = self.rpc_urls[index]
            try:
                result = await self._post(rpc_url, method, params)
                self._current = index
                return result
            except ContractReverted:
                raise
            except (httpx.HTTPError, ChainLookupError, ValueError) as e:
                logger.warning(f"[{self.name}] {method} failed on {rpc_url}: {e}")
                last_error = e

        raise ChainLookupError(f"All {self.name} RPC endpoints failed for {method}") from last_error

    async def _post(self, rpc_url: str, method: str, params: list) -> object:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        if self.http_client is not None:
            response = await self.http_client.post(rpc_url, json=body, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(rpc_url, json=body)

        response.raise_for_status()
        data = response.json()

        error = data.get("error")
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if "revert" in message.lower():
                raise ContractReverted(message)
            raise ChainLookupError(f"RPC error: {message}")
        return data.get("result")

    # =========================================================================
    # Typed helpers
    # =========================================================================

    async def eth_call(self, to: str, data: bytes) -> bytes:
        result = await self.call("eth_call", [{"to": to, "data": "0x" + data.hex()}, "latest"])
        return _hex_bytes("eth_call", result)

    async def get_balance(self, address: str) -> int:
        result = await self.call("eth_getBalance", [address, "latest"])
        if not isinstance(result, str):
            raise ChainLookupError(f"Unexpected eth_getBalance result: {result!r}")
        try:
            return int(result, 16)
        except ValueError:
            raise ChainLookupError(f"Unexpected eth_getBalance result: {result!r}")

    async def get_code(self, address: str) -> bytes:
        result = await self.call("eth_getCode", [address, "latest"])
        return _hex_bytes("eth_getCode", result)


def _hex_bytes(method: str, result: object) -> bytes:
    """0x-prefixed hex string from a node to bytes"""
    if not isinstance(result, str):
        raise ChainLookupError(f"Unexpected {method} result: {result!r}")
    text = result[2:] if result.startswith("0x") else result
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise ChainLookupError(f"Unexpected {method} result: {result!r}")


class TokenReader:
    """Token contract reads shared by LSP7/LSP8 and ERC-20/721/1155"""

    def __init__(self, rpc: JsonRpcClient):
        self.rpc = rpc

    async def balance_of(self, asset_id: str, owner: str) -> int:
        data = BALANCE_OF + encode(["address"], [to_checksum_address(owner)])
        raw = await self.rpc.eth_call(asset_id, data)
        return self._decode_uint(raw)

    async def balance_of_token(self, asset_id: str, owner: str, token_id: str) -> int:
        data = BALANCE_OF_MULTI + encode(
            ["address", "uint256"], [to_checksum_address(owner), parse_item_id(token_id)]
        )
        raw = await self.rpc.eth_call(asset_id, data)
        return self._decode_uint(raw)

    async def owner_of_item(self, asset_id: str, item_id: str, bytes32_ids: bool) -> str:
        """
        Current owner of one item.

        LSP8 collections key items by bytes32 (tokenOwnerOf), ERC-721 by
        uint256 (ownerOf). Both encode a numeric id to the same 32 bytes.
        """
        item = parse_item_id(item_id)
        if bytes32_ids:
            data = TOKEN_OWNER_OF + encode(["bytes32"], [item.to_bytes(32, "big")])
        else:
            data = OWNER_OF + encode(["uint256"], [item])
        raw = await self.rpc.eth_call(asset_id, data)
        if len(raw) < 32:
            raise ChainLookupError(f"Short ownerOf result from {asset_id}")
        (owner,) = decode(["address"], raw[:32])
        return owner.lower()

    async def is_valid_signature(self, account: str, message_hash: bytes, signature: bytes) -> bool:
        """ERC-1271 check against a contract account"""
        data = IS_VALID_SIGNATURE + encode(["bytes32", "bytes"], [message_hash, signature])
        raw = await self.rpc.eth_call(account, data)
        return raw[:4] == ERC1271_MAGIC_VALUE

    @staticmethod
    def _decode_uint(raw: bytes) -> int:
        if len(raw) < 32:
            raise ChainLookupError("Short uint256 result")
        (value,) = decode(["uint256"], raw[:32])
        return value
