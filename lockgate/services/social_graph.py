"""
Social graph clients

Both graphs answer the same two questions:
- is_following(follower, followee) -> bool
- follower_count(address) -> int

LSP26 (LUKSO) is an on-chain registry with a direct edge lookup.
EFP (Ethereum Follow Protocol) only exposes paginated following lists, so
edge checks scan page by page and stop as soon as the edge is found.
"""
import logging
from typing import AsyncIterator, List, Optional

import httpx
from eth_abi import decode, encode
from eth_utils import to_checksum_address

from lockgate.services.chain_client import ChainLookupError, JsonRpcClient, selector

logger = logging.getLogger(__name__)

FOLLOWER_COUNT = selector("followerCount(address)")
IS_FOLLOWING = selector("isFollowing(address,address)")


class SocialGraphError(Exception):
    """Graph service failed or returned something unusable"""


class Lsp26FollowerRegistry:
    """LSP26 follower system contract on LUKSO"""

    def __init__(self, rpc: JsonRpcClient, registry_address: str):
        self.rpc = rpc
        self.registry_address = registry_address

    async def is_following(self, follower: str, followee: str) -> bool:
        data = IS_FOLLOWING + encode(
            ["address", "address"],
            [to_checksum_address(follower), to_checksum_address(followee)],
        )
        raw = await self.rpc.eth_call(self.registry_address, data)
        if len(raw) < 32:
            raise ChainLookupError("Short isFollowing result")
        (result,) = decode(["bool"], raw[:32])
        return bool(result)

    async def follower_count(self, address: str) -> int:
        data = FOLLOWER_COUNT + encode(["address"], [to_checksum_address(address)])
        raw = await self.rpc.eth_call(self.registry_address, data)
        if len(raw) < 32:
            raise ChainLookupError("Short followerCount result")
        (count,) = decode(["uint256"], raw[:32])
        return count


class EfpClient:
    """
    Ethereum Follow Protocol REST API

    Endpoints:
    - GET {base}/users/{address}/stats                    → {"followers_count": ...}
    - GET {base}/users/{address}/following?limit&offset   → {"following": [{"address": ...}, ...]}
    """

    def __init__(self, api_base: str, page_size: int = 1000, timeout: float = 10.0,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.api_base = api_base.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self.http_client = http_client

    async def _get_json(self, path: str, params: Optional[dict] = None) -> dict:
        url = f"{self.api_base}{path}"
        if self.http_client is not None:
            response = await self.http_client.get(url, params=params, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)

        if response.status_code != 200:
            raise SocialGraphError(f"EFP API error: {response.status_code}")
        data = response.json()
        if not isinstance(data, dict):
            raise SocialGraphError("EFP API returned a non-object body")
        return data

    async def follower_count(self, address: str) -> int:
        stats = await self._get_json(f"/users/{address}/stats")
        try:
            return int(stats.get("followers_count") or 0)
        except (TypeError, ValueError):
            raise SocialGraphError(f"Bad followers_count: {stats.get('followers_count')!r}")

    async def following_pages(self, address: str) -> AsyncIterator[List[str]]:
        """
        Yield the accounts `address` follows, one page at a time.

        A page shorter than page_size is the last one.
        """
        offset = 0
        while True:
            data = await self._get_json(
                f"/users/{address}/following",
                params={"limit": self.page_size, "offset": offset},
            )
            records = data.get("following") or []
            yield [
                item["address"].lower()
                for item in records
                if isinstance(item, dict) and isinstance(item.get("address"), str)
            ]
            if len(records) < self.page_size:
                return
            offset += self.page_size

    async def is_following(self, follower: str, followee: str) -> bool:
        target = followee.lower()
        scanned = 0
        pages = self.following_pages(follower)
        try:
            async for page in pages:
                if target in page:
                    logger.debug(f"Found {follower} -> {followee} after {scanned + len(page)} records")
                    return True
                scanned += len(page)
        finally:
            await pages.aclose()

        logger.debug(f"No {follower} -> {followee} edge in {scanned} records")
        return False
