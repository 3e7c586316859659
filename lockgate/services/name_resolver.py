"""
ENS name resolution

Reverse-resolves an address to its primary ENS name and confirms the name
resolves forward to the same address, so a reverse record alone cannot be
used to claim someone else's name.
"""
import logging
from typing import Optional

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from lockgate.services.chain_client import ZERO_ADDRESS, JsonRpcClient, selector

logger = logging.getLogger(__name__)

RESOLVER = selector("resolver(bytes32)")
NAME = selector("name(bytes32)")
ADDR = selector("addr(bytes32)")


def namehash(name: str) -> bytes:
    node = b"\x00" * 32
    if name:
        for label in reversed(name.split(".")):
            node = keccak(node + keccak(text=label))
    return node


def matches_domain_pattern(name: str, pattern: str) -> bool:
    """
    Wildcard match for ENS names, case-insensitive.

    '*'        any name
    '*.suffix' any name ending in .suffix (at least one label before it)
    other      exact match
    """
    name = name.lower()
    pattern = pattern.strip().lower()
    if pattern == "*":
        return True
    if pattern.startswith("*."):
        suffix = pattern[1:]
        return name.endswith(suffix) and len(name) > len(suffix)
    return name == pattern


class EnsResolver:
    """ENS lookups through the registry contract"""

    def __init__(self, rpc: JsonRpcClient, registry_address: str):
        self.rpc = rpc
        self.registry_address = registry_address

    async def _resolver_for(self, node: bytes) -> Optional[str]:
        raw = await self.rpc.eth_call(self.registry_address, RESOLVER + node)
        resolver = "0x" + raw[-20:].hex() if len(raw) >= 20 else ZERO_ADDRESS
        return None if resolver == ZERO_ADDRESS else resolver

    async def reverse_name(self, address: str) -> Optional[str]:
        """Primary name of an address, or None"""
        reverse_node = namehash(f"{address.lower()[2:]}.addr.reverse")
        resolver = await self._resolver_for(reverse_node)
        if resolver is None:
            return None

        raw = await self.rpc.eth_call(resolver, NAME + reverse_node)
        try:
            (name,) = decode(["string"], raw)
        except DecodingError:
            logger.debug(f"Undecodable reverse record for {address}")
            return None
        return name or None

    async def resolve_address(self, name: str) -> Optional[str]:
        node = namehash(name)
        resolver = await self._resolver_for(node)
        if resolver is None:
            return None
        raw = await self.rpc.eth_call(resolver, ADDR + node)
        if len(raw) < 20:
            return None
        return "0x" + raw[-20:].hex()

    async def verified_name(self, address: str) -> Optional[str]:
        """Primary name only if it also resolves forward to `address`"""
        name = await self.reverse_name(address)
        if not name:
            return None

        forward = await self.resolve_address(name)
        if forward is None or forward.lower() != address.lower():
            logger.info(f"ENS name {name} does not resolve back to {address}")
            return None
        return name
