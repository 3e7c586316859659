"""
Service wiring

Builds the verification services from settings and already-open storage.
main.py calls build_services() at startup; tests call it with in-memory
repositories and an httpx client on a mock transport.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

import httpx

from lockgate.config import Settings
from lockgate.models.domain import CategoryType
from lockgate.services.chain_client import JsonRpcClient, TokenReader
from lockgate.services.challenge_issuer import ChallengeIssuer
from lockgate.services.lock_service import LockService
from lockgate.services.name_resolver import EnsResolver
from lockgate.services.signatures import SignatureValidator
from lockgate.services.social_graph import EfpClient, Lsp26FollowerRegistry
from lockgate.services.verification_service import VerificationService
from lockgate.services.verifiers import NetworkContext
from lockgate.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class Services:
    nonce_store: object
    lock_service: LockService
    verification: VerificationService
    http_client: httpx.AsyncClient

    async def close(self) -> None:
        await self.nonce_store.close()
        await self.http_client.aclose()


def build_networks(settings: Settings, http_client: httpx.AsyncClient) -> Dict[CategoryType, NetworkContext]:
    timeout = settings.external_timeout_seconds

    lukso_rpc = JsonRpcClient(settings.lukso_rpc_url_list, "lukso", timeout=timeout, http_client=http_client)
    ethereum_rpc = JsonRpcClient(settings.ethereum_rpc_url_list, "ethereum", timeout=timeout, http_client=http_client)

    return {
        CategoryType.UNIVERSAL_PROFILE: NetworkContext(
            category_type=CategoryType.UNIVERSAL_PROFILE,
            rpc=lukso_rpc,
            tokens=TokenReader(lukso_rpc),
            social_graph=Lsp26FollowerRegistry(lukso_rpc, settings.lsp26_registry_address),
            names=None,
            bytes32_item_ids=True,
        ),
        CategoryType.ETHEREUM_PROFILE: NetworkContext(
            category_type=CategoryType.ETHEREUM_PROFILE,
            rpc=ethereum_rpc,
            tokens=TokenReader(ethereum_rpc),
            social_graph=EfpClient(
                settings.efp_api_base,
                page_size=settings.efp_page_size,
                timeout=timeout,
                http_client=http_client,
            ),
            names=EnsResolver(ethereum_rpc, settings.ens_registry_address),
            bytes32_item_ids=False,
        ),
    }


def build_services(
    settings: Settings,
    nonce_store,
    lock_repo,
    ledger,
    policy_repo,
    post_repo=None,
    http_client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Services:
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.external_timeout_seconds)

    networks = build_networks(settings, http_client)
    issuer = ChallengeIssuer(
        nonce_store,
        chain_ids={
            CategoryType.UNIVERSAL_PROFILE: settings.lukso_chain_id,
            CategoryType.ETHEREUM_PROFILE: settings.ethereum_chain_id,
        },
        ttl_seconds=settings.challenge_ttl_seconds,
        clock=clock,
    )
    lock_service = LockService(
        lock_repo,
        policy_repo,
        max_verification_hours=settings.max_verification_hours,
        post_repo=post_repo,
    )
    signatures = SignatureValidator({ct: ctx.tokens for ct, ctx in networks.items()})

    verification = VerificationService(
        issuer=issuer,
        nonce_store=nonce_store,
        signatures=signatures,
        networks=networks,
        lock_repo=lock_repo,
        ledger=ledger,
        policy_repo=policy_repo,
        lock_service=lock_service,
        default_hours=settings.default_verification_hours,
        max_verification_hours=settings.max_verification_hours,
        external_timeout=settings.external_timeout_seconds,
        clock=clock,
    )
    logger.info(f"Verification services ready (storage={settings.storage_backend}, nonces={settings.nonce_backend})")
    return Services(
        nonce_store=nonce_store,
        lock_service=lock_service,
        verification=verification,
        http_client=http_client,
    )
