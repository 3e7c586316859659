"""
Pytest configuration for lockgate tests.
"""

import pytest
from eth_account import Account

from lockgate.config import Settings
from lockgate.repositories import (
    InMemoryLockRepository,
    InMemoryPolicyRepository,
    InMemoryPostRepository,
    InMemoryVerificationRepository,
)
from lockgate.services.factory import build_services
from lockgate.services.nonce_store import InMemoryNonceStore

from fakes import EFP_API, ETHEREUM_RPC, LUKSO_RPC, FakeChain, FakeClock

pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    """Configure pytest with asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def settings():
    return Settings(
        lukso_rpc_urls=LUKSO_RPC,
        ethereum_rpc_urls=ETHEREUM_RPC,
        efp_api_base=EFP_API,
        efp_page_size=3,
        external_timeout_seconds=2.0,
        storage_backend="memory",
        nonce_backend="memory",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def account():
    """A fresh key pair acting as the user's wallet"""
    return Account.create()


@pytest.fixture
def services(settings, chain, clock):
    """Fully wired services on in-memory storage and the fake chain"""
    return build_services(
        settings,
        InMemoryNonceStore(clock=clock),
        InMemoryLockRepository(),
        InMemoryVerificationRepository(),
        InMemoryPolicyRepository(),
        InMemoryPostRepository(),
        http_client=chain.client(),
        clock=clock,
    )
