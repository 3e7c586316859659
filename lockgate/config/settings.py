from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
from typing import List, Optional
import os


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can come from:
    - docker-compose.yml environment section
    - .env file (for secrets like the JWT key)
    - System environment

    Variable names match docker-compose conventions:
    - POSTGRES_HOST, POSTGRES_PORT, etc. (for the lock/ledger database)
    - REDIS_URL (for the shared nonce store)
    - LUKSO_RPC_URLS, ETHEREUM_RPC_URLS (comma separated fallback lists)
    """

    # Environment
    environment: str = "development"

    # JWT - uses SECRET_KEY from .env or generates default
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    # PostgreSQL (from docker-compose)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "lockgate_user"
    postgres_password: str = "lockgate_pass"
    postgres_db: str = "lockgate"
    database_url: Optional[str] = None

    # Redis
    redis_url: str = "redis://localhost:6379"

    # Backends: "memory" keeps everything in-process (single worker only)
    storage_backend: str = "memory"
    nonce_backend: str = "memory"

    # Chains
    # Comma separated fallback lists, tried in order
    lukso_rpc_urls: str = "https://rpc.mainnet.lukso.network,https://42.rpc.thirdweb.com"
    ethereum_rpc_urls: str = "https://ethereum.publicnode.com,https://rpc.ankr.com/eth"
    lukso_chain_id: int = 42
    ethereum_chain_id: int = 1
    lsp26_registry_address: str = "0xf01103E5a9909Fc0DBe8166dA7085e0285daDDcA"
    ens_registry_address: str = "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e"

    # Ethereum Follow Protocol
    efp_api_base: str = "https://api.ethfollow.xyz/api/v1"
    efp_page_size: int = 1000

    # Verification protocol
    challenge_ttl_seconds: int = 900
    nonce_sweep_interval_seconds: int = 60
    external_timeout_seconds: float = 10.0
    post_verification_hours: float = 0.5
    board_verification_hours: float = 4.0
    max_verification_hours: float = 168.0

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra env vars

    @field_validator('jwt_secret_key', mode='before')
    @classmethod
    def get_jwt_secret(cls, v):
        """Use SECRET_KEY from env if JWT_SECRET_KEY not set"""
        if v and v != "dev-secret-key-change-in-production":
            return v
        # Fall back to SECRET_KEY (used in .env)
        return os.getenv('SECRET_KEY', v or 'dev-secret-key-change-in-production')

    @field_validator('database_url', mode='before')
    @classmethod
    def construct_database_url(cls, v, info):
        """Construct database URL from components if not explicitly set"""
        if v:
            return v

        data = info.data
        host = data.get('postgres_host', 'localhost')
        port = data.get('postgres_port', 5432)
        user = data.get('postgres_user', 'lockgate_user')
        password = data.get('postgres_password', 'lockgate_pass')
        db = data.get('postgres_db', 'lockgate')

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"

    @property
    def lukso_rpc_url_list(self) -> List[str]:
        return [url.strip() for url in self.lukso_rpc_urls.split(',') if url.strip()]

    @property
    def ethereum_rpc_url_list(self) -> List[str]:
        return [url.strip() for url in self.ethereum_rpc_urls.split(',') if url.strip()]

    def default_verification_hours(self, resource_kind: str) -> float:
        """Verification window used when a resource's gating does not set one"""
        if resource_kind == "board":
            return self.board_verification_hours
        return self.post_verification_hours


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
