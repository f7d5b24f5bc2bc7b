from decimal import Decimal
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "Numberzz"
    debug: bool = False

    database_url: str = "sqlite+aiosqlite:///./numberzz.db"

    # "sql" shares state through the database; "memory" is a local-only mirror
    store_backend: Literal["sql", "memory"] = "sql"

    # Empty means no wallet provider is configured (read-only marketplace)
    wallet_rpc_url: str = ""

    bank_wallet_address: str = "0x53304048455325fbffecc34a62976cb3f4d7b519"
    admin_address: str = ""

    # Base mainnet (8453)
    chain_id: str = "0x2105"

    store_timeout_seconds: float = 10.0
    wallet_timeout_seconds: float = 120.0

    items_per_page: int = 20

    @property
    def effective_admin_address(self) -> str:
        """Admin defaults to the bank wallet when not set explicitly."""
        return (self.admin_address or self.bank_wallet_address).lower()


settings = Settings()


# =============================================================================
# MARKETPLACE CONSTANTS
# =============================================================================

# Share of the agreed price paid out to a seller when an offer is accepted
SELLER_PAYOUT_RATIO = Decimal("0.7")

# Attempts at appending an offer before giving up on a contended contract
OFFER_APPEND_ATTEMPTS = 3
