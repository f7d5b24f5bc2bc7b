from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from numberzz.config import Settings
from numberzz.db.database import drop_db, init_db
from numberzz.models import failure as failure_module
from numberzz.models.failure import CollaboratorUnavailable, UserCancelled
from numberzz.services.ledger import Ledger
from numberzz.store.base import Store
from numberzz.store.memory import MemoryStore
from numberzz.store.sql import SqlStore
from numberzz.wallet.client import Wallet

ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
CAROL = "0x" + "c" * 40
DAVE = "0x" + "d" * 40
OWNER = "0x" + "0" * 39 + "1"
ADMIN = "0x" + "e" * 40
BANK = "0x53304048455325fbffecc34a62976cb3f4d7b519"


class FakeWallet(Wallet):
    """In-process wallet double that records every payment."""

    def __init__(self) -> None:
        self.payments: list[tuple[str, str, Decimal]] = []
        self.reject = False
        self.unavailable = False

    async def get_accounts(self) -> list[str]:
        return [ALICE]

    async def get_balance(self, address: str) -> Decimal:
        return Decimal("1")

    async def get_chain_id(self) -> str:
        return "0x2105"

    async def switch_chain(self, chain_id: str) -> None:
        return None

    async def send_transaction(self, sender: str, to: str, value_eth: Decimal) -> str:
        if self.reject:
            raise UserCancelled(detail="User rejected the request.")
        if self.unavailable:
            raise CollaboratorUnavailable("wallet", detail="provider offline")
        self.payments.append((sender, to, value_eth))
        return "0x" + f"{len(self.payments):064x}"


@pytest.fixture(autouse=True)
def clear_finalized_responses():
    """Clear the finalized responses set between tests.

    This prevents test isolation issues where Python reuses memory
    addresses for new objects, causing id() collisions with previously
    finalized responses.
    """
    failure_module._finalized_responses.clear()
    yield
    failure_module._finalized_responses.clear()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        store_backend="memory",
        admin_address=ADMIN,
        store_timeout_seconds=2.0,
        wallet_timeout_seconds=2.0,
    )


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await init_db(engine)
    yield engine
    await drop_db(engine)
    await engine.dispose()


@pytest.fixture
def sql_store(async_engine) -> SqlStore:
    return SqlStore(async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False))


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture(params=["memory", "sql"])
def store(request: pytest.FixtureRequest) -> Store:
    """Each store backend in turn."""
    if request.param == "memory":
        return MemoryStore()
    return request.getfixturevalue("sql_store")


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
async def ledger(store: Store, wallet: FakeWallet, test_settings: Settings):
    """A ledger over a freshly seeded catalogue."""
    ledger = Ledger(store, wallet, test_settings)
    await ledger.ensure_catalogue()
    yield ledger
    ledger.close()


@pytest.fixture
async def memory_ledger(memory_store: MemoryStore, wallet: FakeWallet, test_settings: Settings):
    ledger = Ledger(memory_store, wallet, test_settings)
    await ledger.ensure_catalogue()
    yield ledger
    ledger.close()
