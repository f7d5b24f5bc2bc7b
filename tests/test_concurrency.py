"""
Races between viewers sharing one store.

Each viewer is its own Ledger with its own snapshot and locks, so only
the store's conditional writes stand between them.
"""

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from numberzz.config import Settings
from numberzz.db.database import init_db
from numberzz.models.failure import PreconditionFailed, Reason
from numberzz.models.records import Table
from numberzz.services.catalogue import generate_catalogue
from numberzz.services.ledger import Ledger
from numberzz.store.base import Store
from numberzz.store.memory import MemoryStore
from numberzz.store.sql import SqlStore
from tests.conftest import ALICE, BOB, CAROL, DAVE, FakeWallet

CLAIMANTS = [ALICE, BOB, CAROL, DAVE]


@pytest.fixture
async def file_store(tmp_path):
    """SQL store on a file database so viewers hold separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/ledger.db", echo=False)
    await init_db(engine)
    yield SqlStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def shared_store(request: pytest.FixtureRequest) -> Store:
    if request.param == "memory":
        return MemoryStore()
    return request.getfixturevalue("file_store")


async def _viewers(store: Store, settings: Settings, count: int) -> list[Ledger]:
    viewers = [Ledger(store, FakeWallet(), settings) for _ in range(count)]
    await viewers[0].ensure_catalogue()
    return viewers


def _split(results: list) -> tuple[list, list[BaseException]]:
    wins = [r for r in results if not isinstance(r, BaseException)]
    losses = [r for r in results if isinstance(r, BaseException)]
    return wins, losses


class TestConcurrentClaims:
    async def test_exactly_one_claim_wins(
        self, shared_store: Store, test_settings: Settings
    ) -> None:
        """Simultaneous claims on one free egg produce one owner and one certificate."""
        viewers = await _viewers(shared_store, test_settings, len(CLAIMANTS))
        await viewers[0].unlock_item("c_chroma")

        results = await asyncio.gather(
            *(v.claim_free_item("c_chroma", who) for v, who in zip(viewers, CLAIMANTS)),
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert all(
            isinstance(e, PreconditionFailed) and e.reason == Reason.ALREADY_CLAIMED
            for e in losses
        )
        item = await viewers[0].get_item("c_chroma")
        assert item.owner == wins[0].item.owner
        assert len(await viewers[0].history("c_chroma")) == 1

        for viewer in viewers:
            viewer.close()

    async def test_exactly_one_purchase_wins(
        self, shared_store: Store, test_settings: Settings
    ) -> None:
        viewers = await _viewers(shared_store, test_settings, 2)

        results = await asyncio.gather(
            viewers[0].buy("42", ALICE),
            viewers[1].buy("42", BOB),
            return_exceptions=True,
        )

        wins, losses = _split(results)
        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], PreconditionFailed)
        assert losses[0].reason == Reason.ALREADY_OWNED
        assert len(await shared_store.load_all(Table.CERTIFICATES)) == 1

        for viewer in viewers:
            viewer.close()


class TestConcurrentOffers:
    async def test_all_offers_land(self, shared_store: Store, test_settings: Settings) -> None:
        """Racing offers on one contract are all kept; none overwrites another."""
        viewers = await _viewers(shared_store, test_settings, 4)
        await viewers[0].buy("42", ALICE)
        listing = await viewers[0].open_for_offers("42", ALICE)
        bidders = [BOB, CAROL, DAVE]

        await asyncio.gather(
            *(
                viewer.make_offer(listing.contract.id, bidder, "0.03")
                for viewer, bidder in zip(viewers[1:], bidders)
            )
        )

        contract = await viewers[0].get_contract(listing.contract.id)
        assert sorted(offer.buyer for offer in contract.offers) == sorted(bidders)
        assert contract.version == len(bidders)

        for viewer in viewers:
            viewer.close()


class TestConcurrentInterest:
    async def test_count_matches_set(self, shared_store: Store, test_settings: Settings) -> None:
        viewers = await _viewers(shared_store, test_settings, 3)

        await asyncio.gather(
            *(
                viewer.mark_interested("7", address, "0.01")
                for viewer, address in zip(viewers, [BOB, CAROL, DAVE])
            )
        )

        item = await viewers[0].get_item("7")
        assert item.interested_count == 3
        assert len(await viewers[0].interested("7")) == 3

        for viewer in viewers:
            viewer.close()


class TestResetRace:
    async def test_claim_racing_reset(self, test_settings: Settings) -> None:
        """A claim racing a reset lands on the reseeded item or is refused."""
        store = MemoryStore()
        admin, player = await _viewers(store, test_settings, 2)
        await admin.unlock_item("n_nyan")

        reset, claim = await asyncio.gather(
            admin.reset(test_settings.effective_admin_address),
            player.claim_free_item("n_nyan", ALICE),
            return_exceptions=True,
        )

        assert reset == len(generate_catalogue())
        if isinstance(claim, BaseException):
            assert isinstance(claim, PreconditionFailed)
            assert claim.reason in {Reason.NOT_FOUND, Reason.CONFLICT}
        item = await admin.get_item("n_nyan")
        if item.owner is not None:
            assert item.owner == ALICE
            assert [c.owner for c in await admin.history("n_nyan")] == [ALICE]
        assert len(await admin.list_items()) == len(generate_catalogue())

        admin.close()
        player.close()
