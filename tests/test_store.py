"""Tests for the store adapters: conditional writes, counts and the change feed."""

import asyncio

import pytest

from numberzz.models.failure import CollaboratorTimeout, FailureKind
from numberzz.models.records import Item, Rarity, Table, to_row
from numberzz.store.base import ChangeEvent, ChangeKind, CountOf, Store, matches, with_timeout


def _item(item_id: str = "42", **overrides) -> dict:
    item = Item(id=item_id, label=item_id, rarity=Rarity.RARE, base_price="0.022")
    return {**to_row(item), **overrides}


def _interest(item_id: str, address: str) -> dict:
    return {
        "item_id": item_id,
        "address": address,
        "price_eth": "0.01",
        "timestamp": 1,
        "comment": None,
    }


class TestMatches:
    def test_none_matches_missing_value(self) -> None:
        """A None predicate value means the column is null."""
        assert matches({"owner": None}, {"owner": None})
        assert not matches({"owner": "0xabc"}, {"owner": None})

    def test_empty_predicate_matches_everything(self) -> None:
        assert matches({"owner": "0xabc"}, {})


class TestInsertAndRead:
    async def test_insert_then_get(self, store: Store) -> None:
        """Inserted rows read back with every column present."""
        assert await store.insert(Table.ITEMS, _item())

        row = await store.get(Table.ITEMS, ("42",))

        assert row is not None
        assert row["id"] == "42"
        assert row["owner"] is None
        assert row["unlocked"] is True

    async def test_insert_existing_key_is_refused(self, store: Store) -> None:
        """A second insert with the same key writes nothing."""
        await store.insert(Table.ITEMS, _item())

        assert not await store.insert(Table.ITEMS, _item(label="changed"))
        row = await store.get(Table.ITEMS, ("42",))
        assert row is not None
        assert row["label"] == "42"

    async def test_get_missing_returns_none(self, store: Store) -> None:
        assert await store.get(Table.ITEMS, ("nope",)) is None

    async def test_select_filters_by_predicate(self, store: Store) -> None:
        await store.insert(Table.ITEMS, _item("1"))
        await store.insert(Table.ITEMS, _item("2", owner="0x" + "a" * 40))

        unowned = await store.select(Table.ITEMS, {"owner": None})

        assert [row["id"] for row in unowned] == ["1"]

    async def test_upsert_replaces_by_compound_key(self, store: Store) -> None:
        """Re-submitting the same (item, address) replaces the entry."""
        await store.insert(Table.ITEMS, _item())
        address = "0x" + "a" * 40
        await store.upsert(Table.INTERESTED_BUYERS, [_interest("42", address)])
        await store.upsert(
            Table.INTERESTED_BUYERS, [{**_interest("42", address), "price_eth": "0.02"}]
        )

        rows = await store.load_all(Table.INTERESTED_BUYERS)

        assert len(rows) == 1
        assert rows[0]["price_eth"] == "0.02"


class TestUpdateWhere:
    async def test_applies_when_predicate_holds(self, store: Store) -> None:
        await store.insert(Table.ITEMS, _item())
        buyer = "0x" + "a" * 40

        row = await store.update_where(Table.ITEMS, ("42",), {"owner": None}, {"owner": buyer})

        assert row is not None
        assert row["owner"] == buyer

    async def test_refused_when_predicate_fails(self, store: Store) -> None:
        """A failed predicate returns None and leaves the row untouched."""
        first = "0x" + "a" * 40
        await store.insert(Table.ITEMS, _item(owner=first))

        row = await store.update_where(
            Table.ITEMS, ("42",), {"owner": None}, {"owner": "0x" + "b" * 40}
        )

        assert row is None
        stored = await store.get(Table.ITEMS, ("42",))
        assert stored is not None
        assert stored["owner"] == first

    async def test_missing_row_returns_none(self, store: Store) -> None:
        assert await store.update_where(Table.ITEMS, ("nope",), {}, {"label": "x"}) is None

    async def test_count_of_is_evaluated_in_store(self, store: Store) -> None:
        """CountOf patches to the current size of the matching set."""
        await store.insert(Table.ITEMS, _item())
        await store.upsert(
            Table.INTERESTED_BUYERS,
            [_interest("42", "0x" + "a" * 40), _interest("42", "0x" + "b" * 40)],
        )

        row = await store.update_where(
            Table.ITEMS,
            ("42",),
            {},
            {"interested_count": CountOf(Table.INTERESTED_BUYERS, {"item_id": "42"})},
        )

        assert row is not None
        assert row["interested_count"] == 2

    async def test_json_columns_round_trip(self, store: Store) -> None:
        """Offer lists survive a conditional update."""
        await store.insert(Table.ITEMS, _item())
        contract = {
            "id": "c1",
            "item_id": "42",
            "seller": "0x" + "a" * 40,
            "mode": "buyOffer",
            "status": "active",
            "price_eth": None,
            "offers": [],
            "accepted_offer": None,
            "comment": None,
            "created_at": 1,
            "version": 0,
        }
        await store.insert(Table.SALE_CONTRACTS, contract)
        offer = {"buyer": "0x" + "b" * 40, "price_eth": "0.03", "timestamp": 2}

        row = await store.update_where(
            Table.SALE_CONTRACTS,
            ("c1",),
            {"status": "active", "version": 0},
            {"offers": [offer], "version": 1},
        )

        assert row is not None
        assert row["offers"] == [offer]
        assert row["version"] == 1


class TestDelete:
    async def test_delete_by_predicate(self, store: Store) -> None:
        await store.insert(Table.ITEMS, _item("1"))
        await store.insert(Table.ITEMS, _item("2"))

        removed = await store.delete(Table.ITEMS, {"id": "1"})

        assert removed == 1
        assert [row["id"] for row in await store.load_all(Table.ITEMS)] == ["2"]

    async def test_empty_predicate_deletes_all(self, store: Store) -> None:
        await store.insert(Table.ITEMS, _item("1"))
        await store.insert(Table.ITEMS, _item("2"))

        assert await store.delete(Table.ITEMS, {}) == 2
        assert await store.load_all(Table.ITEMS) == []


class TestChangeFeed:
    async def test_committed_changes_are_published(self, store: Store) -> None:
        """Insert, update and delete each reach table subscribers."""
        events: list[ChangeEvent] = []
        store.subscribe(Table.ITEMS, events.append)

        await store.insert(Table.ITEMS, _item())
        await store.update_where(Table.ITEMS, ("42",), {}, {"label": "forty-two"})
        await store.delete(Table.ITEMS, {"id": "42"})

        assert [e.kind for e in events] == [ChangeKind.INSERT, ChangeKind.UPDATE, ChangeKind.DELETE]
        assert all(e.key == ("42",) for e in events)
        assert events[1].row is not None
        assert events[1].row["label"] == "forty-two"

    async def test_refused_update_publishes_nothing(self, store: Store) -> None:
        await store.insert(Table.ITEMS, _item(owner="0x" + "a" * 40))
        events: list[ChangeEvent] = []
        store.subscribe(Table.ITEMS, events.append)

        await store.update_where(Table.ITEMS, ("42",), {"owner": None}, {"label": "x"})

        assert events == []

    async def test_unsubscribe_stops_delivery(self, store: Store) -> None:
        events: list[ChangeEvent] = []
        unsubscribe = store.subscribe(Table.ITEMS, events.append)
        unsubscribe()

        await store.insert(Table.ITEMS, _item())

        assert events == []

    async def test_failing_handler_does_not_undo_write(self, store: Store) -> None:
        def broken(_event: ChangeEvent) -> None:
            raise RuntimeError("observer bug")

        store.subscribe(Table.ITEMS, broken)

        assert await store.insert(Table.ITEMS, _item())
        assert await store.get(Table.ITEMS, ("42",)) is not None


class TestWithTimeout:
    async def test_timeout_is_distinct_from_rejection(self) -> None:
        """No answer in time raises CollaboratorTimeout with kind TIMEOUT."""
        with pytest.raises(CollaboratorTimeout) as exc_info:
            await with_timeout(asyncio.sleep(1), 0.01, "store")

        assert exc_info.value.kind == FailureKind.TIMEOUT
        assert exc_info.value.status_code == 504

    async def test_result_passes_through(self) -> None:
        async def answer() -> int:
            return 42

        assert await with_timeout(answer(), 1, "store") == 42
