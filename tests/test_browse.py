"""Tests for catalogue search, filtering, sorting and pagination."""

from dataclasses import replace

import pytest

from numberzz.models.records import Item, Rarity
from numberzz.services.browse import ItemFilter, ItemSort, paginate, search

ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40


@pytest.fixture
def items() -> list[Item]:
    return [
        Item(id="pi", label="π", rarity=Rarity.LEGENDARY, base_price="0.10", description="Pi"),
        Item(id="42", label="42", rarity=Rarity.RARE, base_price="0.022", owner=ALICE),
        Item(
            id="n_nyan",
            label="🌈",
            rarity=Rarity.EXOTIC,
            base_price="0",
            unlocked=False,
            is_easter_egg=True,
        ),
        Item(
            id="m_meme",
            label="🎲",
            rarity=Rarity.EXOTIC,
            base_price="0.042",
            is_easter_egg=True,
        ),
        Item(
            id="10",
            label="10",
            rarity=Rarity.COMMON,
            base_price="0.003",
            owner=BOB,
            for_sale=True,
            sale_price="0.5",
            interested_count=3,
        ),
        Item(id="4", label="4", rarity=Rarity.UNCOMMON, base_price="0.008", interested_count=1),
    ]


def _ids(found: list[Item]) -> list[str]:
    return [item.id for item in found]


class TestSearch:
    def test_locked_items_are_hidden(self, items: list[Item]) -> None:
        assert "n_nyan" not in _ids(search(items))

    def test_query_matches_label_id_and_description(self, items: list[Item]) -> None:
        assert _ids(search(items, "PI")) == ["pi"]
        assert _ids(search(items, "meme")) == ["m_meme"]
        assert _ids(search(items, "π")) == ["pi"]

    def test_blank_query_matches_all(self, items: list[Item]) -> None:
        assert len(search(items, "   ")) == 5

    @pytest.mark.parametrize(
        ("item_filter", "expected"),
        [
            (ItemFilter.AVAILABLE, ["pi", "m_meme", "4"]),
            (ItemFilter.OWNED_BY_ME, ["42"]),
            (ItemFilter.OWNED_BY_OTHERS, ["10"]),
            (ItemFilter.FOR_SALE, ["10"]),
        ],
    )
    def test_filters(self, items: list[Item], item_filter: ItemFilter, expected: list[str]) -> None:
        assert _ids(search(items, item_filter=item_filter, account=ALICE)) == expected

    def test_owned_by_me_without_account(self, items: list[Item]) -> None:
        assert search(items, item_filter=ItemFilter.OWNED_BY_ME) == []


class TestSort:
    def test_price_uses_sale_price_when_listed(self, items: list[Item]) -> None:
        assert _ids(search(items, sort=ItemSort.PRICE_ASC)) == ["4", "42", "m_meme", "pi", "10"]
        assert _ids(search(items, sort=ItemSort.PRICE_DESC))[0] == "10"

    def test_rarity_puts_exotic_after_legendary(self, items: list[Item]) -> None:
        assert _ids(search(items, sort=ItemSort.RARITY)) == ["pi", "m_meme", "42", "4", "10"]

    def test_most_interested(self, items: list[Item]) -> None:
        assert _ids(search(items, sort=ItemSort.MOST_INTERESTED))[:2] == ["10", "4"]

    def test_ties_keep_input_order(self, items: list[Item]) -> None:
        twins = [replace(items[0], id=f"p{n}") for n in range(5)]

        assert _ids(search(twins, sort=ItemSort.PRICE_ASC)) == [f"p{n}" for n in range(5)]


class TestPaginate:
    def test_pages(self, items: list[Item]) -> None:
        page = paginate(items, 2, 4)

        assert page.page == 2
        assert page.total_pages == 2
        assert page.total_items == 6
        assert _ids(page.items) == ["10", "4"]

    def test_past_the_end_is_empty(self, items: list[Item]) -> None:
        assert paginate(items, 9, 4).items == []

    def test_empty(self) -> None:
        page = paginate([], 1, 20)

        assert page.total_pages == 0
        assert page.items == []
