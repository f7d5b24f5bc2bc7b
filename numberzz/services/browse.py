"""
Catalogue queries: search, filter, sort and paginate a snapshot of items.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from numberzz.models.records import Item, Rarity


class ItemFilter(str, Enum):
    ALL = "all"
    AVAILABLE = "available"
    OWNED_BY_ME = "owned_by_me"
    OWNED_BY_OTHERS = "owned_by_others"
    FOR_SALE = "for_sale"


class ItemSort(str, Enum):
    NONE = "none"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    RARITY = "rarity"
    MOST_INTERESTED = "most_interested"


# Exotic sits between legendary and rare
RARITY_ORDER: dict[Rarity, float] = {
    Rarity.LEGENDARY: 0,
    Rarity.EXOTIC: 0.5,
    Rarity.RARE: 1,
    Rarity.UNCOMMON: 2,
    Rarity.COMMON: 3,
}


@dataclass
class Page:
    items: list[Item]
    page: int
    total_pages: int
    total_items: int


def _matches_query(item: Item, query: str) -> bool:
    return (
        query in item.label.lower()
        or query in item.id.lower()
        or (item.description is not None and query in item.description.lower())
    )


def _passes(item: Item, item_filter: ItemFilter, account: str | None) -> bool:
    if item_filter is ItemFilter.AVAILABLE:
        return item.owner is None
    if item_filter is ItemFilter.OWNED_BY_ME:
        return item.is_owned_by(account)
    if item_filter is ItemFilter.OWNED_BY_OTHERS:
        return item.owner is not None and not item.is_owned_by(account)
    if item_filter is ItemFilter.FOR_SALE:
        return item.for_sale
    return True


def search(
    items: Iterable[Item],
    query: str | None = None,
    item_filter: ItemFilter = ItemFilter.ALL,
    sort: ItemSort = ItemSort.NONE,
    account: str | None = None,
) -> list[Item]:
    """
    Filter and sort visible items. Locked easter eggs are never listed.

    Sorting is stable, so ties keep catalogue order.
    """
    visible = [item for item in items if item.unlocked]

    needle = (query or "").strip().lower()
    if needle:
        visible = [item for item in visible if _matches_query(item, needle)]

    visible = [item for item in visible if _passes(item, item_filter, account)]

    if sort is ItemSort.PRICE_ASC:
        visible.sort(key=lambda item: item.effective_price())
    elif sort is ItemSort.PRICE_DESC:
        visible.sort(key=lambda item: item.effective_price(), reverse=True)
    elif sort is ItemSort.RARITY:
        visible.sort(key=lambda item: RARITY_ORDER[item.rarity])
    elif sort is ItemSort.MOST_INTERESTED:
        visible.sort(key=lambda item: item.interested_count, reverse=True)
    return visible


def paginate(items: list[Item], page: int, per_page: int) -> Page:
    """Slice out a 1-based page. Pages past the end come back empty."""
    total_pages = (len(items) + per_page - 1) // per_page
    page = max(page, 1)
    start = (page - 1) * per_page
    return Page(
        items=items[start : start + per_page],
        page=page,
        total_pages=total_pages,
        total_items=len(items),
    )
