"""
Numberzz services.

Catalogue generation, the ownership ledger and the pure evaluators
built on top of it.
"""

from numberzz.services.achievements import Achievement, AchievementReport, evaluate
from numberzz.services.browse import ItemFilter, ItemSort, Page, paginate, search
from numberzz.services.catalogue import (
    egg_for_interaction,
    egg_for_keyword,
    generate_catalogue,
)
from numberzz.services.ledger import (
    Discovery,
    Interest,
    Ledger,
    Listing,
    Transfer,
    Unlock,
)

__all__ = [
    "Achievement",
    "AchievementReport",
    "Discovery",
    "Interest",
    "ItemFilter",
    "ItemSort",
    "Ledger",
    "Listing",
    "Page",
    "Transfer",
    "Unlock",
    "egg_for_interaction",
    "egg_for_keyword",
    "evaluate",
    "generate_catalogue",
    "paginate",
    "search",
]
