"""
Achievement evaluator.

Pure function over the catalogue and one account. Nothing here is
authoritative: the earned set can always be re-derived from item owners.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from numberzz.models.records import Item, Rarity

# All legendary items only counts once the catalogue has at least this many
MIN_LEGENDARY_FOR_SET = 6
RARE_MASTER_COUNT = 5

NON_EXOTIC_RARITIES = frozenset(
    {Rarity.LEGENDARY, Rarity.RARE, Rarity.UNCOMMON, Rarity.COMMON}
)


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str


@dataclass(frozen=True)
class AchievementReport:
    """
    Result of one evaluation pass.

    Attributes:
        earned: Every achievement the account currently holds
        newly_earned: Earned now but not in `already_unlocked`
        notification: The single achievement to surface, the last of
            `newly_earned` in evaluation order
    """

    earned: list[Achievement] = field(default_factory=list)
    newly_earned: list[Achievement] = field(default_factory=list)

    @property
    def notification(self) -> Achievement | None:
        return self.newly_earned[-1] if self.newly_earned else None


def _owned(items: Sequence[Item], account: str) -> list[Item]:
    return [item for item in items if item.is_owned_by(account)]


def _owns_all(items: Sequence[Item], account: str, rarity: Rarity, minimum: int) -> bool:
    pool = [item for item in items if item.rarity is rarity]
    return len(pool) >= minimum and all(item.is_owned_by(account) for item in pool)


def _first_egg(items: Sequence[Item], account: str) -> bool:
    return any(item.is_easter_egg for item in _owned(items, account))


def _all_eggs(items: Sequence[Item], account: str) -> bool:
    eggs = [item for item in items if item.is_easter_egg]
    return bool(eggs) and all(item.is_owned_by(account) for item in eggs)


def _all_exotic(items: Sequence[Item], account: str) -> bool:
    return _owns_all(items, account, Rarity.EXOTIC, 1)


def _collector(items: Sequence[Item], account: str) -> bool:
    held = {item.rarity for item in _owned(items, account)}
    return NON_EXOTIC_RARITIES <= held


def _legendary_collector(items: Sequence[Item], account: str) -> bool:
    return _owns_all(items, account, Rarity.LEGENDARY, MIN_LEGENDARY_FOR_SET)


def _rare_master(items: Sequence[Item], account: str) -> bool:
    rare = [item for item in _owned(items, account) if item.rarity is Rarity.RARE]
    return len(rare) >= RARE_MASTER_COUNT


Rule = Callable[[Sequence[Item], str], bool]

# Evaluation order decides which achievement is surfaced when several land at once
RULES: tuple[tuple[Achievement, Rule], ...] = (
    (Achievement("first_egg", "Egg Hunter", "Own your first easter egg"), _first_egg),
    (Achievement("all_eggs", "Bunny Master", "Own every easter egg"), _all_eggs),
    (Achievement("collector", "Collector", "Own one number of each rarity"), _collector),
    (
        Achievement("legendary_collector", "Legendary Collector", "Own all legendary numbers"),
        _legendary_collector,
    ),
    (
        Achievement("exotic_collector", "Exotic Collector", "Own all exotic numbers"),
        _all_exotic,
    ),
    (Achievement("rare_master", "Rare Master", "Own 5 rare numbers"), _rare_master),
)

ACHIEVEMENTS: dict[str, Achievement] = {achievement.id: achievement for achievement, _ in RULES}


def evaluate(
    items: Iterable[Item],
    account: str | None,
    already_unlocked: Iterable[str] = (),
) -> AchievementReport:
    """Evaluate every rule for `account` against the full catalogue."""
    if not account:
        return AchievementReport()

    catalogue = list(items)
    account = account.lower()
    seen = set(already_unlocked)

    earned = [achievement for achievement, rule in RULES if rule(catalogue, account)]
    newly = [achievement for achievement in earned if achievement.id not in seen]
    return AchievementReport(earned=earned, newly_earned=newly)
