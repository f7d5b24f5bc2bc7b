"""
Catalogue generator.

Deterministically produces the static item set:
- curated legendary constants and rare integers
- locked easter eggs (free-to-claim and premium)
- naturals 2..300 classified by their arithmetic properties

Also maps out-of-band triggers (search keywords, interaction counts)
to the easter egg they unlock.
"""

from functools import lru_cache

from numberzz.models.records import Item, Rarity

NATURALS_START = 2
NATURALS_END = 300

# Natural-number rarity prices
RARE_PRICE = "0.015"
UNCOMMON_PRICE = "0.008"
COMMON_PRICE = "0.003"

PERFECT_NUMBERS = frozenset({6, 28, 496})

_LEGENDARY: tuple[tuple[str, str, str, str], ...] = (
    ("pi", "π", "0.10", "Pi - famous irrational number (3.14159...)"),
    ("e", "e", "0.095", "e - Euler's number (2.71828...)"),
    ("phi", "φ", "0.089", "Phi - the golden ratio (1.618...)"),
    ("gamma", "γ", "0.085", "Gamma - Euler-Mascheroni constant (0.5772...)"),
    ("tau", "τ", "0.098", "Tau - the circle constant (6.28318...)"),
    ("sqrt2", "√2", "0.088", "Square root of 2 - first known irrational (1.414...)"),
    ("omega", "Ω", "0.092", "Omega - Chaitin's constant (0.00787...)"),
    ("sqrt3", "√3", "0.087", "Square root of 3 (1.732...)"),
    ("ln2", "ln(2)", "0.083", "Natural logarithm of 2 (0.693...)"),
    ("apery", "ζ(3)", "0.091", "Apéry's constant - zeta of 3 (1.202...)"),
)

_RARE: tuple[tuple[str, str, str, str], ...] = (
    ("zero", "0", "0.025", "Zero - fundamental to all of mathematics"),
    ("one", "1", "0.024", "One - the unit every integer is built from"),
    ("42", "42", "0.022", "The answer to life, the universe and everything"),
    ("1337", "1337", "0.020", "Leet speak - a symbol of internet culture"),
    ("69", "69", "0.019", "The meme number - balance and symmetry"),
    ("420", "420", "0.021", "Pop-culture icon"),
    ("666", "666", "0.023", "The number of mystery"),
    ("1729", "1729", "0.026", "Ramanujan's taxicab number"),
    ("256", "256", "0.018", "2^8 - a fundamental power of computing"),
    ("512", "512", "0.019", "2^9 - a classic system limit"),
)

# Integers curated above, excluded from the generated naturals
CURATED_INTEGERS = frozenset({0, 1, 42, 69, 420, 666, 1337, 1729, 256, 512})

# (id, label, price, egg name, free to claim, description)
_EASTER_EGGS: tuple[tuple[str, str, str, str, bool, str], ...] = (
    ("d_darius", "Ð", "0", "darius", True, "Darius Coin - found by searching 'darius'"),
    ("n_nyan", "🌈", "0", "nyan", True, "Nyan Cat Coin - found by searching 'nyan'"),
    ("c_chroma", "◆", "0", "chroma", True, "Chroma Coin - click the logo 7 times"),
    ("w_wukong", "☯", "0.05", "wukong", False, "Monkey King Coin - unlocked by searching 'wukong'"),
    (
        "h_halflife",
        "½",
        "0.048",
        "half-life",
        False,
        "Half-Life Coin - unlocked by searching 'half-life'",
    ),
    ("m_meme", "🎲", "0.042", "meme", False, "Meme Coin - unlocked by searching 'meme'"),
    ("s_secret", "🔐", "0.035", "secret", False, "Secret Coin - press Search 10 times"),
)

# Search keyword -> easter egg id
KEYWORD_TRIGGERS: dict[str, str] = {
    "darius": "d_darius",
    "wukong": "w_wukong",
    "half-life": "h_halflife",
    "nyan": "n_nyan",
    "meme": "m_meme",
}

# Interaction counter -> (threshold, easter egg id)
INTERACTION_TRIGGERS: dict[str, tuple[int, str]] = {
    "logo_click": (7, "c_chroma"),
    "search_click": (10, "s_secret"),
}


# =============================================================================
# RARITY CLASSIFICATION
# =============================================================================


def is_prime(n: int) -> bool:
    if n <= 1:
        return False
    if n <= 3:
        return True
    if n % 2 == 0 or n % 3 == 0:
        return False
    i = 5
    while i * i <= n:
        if n % i == 0 or n % (i + 2) == 0:
            return False
        i += 6
    return True


def is_perfect_power(n: int) -> bool:
    """True if n == base**k for some base >= 2 and k >= 2."""
    for base in range(2, n):
        power = base * base
        if power > n:
            break
        while power < n:
            power *= base
        if power == n:
            return True
    return False


def is_fibonacci(n: int) -> bool:
    a, b = 0, 1
    while a < n:
        a, b = b, a + b
    return a == n


def classify_natural(n: int) -> tuple[Rarity, str]:
    """
    Rarity and base price of a natural number.

    Primes are Rare. Perfect numbers, perfect powers and Fibonacci
    numbers are Uncommon. Everything else is Common.
    """
    if is_prime(n):
        return Rarity.RARE, RARE_PRICE
    if n in PERFECT_NUMBERS or is_perfect_power(n) or is_fibonacci(n):
        return Rarity.UNCOMMON, UNCOMMON_PRICE
    return Rarity.COMMON, COMMON_PRICE


def _natural_description(n: int, rarity: Rarity) -> str:
    if n == 2:
        return f"Unique number {n} - the first prime"
    if rarity is Rarity.RARE:
        return f"Unique number {n} - a prime"
    if rarity is Rarity.UNCOMMON:
        return f"Unique number {n} - a number with special properties"
    return f"Unique number {n} - a natural number"


# =============================================================================
# GENERATION
# =============================================================================


def generate_naturals(start: int = NATURALS_START, end: int = NATURALS_END) -> list[Item]:
    """Generate naturals in [start, end], skipping curated integers."""
    out: list[Item] = []
    for n in range(start, end + 1):
        if n in CURATED_INTEGERS:
            continue
        rarity, price = classify_natural(n)
        out.append(
            Item(
                id=str(n),
                label=str(n),
                rarity=rarity,
                base_price=price,
                description=_natural_description(n, rarity),
            )
        )
    return out


def easter_eggs() -> list[Item]:
    """Locked easter egg items."""
    return [
        Item(
            id=egg_id,
            label=label,
            rarity=Rarity.EXOTIC,
            base_price=price,
            unlocked=False,
            description=description,
            is_easter_egg=True,
            easter_egg_name=name,
            is_free_to_claim=free,
        )
        for egg_id, label, price, name, free, description in _EASTER_EGGS
    ]


@lru_cache(maxsize=1)
def _build_catalogue() -> tuple[Item, ...]:
    curated = [
        Item(id=item_id, label=label, rarity=Rarity.LEGENDARY, base_price=price, description=desc)
        for item_id, label, price, desc in _LEGENDARY
    ]
    curated += [
        Item(id=item_id, label=label, rarity=Rarity.RARE, base_price=price, description=desc)
        for item_id, label, price, desc in _RARE
    ]
    return tuple(curated + easter_eggs() + generate_naturals())


def generate_catalogue() -> list[Item]:
    """
    The full initial catalogue, every item unowned.

    Pure and deterministic: repeated calls return equal lists.
    """
    return list(_build_catalogue())


# =============================================================================
# UNLOCK TRIGGERS
# =============================================================================


def egg_for_keyword(keyword: str) -> str | None:
    """Easter egg id unlocked by a search keyword, if any."""
    return KEYWORD_TRIGGERS.get(keyword.strip().lower())


def egg_for_interaction(counter: str, count: int) -> str | None:
    """Easter egg id unlocked once an interaction counter reaches its threshold."""
    trigger = INTERACTION_TRIGGERS.get(counter)
    if trigger is None:
        return None
    threshold, egg_id = trigger
    return egg_id if count >= threshold else None


@lru_cache(maxsize=1)
def _positions() -> dict[str, int]:
    return {item.id: index for index, item in enumerate(_build_catalogue())}


def catalogue_position(item_id: str) -> int:
    """Index of an item in catalogue order; unknown ids sort last."""
    return _positions().get(item_id, len(_positions()))
