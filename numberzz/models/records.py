"""
Ledger records and the row codec.

The store hands back loosely-typed rows (plain dicts keyed by column name).
Everything above the store works with the explicit, immutable records
defined here. Rows are converted at the boundary and unknown shapes are
rejected rather than passed through.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from numberzz.models.failure import ValidationFailed


class Table(str, Enum):
    """The four record families held by the store."""

    ITEMS = "items"
    SALE_CONTRACTS = "sale_contracts"
    CERTIFICATES = "certificates"
    INTERESTED_BUYERS = "interested_buyers"


class Rarity(str, Enum):
    LEGENDARY = "Legendary"
    RARE = "Rare"
    UNCOMMON = "Uncommon"
    COMMON = "Common"
    EXOTIC = "Exotic"


class SaleMode(str, Enum):
    FIXED_PRICE = "fixedPrice"
    BUY_OFFER = "buyOffer"


class ContractStatus(str, Enum):
    ACTIVE = "active"
    # Reserved: no transition enters it
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({ContractStatus.COMPLETED, ContractStatus.CANCELLED})


# =============================================================================
# VALUE HELPERS
# =============================================================================

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: str) -> str:
    """
    Validate and lowercase an account address.

    Raises:
        ValidationFailed: If the address is not 0x + 40 hex digits
    """
    candidate = (address or "").strip()
    if not _ADDRESS_RE.match(candidate):
        raise ValidationFailed("Malformed account address", detail=repr(address))
    return candidate.lower()


def parse_price(value: str | Decimal | int | float, allow_zero: bool = False) -> Decimal:
    """
    Parse a price in ETH.

    Raises:
        ValidationFailed: If the price is not a finite positive number
    """
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValidationFailed("Price must be a number", detail=repr(value)) from e

    if not price.is_finite():
        raise ValidationFailed("Price must be finite", detail=repr(value))
    if price < 0 or (price == 0 and not allow_zero):
        raise ValidationFailed("Price must be positive", detail=repr(value))
    return price


def format_price(price: Decimal) -> str:
    """Canonical decimal string for a price ("0.050" -> "0.05")."""
    if price == 0:
        return "0"
    return format(price.normalize(), "f")


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)


def now_iso() -> str:
    """Current UTC time as a fixed-width ISO-8601 string (sorts lexically)."""
    return datetime.now(UTC).isoformat(timespec="microseconds")


# =============================================================================
# RECORDS
# =============================================================================


@dataclass(frozen=True)
class Item:
    """
    A single collectible.

    Attributes:
        id: Stable unique key
        label: Display glyph or number
        rarity: Rarity tier
        base_price: Decimal string fixed at creation
        owner: Owning address, None while unowned
        unlocked: Easter eggs start locked; every other item is unlocked
        for_sale: True while a fixed-price listing is active
        sale_price: Listing price, set iff for_sale
        interested_count: Size of the item's interested-buyer set
        active_contract_id: The single active sale contract, if any
    """

    id: str
    label: str
    rarity: Rarity
    base_price: str
    owner: str | None = None
    unlocked: bool = True
    description: str | None = None
    for_sale: bool = False
    sale_price: str | None = None
    interested_count: int = 0
    is_easter_egg: bool = False
    easter_egg_name: str | None = None
    is_free_to_claim: bool = False
    active_contract_id: str | None = None

    def is_owned_by(self, address: str | None) -> bool:
        return self.owner is not None and address is not None and self.owner == address.lower()

    def effective_price(self) -> Decimal:
        """Sale price while listed, otherwise the base price."""
        if self.for_sale and self.sale_price is not None:
            return Decimal(self.sale_price)
        return Decimal(self.base_price)


@dataclass(frozen=True)
class Offer:
    buyer: str
    price_eth: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"buyer": self.buyer, "price_eth": self.price_eth, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Offer":
        return cls(
            buyer=str(data["buyer"]),
            price_eth=str(data["price_eth"]),
            timestamp=int(data["timestamp"]),
        )


@dataclass(frozen=True)
class SaleContract:
    """A negotiation created by an item's owner."""

    id: str
    item_id: str
    seller: str
    mode: SaleMode
    status: ContractStatus = ContractStatus.ACTIVE
    price_eth: str | None = None
    offers: tuple[Offer, ...] = field(default_factory=tuple)
    accepted_offer: Offer | None = None
    comment: str | None = None
    created_at: int = 0
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class Certificate:
    """Immutable receipt of an ownership transfer."""

    id: str
    item_id: str
    owner: str
    tx_hash: str
    issued_at: str


@dataclass(frozen=True)
class InterestedBuyer:
    item_id: str
    address: str
    price_eth: str
    timestamp: int
    comment: str | None = None


Record = Item | SaleContract | Certificate | InterestedBuyer


# =============================================================================
# ROW CODEC
# =============================================================================


class RecordShapeError(ValueError):
    """Raised when a row does not match its table's field list."""

    def __init__(self, table: Table, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Malformed {table.value} row: {reason}")


TABLE_KEYS: dict[Table, tuple[str, ...]] = {
    Table.ITEMS: ("id",),
    Table.SALE_CONTRACTS: ("id",),
    Table.CERTIFICATES: ("id",),
    Table.INTERESTED_BUYERS: ("item_id", "address"),
}

TABLE_FIELDS: dict[Table, tuple[str, ...]] = {
    Table.ITEMS: (
        "id",
        "label",
        "rarity",
        "base_price",
        "owner",
        "unlocked",
        "description",
        "for_sale",
        "sale_price",
        "interested_count",
        "is_easter_egg",
        "easter_egg_name",
        "is_free_to_claim",
        "active_contract_id",
    ),
    Table.SALE_CONTRACTS: (
        "id",
        "item_id",
        "seller",
        "mode",
        "status",
        "price_eth",
        "offers",
        "accepted_offer",
        "comment",
        "created_at",
        "version",
    ),
    Table.CERTIFICATES: ("id", "item_id", "owner", "tx_hash", "issued_at"),
    Table.INTERESTED_BUYERS: ("item_id", "address", "price_eth", "timestamp", "comment"),
}

_RECORD_TABLES: dict[type, Table] = {
    Item: Table.ITEMS,
    SaleContract: Table.SALE_CONTRACTS,
    Certificate: Table.CERTIFICATES,
    InterestedBuyer: Table.INTERESTED_BUYERS,
}


def table_for(record: Record) -> Table:
    return _RECORD_TABLES[type(record)]


def row_key(table: Table, row: Mapping[str, Any]) -> tuple[Any, ...]:
    """Extract the primary key tuple of a row."""
    try:
        return tuple(row[name] for name in TABLE_KEYS[table])
    except KeyError as e:
        raise RecordShapeError(table, f"missing key field {e.args[0]!r}") from e


def _check_shape(table: Table, row: Mapping[str, Any]) -> None:
    expected = set(TABLE_FIELDS[table])
    unknown = set(row) - expected
    if unknown:
        raise RecordShapeError(table, f"unknown fields {sorted(unknown)}")
    missing = set(TABLE_KEYS[table]) - set(row)
    if missing:
        raise RecordShapeError(table, f"missing key fields {sorted(missing)}")


def to_row(record: Record) -> dict[str, Any]:
    """Convert a record to a store row."""
    if isinstance(record, Item):
        return {
            "id": record.id,
            "label": record.label,
            "rarity": record.rarity.value,
            "base_price": record.base_price,
            "owner": record.owner,
            "unlocked": record.unlocked,
            "description": record.description,
            "for_sale": record.for_sale,
            "sale_price": record.sale_price,
            "interested_count": record.interested_count,
            "is_easter_egg": record.is_easter_egg,
            "easter_egg_name": record.easter_egg_name,
            "is_free_to_claim": record.is_free_to_claim,
            "active_contract_id": record.active_contract_id,
        }
    if isinstance(record, SaleContract):
        return {
            "id": record.id,
            "item_id": record.item_id,
            "seller": record.seller,
            "mode": record.mode.value,
            "status": record.status.value,
            "price_eth": record.price_eth,
            "offers": [offer.to_dict() for offer in record.offers],
            "accepted_offer": record.accepted_offer.to_dict() if record.accepted_offer else None,
            "comment": record.comment,
            "created_at": record.created_at,
            "version": record.version,
        }
    if isinstance(record, Certificate):
        return {
            "id": record.id,
            "item_id": record.item_id,
            "owner": record.owner,
            "tx_hash": record.tx_hash,
            "issued_at": record.issued_at,
        }
    return {
        "item_id": record.item_id,
        "address": record.address,
        "price_eth": record.price_eth,
        "timestamp": record.timestamp,
        "comment": record.comment,
    }


def from_row(table: Table, row: Mapping[str, Any]) -> Record:
    """
    Convert a store row to its record.

    Raises:
        RecordShapeError: If the row has unknown or missing fields, or
            values that cannot be coerced to the record's types
    """
    _check_shape(table, row)
    try:
        if table is Table.ITEMS:
            return Item(
                id=str(row["id"]),
                label=str(row["label"]),
                rarity=Rarity(row["rarity"]),
                base_price=str(row["base_price"]),
                owner=row.get("owner"),
                unlocked=bool(row.get("unlocked", True)),
                description=row.get("description"),
                for_sale=bool(row.get("for_sale", False)),
                sale_price=row.get("sale_price"),
                interested_count=int(row.get("interested_count") or 0),
                is_easter_egg=bool(row.get("is_easter_egg", False)),
                easter_egg_name=row.get("easter_egg_name"),
                is_free_to_claim=bool(row.get("is_free_to_claim", False)),
                active_contract_id=row.get("active_contract_id"),
            )
        if table is Table.SALE_CONTRACTS:
            accepted = row.get("accepted_offer")
            return SaleContract(
                id=str(row["id"]),
                item_id=str(row["item_id"]),
                seller=str(row["seller"]),
                mode=SaleMode(row["mode"]),
                status=ContractStatus(row.get("status", ContractStatus.ACTIVE.value)),
                price_eth=row.get("price_eth"),
                offers=tuple(Offer.from_dict(o) for o in row.get("offers") or ()),
                accepted_offer=Offer.from_dict(accepted) if accepted else None,
                comment=row.get("comment"),
                created_at=int(row.get("created_at") or 0),
                version=int(row.get("version") or 0),
            )
        if table is Table.CERTIFICATES:
            return Certificate(
                id=str(row["id"]),
                item_id=str(row["item_id"]),
                owner=str(row["owner"]),
                tx_hash=str(row["tx_hash"]),
                issued_at=str(row["issued_at"]),
            )
        return InterestedBuyer(
            item_id=str(row["item_id"]),
            address=str(row["address"]),
            price_eth=str(row["price_eth"]),
            timestamp=int(row["timestamp"]),
            comment=row.get("comment"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RecordShapeError(table, str(e)) from e
