"""
SQLAlchemy ORM models for the shared store.

One table per record family. Columns mirror the row fields in
numberzz.models.records; `updated_at` is maintained by the database.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ItemDB(Base):
    """
    A catalogue item.

    Ownership and listing columns only change through conditional updates.
    """

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    label: Mapped[str] = mapped_column(String(64))
    rarity: Mapped[str] = mapped_column(String(16), index=True)
    base_price: Mapped[str] = mapped_column(String(32))
    owner: Mapped[str | None] = mapped_column(String(42), nullable=True, index=True)
    unlocked: Mapped[bool] = mapped_column(Boolean, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    for_sale: Mapped[bool] = mapped_column(Boolean, default=False)
    sale_price: Mapped[str | None] = mapped_column(String(32), nullable=True)
    interested_count: Mapped[int] = mapped_column(Integer, default=0)
    is_easter_egg: Mapped[bool] = mapped_column(Boolean, default=False)
    easter_egg_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_free_to_claim: Mapped[bool] = mapped_column(Boolean, default=False)
    active_contract_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<ItemDB(id={self.id}, owner={self.owner})>"


class SaleContractDB(Base):
    """A sale contract. Offers are kept inline as a JSON list."""

    __tablename__ = "sale_contracts"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("items.id", ondelete="CASCADE"), index=True
    )
    seller: Mapped[str] = mapped_column(String(42))
    mode: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), index=True)
    price_eth: Mapped[str | None] = mapped_column(String(32), nullable=True)
    offers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    accepted_offer: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger)
    # Compare-and-swap token for offer appends
    version: Mapped[int] = mapped_column(Integer, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<SaleContractDB(id={self.id}, status={self.status})>"


class CertificateDB(Base):
    """Append-only ownership receipt."""

    __tablename__ = "certificates"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("items.id", ondelete="CASCADE"), index=True
    )
    owner: Mapped[str] = mapped_column(String(42))
    tx_hash: Mapped[str] = mapped_column(String(80))
    # Fixed-width ISO-8601 UTC string, orders lexically
    issued_at: Mapped[str] = mapped_column(String(40), index=True)

    def __repr__(self) -> str:
        return f"<CertificateDB(item={self.item_id}, owner={self.owner})>"


class InterestedBuyerDB(Base):
    """One address's interest in one item."""

    __tablename__ = "interested_buyers"
    __table_args__ = (UniqueConstraint("item_id", "address", name="uq_item_address"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("items.id", ondelete="CASCADE"), index=True
    )
    address: Mapped[str] = mapped_column(String(42))
    price_eth: Mapped[str] = mapped_column(String(32))
    timestamp: Mapped[int] = mapped_column(BigInteger)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<InterestedBuyerDB(item={self.item_id}, address={self.address})>"
