"""
Response models shared across routers.
"""

from pydantic import BaseModel, Field

from numberzz.models.records import Certificate, InterestedBuyer, Item, Offer, SaleContract
from numberzz.services.ledger import Listing, Transfer


class ItemModel(BaseModel):
    id: str
    label: str
    rarity: str
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

    @classmethod
    def from_record(cls, item: Item) -> "ItemModel":
        return cls(
            id=item.id,
            label=item.label,
            rarity=item.rarity.value,
            base_price=item.base_price,
            owner=item.owner,
            unlocked=item.unlocked,
            description=item.description,
            for_sale=item.for_sale,
            sale_price=item.sale_price,
            interested_count=item.interested_count,
            is_easter_egg=item.is_easter_egg,
            easter_egg_name=item.easter_egg_name,
            is_free_to_claim=item.is_free_to_claim,
            active_contract_id=item.active_contract_id,
        )


class OfferModel(BaseModel):
    buyer: str
    price_eth: str
    timestamp: int

    @classmethod
    def from_record(cls, offer: Offer) -> "OfferModel":
        return cls(buyer=offer.buyer, price_eth=offer.price_eth, timestamp=offer.timestamp)


class ContractModel(BaseModel):
    id: str
    item_id: str
    seller: str
    mode: str
    status: str
    price_eth: str | None = None
    offers: list[OfferModel] = Field(default_factory=list)
    accepted_offer: OfferModel | None = None
    comment: str | None = None
    created_at: int
    version: int

    @classmethod
    def from_record(cls, contract: SaleContract) -> "ContractModel":
        return cls(
            id=contract.id,
            item_id=contract.item_id,
            seller=contract.seller,
            mode=contract.mode.value,
            status=contract.status.value,
            price_eth=contract.price_eth,
            offers=[OfferModel.from_record(o) for o in contract.offers],
            accepted_offer=(
                OfferModel.from_record(contract.accepted_offer)
                if contract.accepted_offer
                else None
            ),
            comment=contract.comment,
            created_at=contract.created_at,
            version=contract.version,
        )


class CertificateModel(BaseModel):
    id: str
    item_id: str
    owner: str
    tx_hash: str
    issued_at: str

    @classmethod
    def from_record(cls, certificate: Certificate) -> "CertificateModel":
        return cls(
            id=certificate.id,
            item_id=certificate.item_id,
            owner=certificate.owner,
            tx_hash=certificate.tx_hash,
            issued_at=certificate.issued_at,
        )


class InterestedBuyerModel(BaseModel):
    item_id: str
    address: str
    price_eth: str
    timestamp: int
    comment: str | None = None

    @classmethod
    def from_record(cls, entry: InterestedBuyer) -> "InterestedBuyerModel":
        return cls(
            item_id=entry.item_id,
            address=entry.address,
            price_eth=entry.price_eth,
            timestamp=entry.timestamp,
            comment=entry.comment,
        )


class TransferResponse(BaseModel):
    """An ownership change and its certificate."""

    item: ItemModel
    certificate: CertificateModel
    contract: ContractModel | None = None
    price_eth: str | None = None
    payee: str | None = None
    payout_eth: str | None = Field(
        default=None,
        description="Seller's share when an offer is accepted",
    )

    @classmethod
    def from_result(cls, result: Transfer) -> "TransferResponse":
        return cls(
            item=ItemModel.from_record(result.item),
            certificate=CertificateModel.from_record(result.certificate),
            contract=ContractModel.from_record(result.contract) if result.contract else None,
            price_eth=result.price_eth,
            payee=result.payee,
            payout_eth=result.payout_eth,
        )


class ListingResponse(BaseModel):
    item: ItemModel
    contract: ContractModel

    @classmethod
    def from_result(cls, result: Listing) -> "ListingResponse":
        return cls(
            item=ItemModel.from_record(result.item),
            contract=ContractModel.from_record(result.contract),
        )


class AccountRequest(BaseModel):
    """Request body naming the acting account."""

    account: str = Field(
        ...,
        description="Acting account address (0x + 40 hex digits)",
        examples=["0x1111111111111111111111111111111111111111"],
    )
