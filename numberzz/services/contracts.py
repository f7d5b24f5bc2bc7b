"""
Sale-contract state machine.

A contract is created `active` by the item's owner. From there it may be
completed (a purchase or an accepted offer) or cancelled by the seller.
`pending` is reserved: the machine allows entering it but no ledger
operation does. `completed` and `cancelled` are terminal, and any attempt
to change a terminal contract is reported, never ignored.

Functions here are pure. They return the next version of a contract;
the ledger persists it with a compare-and-swap on `version`.
"""

import secrets
from dataclasses import replace
from decimal import Decimal
from typing import Any

from numberzz.models.failure import PreconditionFailed, Reason, ValidationFailed
from numberzz.models.records import (
    ContractStatus,
    Offer,
    SaleContract,
    SaleMode,
    format_price,
    now_ms,
)

TRANSITIONS: dict[ContractStatus, frozenset[ContractStatus]] = {
    ContractStatus.ACTIVE: frozenset(
        {ContractStatus.PENDING, ContractStatus.COMPLETED, ContractStatus.CANCELLED}
    ),
    ContractStatus.PENDING: frozenset({ContractStatus.COMPLETED, ContractStatus.CANCELLED}),
    ContractStatus.COMPLETED: frozenset(),
    ContractStatus.CANCELLED: frozenset(),
}


def can_transition(current: ContractStatus, target: ContractStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_transition(contract: SaleContract, target: ContractStatus) -> None:
    """
    Raises:
        PreconditionFailed: illegal_transition if `target` is not reachable
    """
    if not can_transition(contract.status, target):
        raise PreconditionFailed(
            Reason.ILLEGAL_TRANSITION,
            detail=f"{contract.id}: {contract.status.value} -> {target.value}",
        )


def ensure_active(contract: SaleContract) -> None:
    """Only an active contract accepts changes other than a status move."""
    if contract.status is not ContractStatus.ACTIVE:
        raise PreconditionFailed(
            Reason.ILLEGAL_TRANSITION,
            detail=f"{contract.id} is {contract.status.value}",
        )


def new_contract_id(item_id: str) -> str:
    return f"contract_{item_id}_{now_ms()}_{secrets.token_hex(4)}"


def open_contract(
    item_id: str,
    seller: str,
    mode: SaleMode,
    price_eth: Decimal | None = None,
    comment: str | None = None,
) -> SaleContract:
    """
    Build a new active contract.

    Raises:
        ValidationFailed: If a fixed-price contract has no price, or a
            buy-offer contract has one
    """
    if mode is SaleMode.FIXED_PRICE and price_eth is None:
        raise ValidationFailed("A fixed-price listing needs a price")
    if mode is SaleMode.BUY_OFFER and price_eth is not None:
        raise ValidationFailed("An offers contract does not take a price")

    return SaleContract(
        id=new_contract_id(item_id),
        item_id=item_id,
        seller=seller,
        mode=mode,
        status=ContractStatus.ACTIVE,
        price_eth=format_price(price_eth) if price_eth is not None else None,
        comment=comment,
        created_at=now_ms(),
    )


def append_offer(contract: SaleContract, buyer: str, price_eth: Decimal) -> SaleContract:
    """
    Add an offer to the end of the contract's offer list.

    Raises:
        PreconditionFailed: illegal_transition if the contract is closed,
            own_item if the seller is bidding on their own contract
        ValidationFailed: If the contract is fixed-price
    """
    ensure_active(contract)
    if contract.mode is not SaleMode.BUY_OFFER:
        raise ValidationFailed("Offers are only taken on buy-offer contracts", detail=contract.id)
    if buyer == contract.seller:
        raise PreconditionFailed(Reason.OWN_ITEM, detail=contract.id)

    offer = Offer(buyer=buyer, price_eth=format_price(price_eth), timestamp=now_ms())
    return replace(contract, offers=(*contract.offers, offer), version=contract.version + 1)


def offer_at(contract: SaleContract, index: int) -> Offer:
    """
    Raises:
        PreconditionFailed: offer_not_found if there is no offer at `index`
    """
    if index < 0 or index >= len(contract.offers):
        raise PreconditionFailed(
            Reason.OFFER_NOT_FOUND,
            detail=f"{contract.id} has {len(contract.offers)} offers",
        )
    return contract.offers[index]


def close(
    contract: SaleContract,
    target: ContractStatus,
    accepted_offer: Offer | None = None,
) -> SaleContract:
    """Move a contract to `target`, recording the accepted offer on completion."""
    ensure_transition(contract, target)
    if target is ContractStatus.COMPLETED and accepted_offer is None:
        raise ValidationFailed("A completed contract needs an accepted offer", detail=contract.id)
    return replace(
        contract,
        status=target,
        accepted_offer=accepted_offer,
        version=contract.version + 1,
    )


def change_patch(after: SaleContract) -> dict[str, Any]:
    """Columns a state-machine step may change."""
    return {
        "status": after.status.value,
        "offers": [offer.to_dict() for offer in after.offers],
        "accepted_offer": after.accepted_offer.to_dict() if after.accepted_offer else None,
        "version": after.version,
    }


def guard(before: SaleContract) -> dict[str, Any]:
    """Predicate that holds only while the stored contract is still `before`."""
    return {"status": before.status.value, "version": before.version}
