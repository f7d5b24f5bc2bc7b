"""
Item endpoints.

Browsing, ownership history, and every item-level ledger operation.
Refusals surface as an ApiResponse envelope carrying the reason code.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from numberzz.api.dependencies import get_ledger
from numberzz.api.schemas import (
    AccountRequest,
    CertificateModel,
    InterestedBuyerModel,
    ItemModel,
    ListingResponse,
    TransferResponse,
)
from numberzz.services.browse import ItemFilter, ItemSort
from numberzz.services.ledger import Ledger

router = APIRouter(prefix="/items", tags=["items"])


class ItemPageResponse(BaseModel):
    """One page of catalogue results."""

    items: list[ItemModel]
    page: int
    total_pages: int
    total_items: int


class UnlockResponse(BaseModel):
    item: ItemModel
    changed: bool = Field(
        ...,
        description="False when the item was already unlocked",
    )


class ListRequest(AccountRequest):
    price_eth: str = Field(..., description="Asking price in ETH", examples=["0.05"])


class OpenForOffersRequest(AccountRequest):
    comment: str | None = Field(default=None, max_length=500)


class TransferRequest(AccountRequest):
    recipient: str = Field(..., description="Address receiving the item")


class InterestRequest(AccountRequest):
    price_eth: str = Field(..., description="Price the account would pay", examples=["0.02"])
    comment: str | None = Field(default=None, max_length=500)


class InterestResponse(BaseModel):
    item: ItemModel
    entry: InterestedBuyerModel | None = None
    changed: bool = True


@router.get("", response_model=ItemPageResponse)
async def list_items(
    ledger: Annotated[Ledger, Depends(get_ledger)],
    q: str | None = None,
    item_filter: Annotated[ItemFilter, Query(alias="filter")] = ItemFilter.ALL,
    sort: ItemSort = ItemSort.NONE,
    account: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
) -> ItemPageResponse:
    """
    Search, filter, sort and paginate the catalogue.

    Locked easter eggs are hidden. `account` is needed for the
    owned_by_me / owned_by_others filters.
    """
    result = await ledger.browse(q, item_filter, sort, account, page)
    return ItemPageResponse(
        items=[ItemModel.from_record(item) for item in result.items],
        page=result.page,
        total_pages=result.total_pages,
        total_items=result.total_items,
    )


@router.get("/{item_id}", response_model=ItemModel)
async def get_item(
    item_id: str,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> ItemModel:
    return ItemModel.from_record(await ledger.get_item(item_id))


@router.get("/{item_id}/history", response_model=list[CertificateModel])
async def get_history(
    item_id: str,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> list[CertificateModel]:
    """Ownership history, oldest certificate first."""
    await ledger.get_item(item_id)
    return [CertificateModel.from_record(c) for c in await ledger.history(item_id)]


@router.get("/{item_id}/interested", response_model=list[InterestedBuyerModel])
async def get_interested(
    item_id: str,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> list[InterestedBuyerModel]:
    await ledger.get_item(item_id)
    return [InterestedBuyerModel.from_record(e) for e in await ledger.interested(item_id)]


@router.post("/{item_id}/claim", response_model=TransferResponse)
async def claim_item(
    item_id: str,
    request: AccountRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> TransferResponse:
    """Claim a free easter egg. Only the first claimant succeeds."""
    return TransferResponse.from_result(await ledger.claim_free_item(item_id, request.account))


@router.post("/{item_id}/unlock", response_model=UnlockResponse)
async def unlock_item(
    item_id: str,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> UnlockResponse:
    result = await ledger.unlock_item(item_id)
    return UnlockResponse(item=ItemModel.from_record(result.item), changed=result.changed)


@router.post("/{item_id}/buy", response_model=TransferResponse)
async def buy_item(
    item_id: str,
    request: AccountRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> TransferResponse:
    """
    Buy an item through the configured wallet.

    Rejecting the wallet prompt returns user_cancelled and changes nothing.
    """
    return TransferResponse.from_result(await ledger.buy(item_id, request.account))


@router.post("/{item_id}/list", response_model=ListingResponse)
async def list_item(
    item_id: str,
    request: ListRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> ListingResponse:
    result = await ledger.list_for_sale(item_id, request.account, request.price_eth)
    return ListingResponse.from_result(result)


@router.post("/{item_id}/offers-open", response_model=ListingResponse)
async def open_for_offers(
    item_id: str,
    request: OpenForOffersRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> ListingResponse:
    result = await ledger.open_for_offers(item_id, request.account, request.comment)
    return ListingResponse.from_result(result)


@router.post("/{item_id}/cancel", response_model=ListingResponse)
async def cancel_listing(
    item_id: str,
    request: AccountRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> ListingResponse:
    return ListingResponse.from_result(await ledger.cancel_listing(item_id, request.account))


@router.post("/{item_id}/transfer", response_model=TransferResponse)
async def transfer_item(
    item_id: str,
    request: TransferRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> TransferResponse:
    result = await ledger.transfer(item_id, request.account, request.recipient)
    return TransferResponse.from_result(result)


@router.post("/{item_id}/interest", response_model=InterestResponse)
async def mark_interested(
    item_id: str,
    request: InterestRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> InterestResponse:
    result = await ledger.mark_interested(
        item_id, request.account, request.price_eth, request.comment
    )
    return InterestResponse(
        item=ItemModel.from_record(result.item),
        entry=InterestedBuyerModel.from_record(result.entry) if result.entry else None,
    )


@router.delete("/{item_id}/interest", response_model=InterestResponse)
async def remove_interest(
    item_id: str,
    account: str,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> InterestResponse:
    result = await ledger.remove_interest(item_id, account)
    return InterestResponse(item=ItemModel.from_record(result.item), changed=result.changed)
