"""
Easter egg discovery endpoint.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from numberzz.api.dependencies import get_ledger
from numberzz.api.schemas import ItemModel, TransferResponse
from numberzz.services.ledger import Ledger

router = APIRouter(prefix="/eggs", tags=["eggs"])


class DiscoverRequest(BaseModel):
    """A search keyword, or an interaction counter and its current count."""

    keyword: str | None = Field(default=None, examples=["nyan"])
    counter: str | None = Field(default=None, examples=["logo_click"])
    count: int = Field(default=0, ge=0)
    account: str | None = Field(
        default=None,
        description="Free eggs are claimed for this account when given",
    )


class DiscoverResponse(BaseModel):
    egg_id: str | None = None
    item: ItemModel | None = None
    newly_unlocked: bool = False
    claim: TransferResponse | None = None


@router.post("/discover", response_model=DiscoverResponse)
async def discover(
    request: DiscoverRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> DiscoverResponse:
    """Fire an easter egg trigger. A trigger that matches nothing returns egg_id null."""
    result = await ledger.discover_easter_egg(
        keyword=request.keyword,
        counter=request.counter,
        count=request.count,
        account=request.account,
    )
    if result.unlock is None:
        return DiscoverResponse()

    claim = TransferResponse.from_result(result.claim) if result.claim else None
    item = claim.item if claim else ItemModel.from_record(result.unlock.item)
    return DiscoverResponse(
        egg_id=result.egg_id,
        item=item,
        newly_unlocked=result.unlock.changed,
        claim=claim,
    )
