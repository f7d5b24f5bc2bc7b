"""
Sale contract endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import Field

from numberzz.api.dependencies import get_ledger
from numberzz.api.schemas import AccountRequest, ContractModel, ListingResponse, TransferResponse
from numberzz.models.records import ContractStatus
from numberzz.services.ledger import Ledger

router = APIRouter(prefix="/contracts", tags=["contracts"])


class OfferRequest(AccountRequest):
    price_eth: str = Field(..., description="Offered price in ETH", examples=["0.03"])


class AcceptRequest(AccountRequest):
    offer_index: int = Field(
        ...,
        ge=0,
        description="Position of the chosen offer; offers are never picked automatically",
    )


@router.get("", response_model=list[ContractModel])
async def list_contracts(
    item_id: str,
    ledger: Annotated[Ledger, Depends(get_ledger)],
    status: ContractStatus | None = None,
) -> list[ContractModel]:
    found = await ledger.contracts_for(item_id, status)
    return [ContractModel.from_record(c) for c in found]


@router.get("/{contract_id}", response_model=ContractModel)
async def get_contract(
    contract_id: str,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> ContractModel:
    return ContractModel.from_record(await ledger.get_contract(contract_id))


@router.post("/{contract_id}/offers", response_model=ContractModel)
async def make_offer(
    contract_id: str,
    request: OfferRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> ContractModel:
    contract = await ledger.make_offer(contract_id, request.account, request.price_eth)
    return ContractModel.from_record(contract)


@router.post("/{contract_id}/accept", response_model=TransferResponse)
async def accept_offer(
    contract_id: str,
    request: AcceptRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> TransferResponse:
    """Accept one offer. The seller's payout is reported alongside the transfer."""
    result = await ledger.accept_offer(contract_id, request.account, request.offer_index)
    return TransferResponse.from_result(result)


@router.post("/{contract_id}/cancel", response_model=ListingResponse)
async def cancel_contract(
    contract_id: str,
    request: AccountRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> ListingResponse:
    return ListingResponse.from_result(await ledger.cancel_contract(contract_id, request.account))
