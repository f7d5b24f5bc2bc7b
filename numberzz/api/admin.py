"""
Administrative endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from numberzz.api.dependencies import get_ledger
from numberzz.api.schemas import AccountRequest
from numberzz.services.ledger import Ledger

router = APIRouter(prefix="/admin", tags=["admin"])


class ResetResponse(BaseModel):
    reset: bool
    items_seeded: int


@router.post("/reset", response_model=ResetResponse)
async def reset(
    request: AccountRequest,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> ResetResponse:
    """
    Delete every record and reseed the catalogue.

    Only the administrator account may do this.
    """
    seeded = await ledger.reset(request.account)
    return ResetResponse(reset=True, items_seeded=seeded)
