"""
Account endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from numberzz.api.dependencies import get_ledger
from numberzz.services.achievements import Achievement
from numberzz.services.ledger import Ledger

router = APIRouter(prefix="/accounts", tags=["accounts"])


class AchievementModel(BaseModel):
    id: str
    name: str
    description: str

    @classmethod
    def from_record(cls, achievement: Achievement) -> "AchievementModel":
        return cls(id=achievement.id, name=achievement.name, description=achievement.description)


class AchievementsResponse(BaseModel):
    """
    Every achievement the account holds, plus the one to notify about.

    `earned` is always complete even when several were earned at once.
    """

    account: str
    earned: list[AchievementModel]
    newly_earned: list[AchievementModel]
    notification: AchievementModel | None = None


@router.get("/{address}/achievements", response_model=AchievementsResponse)
async def get_achievements(
    address: str,
    ledger: Annotated[Ledger, Depends(get_ledger)],
    already_unlocked: Annotated[list[str] | None, Query()] = None,
) -> AchievementsResponse:
    report = await ledger.achievements(address, already_unlocked or ())
    return AchievementsResponse(
        account=address.lower(),
        earned=[AchievementModel.from_record(a) for a in report.earned],
        newly_earned=[AchievementModel.from_record(a) for a in report.newly_earned],
        notification=(
            AchievementModel.from_record(report.notification) if report.notification else None
        ),
    )
