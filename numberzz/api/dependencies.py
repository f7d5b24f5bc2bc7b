from fastapi import Request

from numberzz.models.failure import CollaboratorUnavailable
from numberzz.services.ledger import Ledger


def get_ledger(request: Request) -> Ledger:
    """The ledger built at startup. Overridden in tests."""
    ledger: Ledger | None = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise CollaboratorUnavailable("ledger", detail="not initialised")
    return ledger
