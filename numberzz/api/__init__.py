from numberzz.api.accounts import router as accounts_router
from numberzz.api.admin import router as admin_router
from numberzz.api.contracts import router as contracts_router
from numberzz.api.eggs import router as eggs_router
from numberzz.api.health import router as health_router
from numberzz.api.items import router as items_router

__all__ = [
    "accounts_router",
    "admin_router",
    "contracts_router",
    "eggs_router",
    "health_router",
    "items_router",
]
