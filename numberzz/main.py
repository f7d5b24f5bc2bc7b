import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from numberzz.api import (
    accounts_router,
    admin_router,
    contracts_router,
    eggs_router,
    health_router,
    items_router,
)
from numberzz.config import Settings, settings
from numberzz.db.database import async_session_factory, init_db
from numberzz.models.failure import CollaboratorUnavailable, KnownError, create_unknown_failure
from numberzz.services.ledger import Ledger
from numberzz.store.base import Store
from numberzz.store.memory import MemoryStore
from numberzz.store.sql import SqlStore
from numberzz.wallet.client import JsonRpcWallet, UnconfiguredWallet, Wallet

logger = logging.getLogger(__name__)


async def build_ledger(config: Settings) -> Ledger:
    """Wire the configured store and wallet into a ledger."""
    store: Store
    if config.store_backend == "memory":
        store = MemoryStore()
    else:
        await init_db()
        store = SqlStore(async_session_factory)

    wallet: Wallet
    if config.wallet_rpc_url:
        wallet = JsonRpcWallet(config.wallet_rpc_url, timeout=config.wallet_timeout_seconds)
    else:
        logger.warning("No wallet provider configured; purchases are unavailable")
        wallet = UnconfiguredWallet()

    return Ledger(store, wallet, config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    ledger = await build_ledger(settings)
    try:
        await ledger.ensure_catalogue()
    except CollaboratorUnavailable as e:
        # Serve what we can; seeding is retried on the next start
        logger.error("Catalogue seeding failed: %s", e.detail)
    app.state.ledger = ledger
    yield
    ledger.close()
    await ledger.store.close()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("numberzz"),
    lifespan=lifespan,
)

app.include_router(accounts_router)
app.include_router(admin_router)
app.include_router(contracts_router)
app.include_router(eggs_router)
app.include_router(health_router)
app.include_router(items_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def unknown_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s", type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content=create_unknown_failure(exc).model_dump(mode="json"),
    )
