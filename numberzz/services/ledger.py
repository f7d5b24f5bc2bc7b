"""
Ownership ledger.

Decides whether a requested mutation is legal and applies it through the
store's conditional update. The flow for every write:

1. validate input (ValidationFailed, no store call)
2. check the latest known snapshot, re-reading the key when unsure
3. for payments, get a transaction hash from the wallet first
4. send the write as update_where(key, predicate, patch)
5. a refused write re-reads the row and raises PreconditionFailed
   with the specific reason
6. a confirmed write overwrites the snapshot and is relayed to other
   viewers

INVARIANT: Preconditions live in the write's predicate. The cached
snapshot only decides whether a write is worth attempting.
"""

import asyncio
import logging
import secrets
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from functools import partial
from typing import Any, TypeVar, cast

from numberzz.config import OFFER_APPEND_ATTEMPTS, SELLER_PAYOUT_RATIO, Settings
from numberzz.config import settings as default_settings
from numberzz.models.failure import (
    CollaboratorUnavailable,
    PreconditionFailed,
    Reason,
    ValidationFailed,
)
from numberzz.models.records import (
    Certificate,
    ContractStatus,
    InterestedBuyer,
    Item,
    Offer,
    SaleContract,
    SaleMode,
    Table,
    format_price,
    from_row,
    normalize_address,
    now_iso,
    now_ms,
    parse_price,
    to_row,
)
from numberzz.services import contracts
from numberzz.services.achievements import AchievementReport, evaluate
from numberzz.services.browse import ItemFilter, ItemSort, Page, paginate, search
from numberzz.services.catalogue import (
    catalogue_position,
    egg_for_interaction,
    egg_for_keyword,
    generate_catalogue,
)
from numberzz.store.base import CountOf, Row, Store, with_timeout
from numberzz.sync.propagator import SyncPropagator
from numberzz.sync.snapshot import Snapshot
from numberzz.wallet.client import Wallet

logger = logging.getLogger(__name__)

T = TypeVar("T")

ItemCheck = Callable[[Item], None]

# Listing columns always change together
LISTING_CLEARED: dict[str, Any] = {
    "for_sale": False,
    "sale_price": None,
    "active_contract_id": None,
}


def simulated_tx_hash() -> str:
    """Reference for transfers that move no funds (free claims, gifts, offers)."""
    return "0x" + secrets.token_hex(32)


def _certificate_id(item_id: str) -> str:
    return f"cert_{item_id}_{now_ms()}_{secrets.token_hex(4)}"


def _as_item(row: Row) -> Item:
    return cast(Item, from_row(Table.ITEMS, row))


def _as_contract(row: Row) -> SaleContract:
    return cast(SaleContract, from_row(Table.SALE_CONTRACTS, row))


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class Transfer:
    """A committed ownership change and its certificate."""

    item: Item
    certificate: Certificate
    contract: SaleContract | None = None
    price_eth: str | None = None
    payee: str | None = None
    payout_eth: str | None = None


@dataclass(frozen=True)
class Listing:
    item: Item
    contract: SaleContract


@dataclass(frozen=True)
class Unlock:
    item: Item
    changed: bool


@dataclass(frozen=True)
class Discovery:
    """Outcome of an easter-egg trigger. egg_id is None when nothing matched."""

    egg_id: str | None
    unlock: Unlock | None = None
    claim: Transfer | None = None


@dataclass(frozen=True)
class Interest:
    item: Item
    entry: InterestedBuyer | None
    changed: bool = True


# =============================================================================
# PRECONDITIONS
# =============================================================================


def _check_claim(item: Item) -> None:
    if item.owner is not None:
        raise PreconditionFailed(Reason.ALREADY_CLAIMED, detail=item.id)
    if not item.is_free_to_claim:
        raise PreconditionFailed(Reason.NOT_FREE, detail=item.id)


def _check_buy(item: Item, buyer: str) -> None:
    if not item.unlocked:
        raise PreconditionFailed(Reason.LOCKED, detail=item.id)
    if item.is_owned_by(buyer):
        raise PreconditionFailed(Reason.OWN_ITEM, detail=item.id)
    if item.owner is None:
        if item.is_free_to_claim:
            raise PreconditionFailed(Reason.FREE_CLAIM_ONLY, detail=item.id)
        return
    if not (item.for_sale and item.sale_price is not None):
        raise PreconditionFailed(Reason.ALREADY_OWNED, detail=item.id)


def _check_owner(item: Item, owner: str) -> None:
    if not item.is_owned_by(owner):
        raise PreconditionFailed(Reason.NOT_OWNER, detail=item.id)


def _check_listable(item: Item, seller: str) -> None:
    _check_owner(item, seller)
    if item.active_contract_id is not None:
        raise PreconditionFailed(Reason.LISTING_ACTIVE, detail=item.active_contract_id)


def _check_listed(item: Item, seller: str) -> None:
    _check_owner(item, seller)
    if item.active_contract_id is None:
        raise PreconditionFailed(Reason.NOT_LISTED, detail=item.id)


def _check_live_contract(item: Item, seller: str, contract_id: str) -> None:
    # The contract only speaks for the item while its seller owns it and it holds the marker
    if not item.is_owned_by(seller) or item.active_contract_id != contract_id:
        raise PreconditionFailed(Reason.STALE_CONTRACT, detail=contract_id)


def _check_transferable(item: Item, owner: str) -> None:
    _check_owner(item, owner)
    if item.active_contract_id is not None:
        raise PreconditionFailed(Reason.LISTING_ACTIVE, detail=item.active_contract_id)


def _check_interest(item: Item, address: str) -> None:
    if not item.unlocked:
        raise PreconditionFailed(Reason.LOCKED, detail=item.id)
    if item.is_owned_by(address):
        raise PreconditionFailed(Reason.OWN_ITEM, detail=item.id)


# =============================================================================
# LEDGER
# =============================================================================


class Ledger:
    """
    One viewer's gateway to the shared catalogue.

    Operations on the same item are serialized by a per-item lock. Across
    viewers the store's conditional writes decide who wins.
    """

    def __init__(
        self,
        store: Store,
        wallet: Wallet,
        settings: Settings = default_settings,
        propagator: SyncPropagator | None = None,
    ):
        self.store = store
        self.wallet = wallet
        self.settings = settings
        self.propagator = propagator or SyncPropagator(store, Snapshot())
        self.snapshot = self.propagator.snapshot
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.propagator.start()

    def close(self) -> None:
        self.propagator.stop()

    @property
    def bank_address(self) -> str:
        return self.settings.bank_wallet_address.lower()

    # -------------------------------------------------------------------------
    # Store plumbing
    # -------------------------------------------------------------------------

    async def _store_call(
        self,
        awaitable: Awaitable[T],
        table: Table | None = None,
        key: Sequence[Any] | None = None,
    ) -> T:
        """
        Await a store call under the store deadline.

        When the call names a key, a failure or timeout leaves that key's
        state unknown, so it is re-read before the error propagates.
        """
        try:
            return cast(
                T,
                await with_timeout(awaitable, self.settings.store_timeout_seconds, self.store.name),
            )
        except CollaboratorUnavailable:
            if table is not None and key is not None:
                await self._recover(table, key)
            raise

    async def _recover(self, table: Table, key: Sequence[Any]) -> None:
        try:
            await with_timeout(
                self.propagator.refresh(table, key),
                self.settings.store_timeout_seconds,
                self.store.name,
            )
        except CollaboratorUnavailable as e:
            logger.warning("Dropping %s %s from snapshot: %s", table.value, tuple(key), e.detail)
            self.snapshot.forget(table, key)

    async def _fetch(self, table: Table, key: Sequence[Any]) -> Row | None:
        row = await self._store_call(self.store.get(table, key))
        self.snapshot.apply_authoritative(table, key, row)
        return row

    async def _refresh_item(self, item_id: str) -> Item:
        row = await self._fetch(Table.ITEMS, (item_id,))
        if row is None:
            raise PreconditionFailed(Reason.NOT_FOUND, detail=item_id)
        return _as_item(row)

    async def _known_item(self, item_id: str) -> Item:
        key = (item_id,)
        row = self.snapshot.get(Table.ITEMS, key)
        if row is None or self.snapshot.is_provisional(Table.ITEMS, key):
            return await self._refresh_item(item_id)
        return _as_item(row)

    async def _refresh_contract(self, contract_id: str) -> SaleContract:
        row = await self._fetch(Table.SALE_CONTRACTS, (contract_id,))
        if row is None:
            raise PreconditionFailed(Reason.NOT_FOUND, detail=contract_id)
        return _as_contract(row)

    async def _known_contract(self, contract_id: str) -> SaleContract:
        row = self.snapshot.get(Table.SALE_CONTRACTS, (contract_id,))
        if row is None:
            return await self._refresh_contract(contract_id)
        return _as_contract(row)

    async def _validated_item(self, item_id: str, check: ItemCheck) -> Item:
        """Run `check` against the cached item, falling back to the stored row."""
        item = await self._known_item(item_id)
        try:
            check(item)
        except PreconditionFailed:
            # Cached copy may be stale; the stored row decides
            item = await self._refresh_item(item_id)
            check(item)
        return item

    async def _refusal(self, item_id: str, check: ItemCheck) -> PreconditionFailed:
        """Re-read an item after a refused write and name the reason."""
        item = await self._refresh_item(item_id)
        try:
            check(item)
        except PreconditionFailed as e:
            logger.warning("Write on %s refused: %s", item_id, e.reason.value if e.reason else "")
            return e
        logger.warning("Write on %s refused but the re-read row passes its checks", item_id)
        return PreconditionFailed(Reason.CONFLICT, detail=item_id)

    def _propose(self, item: Item, patch: dict[str, Any]) -> None:
        self.snapshot.propose(Table.ITEMS, (item.id,), {**to_row(item), **patch})

    async def _write_item(
        self,
        item_id: str,
        where: dict[str, Any],
        patch: dict[str, Any],
    ) -> Item | None:
        key = (item_id,)
        row = await self._store_call(
            self.store.update_where(Table.ITEMS, key, where, patch), Table.ITEMS, key
        )
        if row is None:
            return None
        await self.propagator.confirm(Table.ITEMS, key, row)
        return _as_item(row)

    async def _insert(self, table: Table, row: Row, key: Sequence[Any]) -> None:
        inserted = await self._store_call(self.store.insert(table, row), table, key)
        if not inserted:
            raise PreconditionFailed(Reason.CONFLICT, detail=f"{table.value} {tuple(key)}")
        await self.propagator.confirm(table, key, row)

    async def _issue_certificate(self, item_id: str, owner: str, tx_hash: str) -> Certificate:
        certificate = Certificate(
            id=_certificate_id(item_id),
            item_id=item_id,
            owner=owner,
            tx_hash=tx_hash,
            issued_at=now_iso(),
        )
        await self._insert(Table.CERTIFICATES, to_row(certificate), (certificate.id,))
        return certificate

    async def _swap_contract(
        self,
        contract: SaleContract,
        step: Callable[[SaleContract], SaleContract],
    ) -> SaleContract:
        """
        Apply a state-machine step with a compare-and-swap on version.

        A lost swap re-reads the contract and re-runs the step, which
        raises once the contract is no longer in a state that allows it.

        Raises:
            PreconditionFailed: conflict when every attempt lost the swap
        """
        key = (contract.id,)
        for attempt in range(1, OFFER_APPEND_ATTEMPTS + 1):
            after = step(contract)
            row = await self._store_call(
                self.store.update_where(
                    Table.SALE_CONTRACTS,
                    key,
                    contracts.guard(contract),
                    contracts.change_patch(after),
                ),
                Table.SALE_CONTRACTS,
                key,
            )
            if row is not None:
                await self.propagator.confirm(Table.SALE_CONTRACTS, key, row)
                return _as_contract(row)
            logger.info("Contract %s changed during attempt %d", contract.id, attempt)
            contract = await self._refresh_contract(contract.id)
        raise PreconditionFailed(Reason.CONFLICT, detail=contract.id)

    async def _pay(self, sender: str, to: str, amount: Decimal) -> str:
        """Ask the wallet to submit a payment. Nothing has been written yet."""
        tx_hash = await with_timeout(
            self.wallet.send_transaction(sender, to, amount),
            self.settings.wallet_timeout_seconds,
            "wallet",
        )
        return str(tx_hash)

    # -------------------------------------------------------------------------
    # Claims and unlocks
    # -------------------------------------------------------------------------

    async def claim_free_item(self, item_id: str, claimer: str) -> Transfer:
        """
        Claim a free easter egg.

        Exactly one of any number of concurrent claimants wins; the others
        get already_claimed.

        Raises:
            PreconditionFailed: not_found, already_claimed or not_free
        """
        claimer = normalize_address(claimer)
        async with self._locks[item_id]:
            item = await self._validated_item(item_id, _check_claim)
            patch = {"owner": claimer, "unlocked": True, "is_free_to_claim": False}
            self._propose(item, patch)
            claimed = await self._write_item(
                item_id, {"owner": None, "is_free_to_claim": True}, patch
            )
            if claimed is None:
                raise await self._refusal(item_id, _check_claim)
            certificate = await self._issue_certificate(item_id, claimer, simulated_tx_hash())

        logger.info("Item %s claimed by %s", item_id, claimer)
        return Transfer(item=claimed, certificate=certificate, price_eth="0")

    async def unlock_item(self, item_id: str) -> Unlock:
        """Unlock an item. Already unlocked is reported as success with changed=False."""
        async with self._locks[item_id]:
            unlocked = await self._write_item(item_id, {"unlocked": False}, {"unlocked": True})
            if unlocked is None:
                return Unlock(item=await self._refresh_item(item_id), changed=False)

        logger.info("Item %s unlocked", item_id)
        return Unlock(item=unlocked, changed=True)

    async def discover_easter_egg(
        self,
        keyword: str | None = None,
        counter: str | None = None,
        count: int = 0,
        account: str | None = None,
    ) -> Discovery:
        """
        Resolve a search keyword or interaction count to an easter egg.

        The egg is unlocked; a free egg is also claimed for `account`
        when one is given.
        """
        if account is not None:
            account = normalize_address(account)
        if keyword is not None:
            egg_id = egg_for_keyword(keyword)
        elif counter is not None:
            egg_id = egg_for_interaction(counter, count)
        else:
            raise ValidationFailed("A keyword or an interaction counter is required")

        if egg_id is None:
            return Discovery(egg_id=None)

        unlock = await self.unlock_item(egg_id)
        claim = None
        if account is not None and unlock.item.is_free_to_claim and unlock.item.owner is None:
            claim = await self.claim_free_item(egg_id, account)
        return Discovery(egg_id=egg_id, unlock=unlock, claim=claim)

    # -------------------------------------------------------------------------
    # Purchases and transfers
    # -------------------------------------------------------------------------

    async def buy(self, item_id: str, buyer: str) -> Transfer:
        """
        Buy an unowned item at its base price, or a listed item at its sale price.

        The wallet is asked first. If the user rejects the prompt nothing is
        written. Unlisted purchases pay the marketplace bank; listed ones
        pay the seller and complete the listing's contract.

        Raises:
            PreconditionFailed: not_found, locked, own_item, free_claim_only
                or already_owned
            UserCancelled: The wallet prompt was rejected
        """
        buyer = normalize_address(buyer)
        check = partial(_check_buy, buyer=buyer)

        async with self._locks[item_id]:
            # Money moves before the write, so price and payee come from the stored row
            item = await self._refresh_item(item_id)
            check(item)
            listed = item.for_sale and item.sale_price is not None and item.owner is not None
            price = item.effective_price()
            payee = item.owner if listed and item.owner else self.bank_address

            tx_hash = await self._pay(buyer, payee, price)

            if listed:
                where: dict[str, Any] = {
                    "owner": item.owner,
                    "for_sale": True,
                    "sale_price": item.sale_price,
                    "active_contract_id": item.active_contract_id,
                }
            else:
                where = {"owner": None, "unlocked": True, "is_free_to_claim": False}
            patch = {"owner": buyer, **LISTING_CLEARED}

            self._propose(item, patch)
            bought = await self._write_item(item_id, where, patch)
            if bought is None:
                logger.warning("Payment %s for %s sent but the item changed first", tx_hash, item_id)
                raise await self._refusal(item_id, check)

            contract = None
            if listed and item.active_contract_id is not None:
                purchase = Offer(buyer=buyer, price_eth=format_price(price), timestamp=now_ms())
                contract = await self._swap_contract(
                    await self._refresh_contract(item.active_contract_id),
                    partial(contracts.close, target=ContractStatus.COMPLETED, accepted_offer=purchase),
                )
            certificate = await self._issue_certificate(item_id, buyer, tx_hash)

        logger.info("Item %s bought by %s for %s ETH", item_id, buyer, format_price(price))
        return Transfer(
            item=bought,
            certificate=certificate,
            contract=contract,
            price_eth=format_price(price),
            payee=payee,
        )

    async def transfer(self, item_id: str, owner: str, recipient: str) -> Transfer:
        """
        Gift an item to another account.

        Raises:
            PreconditionFailed: not_owner, own_item, or listing_active while
                a contract is open
        """
        owner = normalize_address(owner)
        recipient = normalize_address(recipient)
        if owner == recipient:
            raise PreconditionFailed(Reason.OWN_ITEM, detail=item_id)
        check = partial(_check_transferable, owner=owner)

        async with self._locks[item_id]:
            item = await self._validated_item(item_id, check)
            patch = {"owner": recipient, "for_sale": False, "sale_price": None}
            self._propose(item, patch)
            moved = await self._write_item(
                item_id, {"owner": owner, "active_contract_id": None}, patch
            )
            if moved is None:
                raise await self._refusal(item_id, check)
            certificate = await self._issue_certificate(item_id, recipient, simulated_tx_hash())

        logger.info("Item %s transferred from %s to %s", item_id, owner, recipient)
        return Transfer(item=moved, certificate=certificate, price_eth="0")

    # -------------------------------------------------------------------------
    # Sale contracts
    # -------------------------------------------------------------------------

    async def _open_contract(
        self,
        item_id: str,
        seller: str,
        mode: SaleMode,
        price: Decimal | None,
        comment: str | None,
    ) -> Listing:
        check = partial(_check_listable, seller=seller)
        async with self._locks[item_id]:
            item = await self._validated_item(item_id, check)
            contract = contracts.open_contract(item_id, seller, mode, price, comment)
            await self._insert(Table.SALE_CONTRACTS, to_row(contract), (contract.id,))

            patch: dict[str, Any] = {"active_contract_id": contract.id}
            if mode is SaleMode.FIXED_PRICE:
                patch.update(for_sale=True, sale_price=contract.price_eth)
            self._propose(item, patch)
            listed = await self._write_item(
                item_id, {"owner": seller, "active_contract_id": None}, patch
            )
            if listed is None:
                # The item never pointed at this contract; close it so it is not left active
                await self._swap_contract(
                    contract, partial(contracts.close, target=ContractStatus.CANCELLED)
                )
                raise await self._refusal(item_id, check)

        logger.info("Item %s opened for %s by %s (%s)", item_id, mode.value, seller, contract.id)
        return Listing(item=listed, contract=contract)

    async def list_for_sale(self, item_id: str, seller: str, price_eth: str | Decimal) -> Listing:
        """
        List an owned item at a fixed price.

        Raises:
            ValidationFailed: Price not positive
            PreconditionFailed: not_owner, or listing_active if a contract
                is already open for the item
        """
        seller = normalize_address(seller)
        price = parse_price(price_eth)
        return await self._open_contract(item_id, seller, SaleMode.FIXED_PRICE, price, None)

    async def open_for_offers(
        self, item_id: str, seller: str, comment: str | None = None
    ) -> Listing:
        """Open a buy-offer contract. The item is not marked for sale."""
        seller = normalize_address(seller)
        return await self._open_contract(item_id, seller, SaleMode.BUY_OFFER, None, comment)

    async def _clear_listing(self, item: Item, seller: str, check: ItemCheck) -> Item:
        cleared = await self._write_item(
            item.id,
            {"owner": seller, "active_contract_id": item.active_contract_id},
            dict(LISTING_CLEARED),
        )
        if cleared is None:
            raise await self._refusal(item.id, check)
        return cleared

    async def cancel_listing(self, item_id: str, seller: str) -> Listing:
        """
        Withdraw the item's active contract.

        Raises:
            PreconditionFailed: not_owner for someone else's item,
                not_listed when nothing is open
        """
        seller = normalize_address(seller)
        check = partial(_check_listed, seller=seller)

        async with self._locks[item_id]:
            item = await self._validated_item(item_id, check)
            contract_id = cast(str, item.active_contract_id)
            cleared = await self._clear_listing(item, seller, check)
            contract = await self._swap_contract(
                await self._refresh_contract(contract_id),
                partial(contracts.close, target=ContractStatus.CANCELLED),
            )

        logger.info("Listing %s on %s cancelled by %s", contract_id, item_id, seller)
        return Listing(item=cleared, contract=contract)

    async def cancel_contract(self, contract_id: str, seller: str) -> Listing:
        """
        Cancel a contract by id.

        Raises:
            PreconditionFailed: not_seller, illegal_transition for a closed
                contract, stale_contract if the seller no longer owns the item
        """
        seller = normalize_address(seller)
        known = await self._known_contract(contract_id)

        async with self._locks[known.item_id]:
            contract = await self._refresh_contract(contract_id)
            if contract.seller != seller:
                raise PreconditionFailed(Reason.NOT_SELLER, detail=contract_id)
            contracts.ensure_transition(contract, ContractStatus.CANCELLED)

            item = await self._refresh_item(contract.item_id)
            if not item.is_owned_by(seller):
                raise PreconditionFailed(Reason.STALE_CONTRACT, detail=contract_id)
            if item.active_contract_id == contract.id:
                item = await self._clear_listing(
                    item,
                    seller,
                    partial(_check_live_contract, seller=seller, contract_id=contract.id),
                )
            contract = await self._swap_contract(
                contract, partial(contracts.close, target=ContractStatus.CANCELLED)
            )

        logger.info("Contract %s cancelled by %s", contract_id, seller)
        return Listing(item=item, contract=contract)

    async def make_offer(
        self, contract_id: str, buyer: str, price_eth: str | Decimal
    ) -> SaleContract:
        """
        Append an offer to an active buy-offer contract.

        Concurrent offers all land: a lost version swap re-reads the
        contract and appends again.

        Raises:
            ValidationFailed: Price not positive, or a fixed-price contract
            PreconditionFailed: not_found, illegal_transition, own_item,
                stale_contract when the item no longer carries the contract,
                conflict under sustained contention
        """
        buyer = normalize_address(buyer)
        price = parse_price(price_eth)
        known = await self._known_contract(contract_id)

        async with self._locks[known.item_id]:
            contract = await self._refresh_contract(contract_id)
            contracts.ensure_active(contract)
            item = await self._refresh_item(contract.item_id)
            _check_live_contract(item, seller=contract.seller, contract_id=contract.id)

            updated = await self._swap_contract(
                contract, partial(contracts.append_offer, buyer=buyer, price_eth=price)
            )

        logger.info("Offer of %s ETH on %s from %s", format_price(price), contract_id, buyer)
        return updated

    async def accept_offer(self, contract_id: str, seller: str, offer_index: int) -> Transfer:
        """
        Accept one offer and transfer the item to its buyer.

        The seller must pick the offer explicitly; offers are never
        auto-selected.

        Raises:
            PreconditionFailed: not_seller, illegal_transition,
                offer_not_found, stale_contract
        """
        seller = normalize_address(seller)
        known = await self._known_contract(contract_id)

        async with self._locks[known.item_id]:
            contract = await self._refresh_contract(contract_id)
            if contract.seller != seller:
                raise PreconditionFailed(Reason.NOT_SELLER, detail=contract_id)
            contracts.ensure_transition(contract, ContractStatus.COMPLETED)
            offer = contracts.offer_at(contract, offer_index)

            check = partial(_check_live_contract, seller=seller, contract_id=contract.id)
            item = await self._refresh_item(contract.item_id)
            check(item)

            patch = {"owner": offer.buyer, **LISTING_CLEARED}
            self._propose(item, patch)
            moved = await self._write_item(
                item.id, {"owner": seller, "active_contract_id": contract.id}, patch
            )
            if moved is None:
                raise await self._refusal(item.id, check)

            contract = await self._swap_contract(
                contract,
                partial(contracts.close, target=ContractStatus.COMPLETED, accepted_offer=offer),
            )
            certificate = await self._issue_certificate(item.id, offer.buyer, simulated_tx_hash())

        payout = format_price(Decimal(offer.price_eth) * SELLER_PAYOUT_RATIO)
        logger.info(
            "Offer %d on %s accepted: %s -> %s for %s ETH",
            offer_index,
            contract_id,
            seller,
            offer.buyer,
            offer.price_eth,
        )
        return Transfer(
            item=moved,
            certificate=certificate,
            contract=contract,
            price_eth=offer.price_eth,
            payee=seller,
            payout_eth=payout,
        )

    # -------------------------------------------------------------------------
    # Interest
    # -------------------------------------------------------------------------

    async def _recount_interest(self, item_id: str) -> Item:
        counted = await self._write_item(
            item_id,
            {},
            {"interested_count": CountOf(Table.INTERESTED_BUYERS, {"item_id": item_id})},
        )
        if counted is None:
            raise PreconditionFailed(Reason.NOT_FOUND, detail=item_id)
        return counted

    async def mark_interested(
        self,
        item_id: str,
        address: str,
        price_eth: str | Decimal,
        comment: str | None = None,
    ) -> Interest:
        """
        Record or replace an address's interest in an item.

        interested_count is recomputed from the set in the same store step,
        so repeating the call never inflates it.
        """
        address = normalize_address(address)
        price = parse_price(price_eth)
        check = partial(_check_interest, address=address)

        async with self._locks[item_id]:
            await self._validated_item(item_id, check)
            entry = InterestedBuyer(
                item_id=item_id,
                address=address,
                price_eth=format_price(price),
                timestamp=now_ms(),
                comment=comment,
            )
            key = (item_id, address)
            rows = await self._store_call(
                self.store.upsert(Table.INTERESTED_BUYERS, [to_row(entry)]),
                Table.INTERESTED_BUYERS,
                key,
            )
            await self.propagator.confirm(Table.INTERESTED_BUYERS, key, rows[0])
            counted = await self._recount_interest(item_id)

        logger.info("%s interested in %s at %s ETH", address, item_id, entry.price_eth)
        return Interest(item=counted, entry=entry)

    async def remove_interest(self, item_id: str, address: str) -> Interest:
        """Withdraw interest. Removing an absent entry reports changed=False."""
        address = normalize_address(address)
        key = (item_id, address)

        async with self._locks[item_id]:
            removed = await self._store_call(
                self.store.delete(Table.INTERESTED_BUYERS, {"item_id": item_id, "address": address}),
                Table.INTERESTED_BUYERS,
                key,
            )
            await self.propagator.confirm(Table.INTERESTED_BUYERS, key, None)
            counted = await self._recount_interest(item_id)

        return Interest(item=counted, entry=None, changed=removed > 0)

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    async def ensure_catalogue(self) -> int:
        """
        Seed the store with the generated catalogue if it holds no items.

        Rows are inserted one by one and existing keys are skipped, so a
        concurrent seeder never overwrites a claim. Returns rows inserted.
        """
        existing = await self._store_call(self.store.load_all(Table.ITEMS))
        if existing:
            return 0

        seeded = 0
        for item in generate_catalogue():
            if await self._store_call(self.store.insert(Table.ITEMS, to_row(item))):
                seeded += 1
        logger.info("Seeded %d catalogue items", seeded)
        return seeded

    async def reset(self, actor: str) -> int:
        """
        Wipe every record and reseed the catalogue. Admin only.

        A claim racing the reset is either wiped with everything else or
        refused because its item is gone.

        Raises:
            PreconditionFailed: not_admin
        """
        actor = normalize_address(actor)
        if actor != self.settings.effective_admin_address:
            raise PreconditionFailed(Reason.NOT_ADMIN, detail=actor)

        for table in (
            Table.INTERESTED_BUYERS,
            Table.CERTIFICATES,
            Table.SALE_CONTRACTS,
            Table.ITEMS,
        ):
            removed = await self._store_call(self.store.delete(table, {}))
            logger.warning("Reset by %s removed %d %s rows", actor, removed, table.value)

        self.snapshot.clear()
        return await self.ensure_catalogue()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_item(self, item_id: str) -> Item:
        return await self._refresh_item(item_id)

    async def get_contract(self, contract_id: str) -> SaleContract:
        return await self._refresh_contract(contract_id)

    async def list_items(self) -> list[Item]:
        """Every item in catalogue order, refreshed from the store."""
        rows = await self._store_call(self.store.load_all(Table.ITEMS))
        for row in rows:
            self.snapshot.apply_authoritative(Table.ITEMS, (row["id"],), row)
        items = [_as_item(row) for row in rows]
        items.sort(key=lambda item: catalogue_position(item.id))
        return items

    async def browse(
        self,
        query: str | None = None,
        item_filter: ItemFilter = ItemFilter.ALL,
        sort: ItemSort = ItemSort.NONE,
        account: str | None = None,
        page: int = 1,
    ) -> Page:
        if account:
            account = normalize_address(account)
        found = search(await self.list_items(), query, item_filter, sort, account)
        return paginate(found, page, self.settings.items_per_page)

    async def history(self, item_id: str) -> list[Certificate]:
        """Ownership history: the item's certificates oldest first."""
        rows = await self._store_call(
            self.store.select(Table.CERTIFICATES, {"item_id": item_id})
        )
        certificates = [cast(Certificate, from_row(Table.CERTIFICATES, row)) for row in rows]
        certificates.sort(key=lambda c: (c.issued_at, c.id))
        return certificates

    async def interested(self, item_id: str) -> list[InterestedBuyer]:
        rows = await self._store_call(
            self.store.select(Table.INTERESTED_BUYERS, {"item_id": item_id})
        )
        entries = [cast(InterestedBuyer, from_row(Table.INTERESTED_BUYERS, row)) for row in rows]
        entries.sort(key=lambda e: e.timestamp)
        return entries

    async def contracts_for(
        self, item_id: str, status: ContractStatus | None = None
    ) -> list[SaleContract]:
        where: dict[str, Any] = {"item_id": item_id}
        if status is not None:
            where["status"] = status.value
        rows = await self._store_call(self.store.select(Table.SALE_CONTRACTS, where))
        found = [_as_contract(row) for row in rows]
        found.sort(key=lambda c: (c.created_at, c.id))
        return found

    async def achievements(
        self, account: str, already_unlocked: Iterable[str] = ()
    ) -> AchievementReport:
        account = normalize_address(account)
        return evaluate(await self.list_items(), account, already_unlocked)
