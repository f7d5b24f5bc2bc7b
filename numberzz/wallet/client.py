"""
Wallet capability.

The ledger never settles payments itself. It asks a wallet provider to
submit a transaction and treats the returned transaction hash as the
receipt. Providers speak EIP-1193 style JSON-RPC; a user rejecting the
prompt comes back as error code 4001.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from numberzz.models.failure import (
    CollaboratorTimeout,
    CollaboratorUnavailable,
    UserCancelled,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

WEI_PER_ETH = 10**18

# EIP-1193 provider error codes
USER_REJECTED = 4001
UNSUPPORTED_METHOD = 4200


def eth_to_wei(amount: Decimal | str) -> int:
    """
    Convert an ETH amount to wei, truncating beyond 18 decimals.

    Raises:
        ValidationFailed: If the amount is negative
    """
    value = Decimal(str(amount))
    if value < 0:
        raise ValidationFailed("Amount must not be negative", detail=str(amount))
    return int(value * WEI_PER_ETH)


def eth_to_hex_wei(amount: Decimal | str) -> str:
    """ETH amount as a 0x-prefixed hex wei quantity."""
    return hex(eth_to_wei(amount))


def hex_wei_to_eth(quantity: str) -> Decimal:
    """0x-prefixed hex wei quantity as ETH."""
    return Decimal(int(quantity, 16)) / WEI_PER_ETH


class Wallet(ABC):
    """Consumed wallet capability. Every call may be rejected or fail."""

    @abstractmethod
    async def get_accounts(self) -> list[str]: ...

    @abstractmethod
    async def get_balance(self, address: str) -> Decimal: ...

    @abstractmethod
    async def get_chain_id(self) -> str: ...

    @abstractmethod
    async def switch_chain(self, chain_id: str) -> None: ...

    @abstractmethod
    async def send_transaction(self, sender: str, to: str, value_eth: Decimal) -> str:
        """Submit a payment. Returns the transaction hash."""


class UnconfiguredWallet(Wallet):
    """Stand-in when no provider is configured: every call is unavailable."""

    def _unavailable(self) -> CollaboratorUnavailable:
        return CollaboratorUnavailable("wallet", detail="no wallet provider configured")

    async def get_accounts(self) -> list[str]:
        raise self._unavailable()

    async def get_balance(self, address: str) -> Decimal:
        raise self._unavailable()

    async def get_chain_id(self) -> str:
        raise self._unavailable()

    async def switch_chain(self, chain_id: str) -> None:
        raise self._unavailable()

    async def send_transaction(self, sender: str, to: str, value_eth: Decimal) -> str:
        raise self._unavailable()


class RpcError(Exception):
    """A JSON-RPC error object returned by the provider."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"RPC error {code}: {message}")


class JsonRpcWallet(Wallet):
    """Wallet provider reached over HTTP JSON-RPC."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = client
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            if self._client is not None:
                response = await self._client.post(self.rpc_url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.rpc_url, json=payload)
        except httpx.TimeoutException as e:
            raise CollaboratorTimeout("wallet", self.timeout) from e
        except httpx.RequestError as e:
            logger.error("Wallet provider unreachable for %s: %s", method, e)
            raise CollaboratorUnavailable("wallet", detail=str(e)) from e

        if not response.is_success:
            raise CollaboratorUnavailable("wallet", detail=f"HTTP {response.status_code}")

        body = response.json()
        error = body.get("error")
        if error:
            raise RpcError(int(error.get("code", -32603)), str(error.get("message", "")))
        return body.get("result")

    async def _request(self, method: str, params: list[Any]) -> Any:
        """Call a method, mapping provider errors onto the failure taxonomy."""
        try:
            return await self._call(method, params)
        except RpcError as e:
            if e.code == USER_REJECTED:
                logger.info("User rejected %s", method)
                raise UserCancelled(detail=e.message) from e
            logger.warning("Wallet %s failed: %s", method, e)
            raise CollaboratorUnavailable("wallet", detail=str(e)) from e

    async def get_accounts(self) -> list[str]:
        try:
            accounts = await self._call("eth_requestAccounts", [])
        except RpcError as e:
            if e.code == USER_REJECTED:
                raise UserCancelled(detail=e.message) from e
            # Some providers only implement the passive method
            accounts = await self._request("eth_accounts", [])
        return [str(a).lower() for a in accounts or []]

    async def get_balance(self, address: str) -> Decimal:
        quantity = await self._request("eth_getBalance", [address, "latest"])
        return hex_wei_to_eth(quantity)

    async def get_chain_id(self) -> str:
        return str(await self._request("eth_chainId", []))

    async def switch_chain(self, chain_id: str) -> None:
        await self._request("wallet_switchEthereumChain", [{"chainId": chain_id}])

    async def send_transaction(self, sender: str, to: str, value_eth: Decimal) -> str:
        tx = {"from": sender, "to": to, "value": eth_to_hex_wei(value_eth)}
        tx_hash = await self._request("eth_sendTransaction", [tx])
        logger.info("Submitted %s ETH from %s to %s: %s", value_eth, sender, to, tx_hash)
        return str(tx_hash)


@dataclass(frozen=True)
class WalletConnection:
    """Outcome of connecting a wallet."""

    account: str
    balance: Decimal | None
    chain_id: str | None
    network_correct: bool


async def connect_wallet(wallet: Wallet, expected_chain_id: str) -> WalletConnection:
    """
    Connect to a wallet and move it onto the expected network.

    Balance and chain lookups are best-effort. A refused network switch
    leaves the connection marked as on the wrong network rather than
    failing the whole connection.

    Raises:
        ValidationFailed: If the wallet exposes no account
        UserCancelled: If the user rejects the account request
        CollaboratorUnavailable: If the wallet cannot be reached
    """
    accounts = await wallet.get_accounts()
    if not accounts:
        raise ValidationFailed("No account available in the wallet")
    account = accounts[0]

    balance: Decimal | None = None
    try:
        balance = await wallet.get_balance(account)
    except CollaboratorUnavailable as e:
        logger.warning("Could not read balance for %s: %s", account, e.detail)

    chain_id: str | None = None
    try:
        chain_id = await wallet.get_chain_id()
    except CollaboratorUnavailable as e:
        logger.warning("Could not read chain id: %s", e.detail)

    network_correct = chain_id == expected_chain_id
    if chain_id is not None and not network_correct:
        try:
            await wallet.switch_chain(expected_chain_id)
            chain_id = expected_chain_id
            network_correct = True
        except (UserCancelled, CollaboratorUnavailable):
            logger.info("Wallet stayed on chain %s", chain_id)

    return WalletConnection(
        account=account,
        balance=balance,
        chain_id=chain_id,
        network_correct=network_correct,
    )
