from numberzz.wallet.client import (
    JsonRpcWallet,
    UnconfiguredWallet,
    Wallet,
    WalletConnection,
    connect_wallet,
    eth_to_hex_wei,
    eth_to_wei,
    hex_wei_to_eth,
)

__all__ = [
    "JsonRpcWallet",
    "UnconfiguredWallet",
    "Wallet",
    "WalletConnection",
    "connect_wallet",
    "eth_to_hex_wei",
    "eth_to_wei",
    "hex_wei_to_eth",
]
