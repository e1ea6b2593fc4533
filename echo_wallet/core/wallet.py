"""
Wallet-side interfaces and an in-memory demo wallet.

The voice core never signs or broadcasts anything itself. It hands confirmed
transfers to a TransferExecutor and asks a WalletGateway for wallet
lifecycle, balance, network and transaction status. ``DemoWallet``
implements both for the terminal: it keeps balances in memory and makes up
transaction hashes.
"""

import logging
import secrets
from decimal import Decimal
from typing import Dict, Optional, Protocol

from .types import TransactionHandle, WalletInfo

logger = logging.getLogger(__name__)

NETWORKS = ("mainnet", "sepolia")


class ExecutionError(Exception):
    """Raised when a transfer cannot be executed."""

    pass


class TransferExecutor(Protocol):
    def execute(self, recipient_address: str, amount: str) -> TransactionHandle: ...


class WalletGateway(Protocol):
    def has_wallet(self) -> bool: ...

    def create_wallet(self) -> WalletInfo: ...

    def import_wallet(self) -> WalletInfo: ...

    def get_balance(self) -> Decimal: ...

    def get_transaction_status(self, tx_hash: str) -> Optional[TransactionHandle]: ...

    def switch_network(self, network: str) -> str: ...


class DemoWallet:
    """
    Dry-run wallet. Nothing leaves the process.

    Transfers debit the in-memory balance and are recorded as confirmed
    transactions so status queries can find them.
    """

    def __init__(self, balance: str = "1.5", network: str = "sepolia", address: Optional[str] = None):
        if network not in NETWORKS:
            raise ValueError(f"Unsupported network: {network}. Available: {list(NETWORKS)}")
        self.balance = Decimal(balance)
        self.network = network
        self.address = address
        self.transactions: Dict[str, TransactionHandle] = {}

    def has_wallet(self) -> bool:
        return self.address is not None

    def create_wallet(self) -> WalletInfo:
        self.address = "0x" + secrets.token_hex(20)
        logger.info(f"Created demo wallet {self.address}")
        return WalletInfo(address=self.address, network=self.network)

    def import_wallet(self) -> WalletInfo:
        if self.address is None:
            raise ExecutionError("No saved wallet found to import")
        return WalletInfo(address=self.address, network=self.network)

    def get_balance(self) -> Decimal:
        if self.address is None:
            raise ExecutionError("No wallet")
        return self.balance

    def get_transaction_status(self, tx_hash: str) -> Optional[TransactionHandle]:
        return self.transactions.get(tx_hash.lower())

    def switch_network(self, network: str) -> str:
        if network not in NETWORKS:
            raise ExecutionError(f"Unsupported network: {network}")
        self.network = network
        return network

    def execute(self, recipient_address: str, amount: str) -> TransactionHandle:
        """
        Record a transfer and return its handle.

        Raises:
            ExecutionError: Without a wallet or when the balance is too low
        """
        if self.address is None:
            raise ExecutionError("No wallet")
        value = Decimal(amount)
        if value > self.balance:
            raise ExecutionError(f"Insufficient balance: {self.balance} < {value}")

        self.balance -= value
        handle = TransactionHandle(
            hash="0x" + secrets.token_hex(32),
            to=recipient_address,
            amount=amount,
            network=self.network,
            status="confirmed",
        )
        self.transactions[handle.hash] = handle
        logger.info(f"Demo transfer {amount} ETH to {recipient_address}: {handle.hash}")
        return handle
