"""Wallet: identity and transaction-signing capability.

The keeper needs two things from a wallet: the address it acts as, and a
way to get a state-changing transaction mined.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder
from web3.types import TxParams, TxReceipt

logger = logging.getLogger(__name__)

# Well-known first Hardhat/Anvil development account.
LOCALNET_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


class Wallet(ABC):
    """Abstract wallet capability."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address of the current identity."""
        pass

    @abstractmethod
    def submit_tx(self, tx: TxParams) -> TxReceipt:
        """Sign, send and wait for a transaction.

        :param tx: Transaction parameters.
        :returns: The mined receipt (which may report a revert).
        """
        pass


class LocalWallet(Wallet):
    """Wallet signing locally with a private key.

    :ivar w3: Web3 instance transactions are sent through.
    :ivar receipt_timeout: Seconds to wait for a transaction to be mined.
    """

    def __init__(self, w3: Web3, private_key: str, receipt_timeout: float = 120.0) -> None:
        """Register the key as signer on ``w3``.

        :param w3: Web3 instance.
        :param private_key: Hex private key.
        :param receipt_timeout: Seconds to wait for mining (default: 120).
        """
        self.w3 = w3
        self.receipt_timeout = receipt_timeout
        self._account: LocalAccount = Account.from_key(private_key)
        self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(self._account))
        self.w3.eth.default_account = self._account.address

    @classmethod
    def from_env(cls, w3: Web3, network_name: str) -> LocalWallet:
        """Build a wallet from ``PRIVATE_KEY``, or the dev key on localnet.

        :raises ValueError: If no key is configured for a public network.
        """
        private_key = os.environ.get("PRIVATE_KEY")
        if not private_key and network_name == "localnet":
            private_key = LOCALNET_PRIVATE_KEY
        if not private_key:
            raise ValueError(f"PRIVATE_KEY must be set for network {network_name}")
        return cls(w3, private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def submit_tx(self, tx: TxParams) -> TxReceipt:
        tx_hash = self.w3.eth.send_transaction(tx)
        logger.debug(f"Sent transaction {tx_hash.hex()}")
        return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
