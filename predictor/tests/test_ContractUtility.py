"""Unit tests for ContractUtility and LocalWallet."""

from unittest.mock import MagicMock

import pytest

from predictor.src.ContractUtility import DEFAULT_GAME_ADDRESS, NETWORKS, ContractUtility
from predictor.src.Wallet import LocalWallet

# Address of the well-known first development account.
DEV_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class TestContractUtility:
    """Test network selection and ABI loading."""

    def test_network_rpc(self, monkeypatch) -> None:
        """Known networks use their default endpoint."""
        monkeypatch.delenv("RPC_URL", raising=False)
        assert ContractUtility("citrea-testnet").rpc_url == NETWORKS["citrea-testnet"]

    def test_rpc_override(self, monkeypatch) -> None:
        """RPC_URL overrides the network endpoint."""
        monkeypatch.setenv("RPC_URL", "http://node:8545")
        assert ContractUtility("citrea-testnet").rpc_url == "http://node:8545"

    def test_game_abi(self) -> None:
        """The game ABI exposes the contract surface."""
        names = {
            entry["name"]
            for entry in ContractUtility.get_abi("BitcoinPricePrediction")
            if entry["type"] == "function"
        }
        assert {"placeBet", "claimRewards", "startNewRound", "getCurrentRound", "withdrawFromPool"} <= names

    def test_contract_checksums_address(self, monkeypatch) -> None:
        """Addresses are checksummed when binding a contract."""
        monkeypatch.delenv("RPC_URL", raising=False)
        utility = ContractUtility("localnet")
        address = DEFAULT_GAME_ADDRESS["localnet"]
        contract = utility.contract("BitcoinPricePrediction", address.lower())
        assert contract.address == address


class TestLocalWallet:
    """Test key loading."""

    def test_localnet_dev_key(self, monkeypatch) -> None:
        """Localnet falls back to the development key."""
        monkeypatch.delenv("PRIVATE_KEY", raising=False)
        w3 = MagicMock()
        wallet = LocalWallet.from_env(w3, "localnet")
        assert wallet.address == DEV_ADDRESS
        assert w3.eth.default_account == DEV_ADDRESS
        w3.middleware_onion.add.assert_called_once()

    def test_public_network_requires_key(self, monkeypatch) -> None:
        """Public networks need PRIVATE_KEY."""
        monkeypatch.delenv("PRIVATE_KEY", raising=False)
        with pytest.raises(ValueError):
            LocalWallet.from_env(MagicMock(), "citrea-testnet")

    def test_submit_waits_for_receipt(self) -> None:
        """submit_tx sends and waits for the receipt."""
        w3 = MagicMock()
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 1}
        wallet = LocalWallet(w3, "0x" + "11" * 32, receipt_timeout=30)

        assert wallet.submit_tx({"to": DEV_ADDRESS}) == {"status": 1}
        tx_hash = w3.eth.send_transaction.return_value
        w3.eth.wait_for_transaction_receipt.assert_called_once_with(tx_hash, timeout=30)
