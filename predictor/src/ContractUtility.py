"""ContractUtility: Web3 initialization and contract ABI loading."""

import json
import os
from pathlib import Path

from web3 import Web3
from web3.contract import Contract

# RPC endpoints per supported network.
NETWORKS: dict[str, str] = {
    "citrea-testnet": "https://rpc.testnet.citrea.xyz",
    "plume-testnet": "https://testnet-rpc.plume.org",
    "localnet": "http://localhost:8545",
}

# Deployed BitcoinPricePrediction contracts per network.
DEFAULT_GAME_ADDRESS: dict[str, str | None] = {
    "citrea-testnet": "0xA8c3c8DC0821702aBcC2d9aD992afd217D9A2Cb4",
    "plume-testnet": None,
    "localnet": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
}

# Blocksense BTC/USDT feed (Chainlink-compatible) per network.
DEFAULT_PRICE_FEED_ADDRESS: dict[str, str | None] = {
    "citrea-testnet": "0x25ef0a9b5041b2Cd96dcb1692B8C553aB2780BA3",
    "plume-testnet": None,
    "localnet": None,
}

CONTRACTS_DIR = Path(__file__).parent.parent / "contracts"


class ContractUtility:
    """Web3 connection and contract construction for one network.

    :ivar network_name: Name of the configured network.
    :ivar rpc_url: RPC endpoint in use.
    :ivar w3: Connected Web3 instance.
    """

    def __init__(self, network_name: str) -> None:
        """Connect to a network.

        :param network_name: A key of :data:`NETWORKS`, or a raw RPC URL.
        """
        self.network_name = network_name
        # RPC_URL env var overrides the default for the network
        self.rpc_url = os.environ.get("RPC_URL") or NETWORKS.get(network_name, network_name)
        self.w3 = Web3(Web3.HTTPProvider(self.rpc_url))

    @staticmethod
    def get_abi(contract_name: str) -> list:
        """Load a contract ABI from the packaged contracts folder.

        :param contract_name: File stem, e.g. "BitcoinPricePrediction".
        :returns: ABI list.
        """
        with open(CONTRACTS_DIR / f"{contract_name}.json", "r") as file:
            return json.load(file)["abi"]

    def contract(self, contract_name: str, address: str) -> Contract:
        """Bind a packaged ABI to an address.

        :param contract_name: File stem of the ABI.
        :param address: Contract address (any case).
        :returns: Web3 contract instance.
        """
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_abi(contract_name),
        )
