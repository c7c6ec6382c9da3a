"""
Circle CCTP (burn-and-mint USDC) helpers.

Builds approve / depositForBurn / receiveMessage calldata with raw eth_abi
encoding and polls Circle's attestation service. Transactions are signed and
sent by the user's wallet, not here.
"""

import logging

import requests
from eth_abi import encode as abi_encode
from eth_utils import keccak, to_checksum_address
from web3 import Web3

from battle_agent import config

logger = logging.getLogger(__name__)

# Reference: https://developers.circle.com/stablecoins/docs/evm-smart-contracts
CCTP_CONTRACTS = {
    # Mainnet
    "ETHEREUM": {
        "token_messenger": "0xBd3fa81B58Ba92a82136038B25aDec7066af3155",
        "message_transmitter": "0x0a992d191DEeC32aFe36203Ad87D7d289a738F81",
        "usdc": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        "domain": 0,
        "rpc": "https://eth.llamarpc.com",
    },
    "ARBITRUM": {
        "token_messenger": "0x19330d10D9Cc8751218eaf51E8885D058642E08A",
        "message_transmitter": "0xC30362313FBBA5cf9163F0bb16a0e01f01A896ca",
        "usdc": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        "domain": 3,
        "rpc": "https://arb1.arbitrum.io/rpc",
    },
    "BASE": {
        "token_messenger": "0x1682Ae6375C4E4A97e4B583BC394c861A46D8962",
        "message_transmitter": "0xAD09780d193884d503182aD4588450C416D6F9D4",
        "usdc": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "domain": 6,
        "rpc": "https://mainnet.base.org",
    },
    "POLYGON": {
        "token_messenger": "0x9daF8c91AEFAE50b9c0E69629D3F6Ca40cA3B3FE",
        "message_transmitter": "0xF3be9355363857F3e001be68856A2f96b4C39Ba9",
        "usdc": "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
        "domain": 7,
        "rpc": "https://polygon-rpc.com",
    },
    "OPTIMISM": {
        "token_messenger": "0x2B4069517957735bE00ceE0fadAE88a26365528f",
        "message_transmitter": "0x4D41f22c5a0e5c74090899E5a8Fb597a8842b3e8",
        "usdc": "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
        "domain": 2,
        "rpc": "https://mainnet.optimism.io",
    },
    # Testnet
    "SEPOLIA": {
        "token_messenger": "0x9f3B8679c73C2Fef8b59B4f3444d4e156fb70AA5",
        "message_transmitter": "0x7865fAfC2db2093669d92c0F33AeEF291086BEFD",
        "usdc": "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
        "domain": 0,
        "rpc": "https://rpc.sepolia.org",
    },
    "BASE_SEPOLIA": {
        "token_messenger": "0x9f3B8679c73C2Fef8b59B4f3444d4e156fb70AA5",
        "message_transmitter": "0x7865fAfC2db2093669d92c0F33AeEF291086BEFD",
        "usdc": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        "domain": 6,
        "rpc": "https://sepolia.base.org",
    },
    "ARBITRUM_SEPOLIA": {
        "token_messenger": "0x9f3B8679c73C2Fef8b59B4f3444d4e156fb70AA5",
        "message_transmitter": "0xaCF1ceeF35caAc005e15888dDb8A3515C41B4872",
        "usdc": "0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d",
        "domain": 3,
        "rpc": "https://sepolia-rollup.arbitrum.io/rpc",
    },
}

ERC20_BALANCE_OF_ABI = [
    {
        "type": "function",
        "name": "balanceOf",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    }
]

USDC_DECIMALS = 6


def _selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def _calldata(signature: str, types: list[str], args: list) -> str:
    return Web3.to_hex(_selector(signature) + abi_encode(types, args))


def address_to_bytes32(address: str) -> bytes:
    """Left-pad a 20-byte address into the bytes32 mintRecipient format."""
    return bytes.fromhex(to_checksum_address(address)[2:]).rjust(32, b"\x00")


def format_usdc(amount: int) -> str:
    integer_part, fractional_part = divmod(int(amount), 10**USDC_DECIMALS)
    return f"{integer_part}.{str(fractional_part).rjust(USDC_DECIMALS, '0')[:2]} USDC"


def _contracts(chain: str) -> dict:
    try:
        return CCTP_CONTRACTS[chain]
    except KeyError:
        raise ValueError(f"Unsupported CCTP chain: {chain}") from None


class CCTPBridge:
    """Burn-and-mint USDC bridging instructions across CCTP domains."""

    def __init__(self, attestation_url=None, timeout=None, session=None):
        self.attestation_url = (attestation_url or config.CCTP_ATTESTATION_URL).rstrip("/")
        self.timeout = timeout or config.HTTP_TIMEOUT
        self.session = session or requests.Session()
        self._clients: dict[str, Web3] = {}

    def _client(self, chain: str) -> Web3:
        if chain not in self._clients:
            self._clients[chain] = Web3(Web3.HTTPProvider(_contracts(chain)["rpc"]))
        return self._clients[chain]

    def get_usdc_balance(self, chain: str, address: str) -> int:
        cctp = _contracts(chain)
        usdc = self._client(chain).eth.contract(
            address=to_checksum_address(cctp["usdc"]), abi=ERC20_BALANCE_OF_ABI
        )
        return int(usdc.functions.balanceOf(to_checksum_address(address)).call())

    def prepare_approve_data(self, chain: str, amount: int) -> dict:
        """Step 1: USDC.approve(TokenMessenger, amount)."""
        cctp = _contracts(chain)
        data = _calldata(
            "approve(address,uint256)",
            ["address", "uint256"],
            [to_checksum_address(cctp["token_messenger"]), int(amount)],
        )
        return {"to": cctp["usdc"], "data": data}

    def prepare_deposit_for_burn_data(
        self, source_chain: str, dest_chain: str, amount: int, recipient: str
    ) -> dict:
        """Step 2: TokenMessenger.depositForBurn(amount, destDomain, mintRecipient, usdc)."""
        source = _contracts(source_chain)
        dest = _contracts(dest_chain)
        data = _calldata(
            "depositForBurn(uint256,uint32,bytes32,address)",
            ["uint256", "uint32", "bytes32", "address"],
            [
                int(amount),
                dest["domain"],
                address_to_bytes32(recipient),
                to_checksum_address(source["usdc"]),
            ],
        )
        return {"to": source["token_messenger"], "data": data}

    def prepare_receive_message_data(self, dest_chain: str, message: bytes, attestation: bytes) -> dict:
        """Step 4: MessageTransmitter.receiveMessage(message, attestation) on the destination."""
        cctp = _contracts(dest_chain)
        if isinstance(message, str):
            message = Web3.to_bytes(hexstr=message)
        if isinstance(attestation, str):
            attestation = Web3.to_bytes(hexstr=attestation)
        data = _calldata("receiveMessage(bytes,bytes)", ["bytes", "bytes"], [message, attestation])
        return {"to": cctp["message_transmitter"], "data": data}

    def get_attestation(self, message_hash: str) -> dict | None:
        """Step 3: poll Circle for the burn attestation.

        Returns {"status": "complete"|"pending"|..., "attestation": str} or None on error.
        """
        try:
            response = self.session.get(
                f"{self.attestation_url}/{message_hash}", timeout=self.timeout
            )
            if response.status_code == 404:
                return {"status": "pending", "attestation": ""}
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Failed to get attestation for %s: %s", message_hash, e)
            return None

        if data.get("status") == "complete":
            return {"status": "complete", "attestation": data.get("attestation", "")}
        return {"status": data.get("status") or "pending", "attestation": ""}

    def get_bridge_instructions(
        self, source_chain: str, dest_chain: str, amount: int, recipient: str
    ) -> dict:
        shown = format_usdc(amount)
        return {
            "steps": [
                {
                    "step": 1,
                    "action": "approve",
                    "description": f"Approve TokenMessenger to spend {shown}",
                    "transaction": self.prepare_approve_data(source_chain, amount),
                },
                {
                    "step": 2,
                    "action": "depositForBurn",
                    "description": f"Burn {shown} on {source_chain}",
                    "transaction": self.prepare_deposit_for_burn_data(
                        source_chain, dest_chain, amount, recipient
                    ),
                },
                {
                    "step": 3,
                    "action": "waitForAttestation",
                    "description": "Wait for Circle attestation (typically 10-20 minutes)",
                },
                {
                    # calldata is built once the attestation is available
                    "step": 4,
                    "action": "receiveMessage",
                    "description": f"Mint {shown} on {dest_chain}",
                },
            ]
        }

    def log_bridge_action(
        self,
        journal,
        action: str,
        source_chain: str,
        dest_chain: str,
        amount: int,
        recipient: str,
        status: str,
        tx_hash: str | None = None,
    ):
        journal.log_action(
            f"CCTP_{action}",
            f"Bridge {format_usdc(amount)} from {source_chain} to {dest_chain}",
            status=status,
            inputs={
                "sourceChain": source_chain,
                "destChain": dest_chain,
                "amount": str(amount),
                "recipient": recipient,
            },
            tx_hash=tx_hash,
        )
