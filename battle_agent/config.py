import os
from pathlib import Path

from dotenv import load_dotenv

# Load battle_agent/.env into os.environ BEFORE reading any env-backed settings.
# override=False means Docker/shell env vars take precedence over .env.
load_dotenv(Path(__file__).resolve().parent / ".env", override=False)

# Arbitrum Sepolia (chain ID 421614)
CHAIN_NAME = os.environ.get("CHAIN_NAME", "Arbitrum Sepolia")
CHAIN_ID = int(os.environ.get("CHAIN_ID", "421614"))
RPC_URL = os.environ.get("RPC_URL", "https://sepolia-rollup.arbitrum.io/rpc")
EXPLORER_URL = os.environ.get("EXPLORER_URL", "https://sepolia.arbiscan.io")

# Agent wallet
PRIVATE_KEY = os.environ.get("PRIVATE_KEY", "")

# Contracts
BATTLE_ARENA_ADDRESS = os.environ.get("BATTLE_ARENA_ADDRESS", "")
POOL_MANAGER = os.environ.get("POOL_MANAGER", "")
LEADERBOARD_ADDRESS = os.environ.get(
    "LEADERBOARD_ADDRESS", "0x7feb2cf23797fd950380cd9ad4b7d4cad4b3c85b"
)

# Tokens (Arbitrum Sepolia test deployments)
WETH_ADDRESS = os.environ.get("WETH_ADDRESS", "0x980B62Da83eFf3D4576C647993b0c1D7faf17c73")
USDC_ADDRESS = os.environ.get("USDC_ADDRESS", "0xb893E3334D4Bd6C5ba8277Fd559e99Ed683A9FC7")

# Agent params
POLL_INTERVAL = float(os.environ.get("POLL_INTERVAL", "30"))  # seconds between cycles
AUTO_SETTLE = os.environ.get("AUTO_SETTLE", "true").lower() in ("true", "1", "yes")
AUTO_UPDATE_STATUS = os.environ.get("AUTO_UPDATE_STATUS", "true").lower() in (
    "true",
    "1",
    "yes",
)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.environ.get("LOG_DIR", Path(__file__).resolve().parent.parent / "logs"))

# HTTP server
SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("SERVER_PORT", "3001"))

# Routing services
LIFI_API_URL = os.environ.get("LIFI_API_URL", "https://li.quest/v1")
LIFI_INTEGRATOR = os.environ.get("LIFI_INTEGRATOR", "lp-battlevault")
LIFI_API_KEY = os.environ.get("LIFI_API_KEY", "")
CCTP_ATTESTATION_URL = os.environ.get(
    "CCTP_ATTESTATION_URL", "https://iris-api.circle.com/attestations"
)
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "30"))
DEFAULT_SLIPPAGE = 0.03

# V4 PoolManager storage layout
# pools[poolId] lives at keccak256(poolId . POOLS_MAPPING_SLOT)
POOLS_MAPPING_SLOT = 6
LIQUIDITY_SLOT_OFFSET = 3

# Entry score thresholds used by the CLI
ENTRY_SCORE_STRONG = 60
ENTRY_SCORE_MODERATE = 30

REQUIRED_SETTINGS = ("PRIVATE_KEY", "BATTLE_ARENA_ADDRESS", "RPC_URL")


def validate_config(settings=None) -> None:
    """Raise ValueError naming every required setting that is empty."""
    values = vars(settings) if settings is not None else globals()
    missing = [key for key in REQUIRED_SETTINGS if not values.get(key)]
    if missing:
        raise ValueError(f"Missing required config: {', '.join(missing)}")


def explorer_tx_url(tx_hash: str, chain_id: int | None = None) -> str:
    explorers = {
        11155111: "https://sepolia.etherscan.io",
        84532: "https://sepolia.basescan.org",
        421614: "https://sepolia.arbiscan.io",
    }
    if chain_id is None or chain_id == CHAIN_ID:
        base = EXPLORER_URL
    else:
        base = explorers.get(chain_id, "https://etherscan.io")
    return f"{base}/tx/{tx_hash}"
