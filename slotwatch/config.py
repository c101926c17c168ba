# slotwatch/config.py
from dotenv import load_dotenv, find_dotenv
import os
import logging
from urllib.parse import urlsplit, urlunsplit

from slotwatch.errors import ConfigurationError

# Load nearest .env from project tree, don't override existing process env
load_dotenv(find_dotenv(usecwd=True), override=False)

logger = logging.getLogger(__name__)

CLUSTER_URLS = {
    "mainnet": "https://api.mainnet-beta.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "localnet": "http://127.0.0.1:8899",
    "localhost": "http://127.0.0.1:8899",
}

COMMITMENTS = ("processed", "confirmed", "finalized")


def rpc_url_for(moniker_or_url: str) -> str:
    """Resolve a cluster moniker (devnet, mainnet...) or pass a URL through."""
    value = (moniker_or_url or "").strip()
    if value.lower() in CLUSTER_URLS:
        return CLUSTER_URLS[value.lower()]
    if value.startswith(("http://", "https://")):
        return value
    raise ConfigurationError(
        f"Unknown cluster or RPC URL: {value!r}",
        details={"known_clusters": sorted(CLUSTER_URLS)},
    )


def ws_url_for(rpc_url: str) -> str:
    """Derive the WebSocket endpoint paired with an HTTP RPC endpoint."""
    parts = urlsplit(rpc_url)
    if parts.scheme in ("ws", "wss"):
        return rpc_url
    scheme = "wss" if parts.scheme == "https" else "ws"
    netloc = parts.netloc
    # solana-test-validator serves pubsub on rpc port + 1
    if parts.port == 8899:
        netloc = netloc.replace(":8899", ":8900")
    return urlunsplit((scheme, netloc, parts.path, parts.query, parts.fragment))


class Settings:
    """Watcher configuration read from the environment."""

    def __init__(self):
        legacy_rpc = os.getenv("RPC_URL")
        if legacy_rpc:
            logger.warning("DEPRECATED: RPC_URL is deprecated, use SOLANA_RPC_URL instead")

        self.SOLANA_RPC_URL = rpc_url_for(
            os.getenv("SOLANA_RPC_URL") or legacy_rpc or "devnet"
        )
        self.SOLANA_WS_URL = (os.getenv("SOLANA_WS_URL") or "").strip() or ws_url_for(self.SOLANA_RPC_URL)

        commitment = (os.getenv("SOLANA_COMMITMENT") or "confirmed").strip().lower()
        if commitment not in COMMITMENTS:
            logger.warning(f"Unknown commitment {commitment}, defaulting to confirmed")
            commitment = "confirmed"
        self.SOLANA_COMMITMENT = commitment

        # Watcher timing
        self.WATCH_POLL_INTERVAL_MS = int(os.getenv("WATCH_POLL_INTERVAL_MS", "5000"))
        self.WATCH_WS_CONNECT_TIMEOUT_MS = int(os.getenv("WATCH_WS_CONNECT_TIMEOUT_MS", "8000"))

        # Program log ring buffer
        self.PROGRAM_LOGS_MAX_ITEMS = int(os.getenv("PROGRAM_LOGS_MAX_ITEMS", "1000"))

        # HTTP client
        self.RPC_HTTP_TIMEOUT_S = float(os.getenv("RPC_HTTP_TIMEOUT_S", "10"))

        # Logging
        self.SLOTWATCH_LOG_LEVEL = (os.getenv("SLOTWATCH_LOG_LEVEL") or "INFO").strip().upper()
        self.SLOTWATCH_LOG_FILE = (os.getenv("SLOTWATCH_LOG_FILE") or "").strip()


settings = Settings()
