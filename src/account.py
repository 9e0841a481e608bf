import os
from typing import Optional

import aiohttp
from dotenv import load_dotenv

from hot_wallet import HotWalletManager
from lifecycle import LifecycleStore
from rate_limit import build_rate_limiter
from request_utils import REQUEST_TIMEOUT
from rpc import ChainRpc
from services.oneinch_api import DEFAULT_BASE_URL, OneInchClient
from services.suggestions import DEFAULT_MODEL, DEFAULT_URL, SuggestionClient
from submission import OrderbookClient
from utils import close_session

load_dotenv()


def _require_env_vars() -> tuple[str, str]:
    """Fetch and validate required environment variables."""

    oneinch_key = os.getenv("ONEINCH_API_KEY")
    openrouter_key = os.getenv("OPENROUTER_API_KEY")

    if not oneinch_key:
        raise RuntimeError("Environment variable 'ONEINCH_API_KEY' is missing or empty")
    if not openrouter_key:
        raise RuntimeError("Environment variable 'OPENROUTER_API_KEY' is missing or empty")

    return oneinch_key, openrouter_key


class TradingSession:
    """Everything one grid session needs, created once and passed around.

    The HTTP session is shared by all collaborators; only the 1inch endpoints
    go through the rate limiter.  ``session`` may be injected for tests.
    """

    def __init__(self, session=None, chain_id: Optional[int] = None):
        oneinch_key, openrouter_key = _require_env_vars()

        self.chain_id = int(chain_id or os.getenv("GRID_CHAIN_ID", "137"))
        self.expiration_minutes = int(os.getenv("GRID_EXPIRATION_MINUTES", "60"))
        base_url = os.getenv("ONEINCH_BASE_URL", DEFAULT_BASE_URL)

        # No session-wide total: call_with_timeout bounds each call, and the
        # suggestion call is allowed a longer limit than the 1inch calls.
        self.http = session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=REQUEST_TIMEOUT)
        )
        self.limiter = build_rate_limiter()

        self.rpc = ChainRpc(self.http)
        self.hot_wallets = HotWalletManager(os.getenv("HOT_WALLET_PATH"), rpc=self.rpc)
        self.oneinch = OneInchClient(self.http, oneinch_key, base_url, limiter=self.limiter)
        self.orderbook = OrderbookClient(self.http, oneinch_key, base_url, limiter=self.limiter)
        self.suggestions = SuggestionClient(
            self.http,
            openrouter_key,
            model=os.getenv("OPENROUTER_MODEL", DEFAULT_MODEL),
            url=os.getenv("OPENROUTER_URL", DEFAULT_URL),
        )

    def build_store(self) -> LifecycleStore:
        return LifecycleStore(self.hot_wallets, self.orderbook, rpc=self.rpc)

    async def close(self) -> None:
        """Close the shared HTTP session."""
        await close_session(self.http)

    async def __aenter__(self) -> "TradingSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
