"""Token list and quote lookups against the 1inch developer API."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from amounts import from_base_units, to_base_units
from errors import CollaboratorError
from rate_limit import NoLimit
from request_utils import (
    TRANSPORT_ERRORS,
    bearer_headers,
    call_with_timeout,
    read_error_message,
)
from tokens import TokenList, TokenRef
from utils import logger

DEFAULT_BASE_URL = "https://api.1inch.dev"
TOKEN_API_VERSION = "v1.2"
SWAP_API_VERSION = "v6.1"


class OneInchClient:
    """Thin wrapper around the token-list and swap-quote endpoints.

    Token lists are cached per chain for the life of the client.  Errors are
    raised as ``CollaboratorError`` without retrying.
    """

    def __init__(self, session, api_key: str, base_url: str = DEFAULT_BASE_URL, limiter=None):
        self._session = session
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._limiter = limiter or NoLimit()
        self._token_cache: Dict[int, TokenList] = {}

    async def _get(self, service: str, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        async def _call():
            async with self._session.get(url, params=params, headers=bearer_headers(self._api_key)) as resp:
                if resp.status >= 400:
                    raise CollaboratorError(service, await read_error_message(resp), resp.status)
                return await resp.json()

        try:
            return await call_with_timeout(_call, limiter=self._limiter)
        except TRANSPORT_ERRORS as exc:
            raise CollaboratorError(service, str(exc) or type(exc).__name__) from exc

    async def fetch_tokens(self, chain_id: int) -> TokenList:
        cached = self._token_cache.get(chain_id)
        if cached is not None:
            return cached
        url = f"{self._base_url}/token/{TOKEN_API_VERSION}/{int(chain_id)}"
        payload = await self._get("tokens", url)
        if not isinstance(payload, dict):
            raise CollaboratorError("tokens", f"unexpected token list payload: {type(payload).__name__}")
        tokens = TokenList.from_payload(chain_id, payload)
        if not len(tokens):
            raise CollaboratorError("tokens", f"no usable tokens for chain {chain_id}")
        logger.info("token list loaded | chain=%s count=%d", chain_id, len(tokens))
        self._token_cache[chain_id] = tokens
        return tokens

    async def quote(self, chain_id: int, src: str, dst: str, amount: int) -> int:
        """Destination amount (base units) for swapping ``amount`` of ``src``."""
        url = f"{self._base_url}/swap/{SWAP_API_VERSION}/{int(chain_id)}/quote"
        params = {"src": src, "dst": dst, "amount": str(int(amount))}
        data = await self._get("quote", url, params)
        try:
            return int(data["dstAmount"])
        except (KeyError, TypeError, ValueError):
            raise CollaboratorError("quote", f"quote response without dstAmount: {data!r}") from None

    async def current_price(self, chain_id: int, base: TokenRef, quote: TokenRef) -> Decimal:
        """Price of one ``base`` unit in ``quote``, from a one-unit quote."""
        one_unit = to_base_units(1, base.decimals)
        dst_amount = await self.quote(chain_id, base.address, quote.address, one_unit)
        price = from_base_units(dst_amount, quote.decimals)
        if price <= 0:
            raise CollaboratorError("quote", f"non-positive price for {base.symbol}/{quote.symbol}")
        logger.info("price quoted | pair=%s/%s price=%s", base.symbol, quote.symbol, price)
        return price
