"""Minimal async JSON-RPC client for balance lookups."""

from __future__ import annotations

import itertools
import os
from decimal import Decimal
from typing import Any, Dict, List, Optional

from amounts import from_base_units
from errors import CollaboratorError
from rate_limit import NoLimit
from request_utils import call_with_timeout, read_error_message
from tokens import TokenRef, normalize_address

RPC_URLS: Dict[int, str] = {
    1: "https://rpc.eth.gateway.fm",
    137: "https://1rpc.io/matic",
    56: "https://bsc-dataseed.binance.org",
    42161: "https://arb1.arbitrum.io/rpc",
    10: "https://mainnet.optimism.io",
    43114: "https://api.avax.network/ext/bc/C/rpc",
    250: "https://rpc.ftm.tools",
    8453: "https://mainnet.base.org",
}

NATIVE_DECIMALS = 18

BALANCE_OF_SELECTOR = "0x70a08231"
DECIMALS_SELECTOR = "0x313ce567"


def rpc_url(chain_id: int) -> str:
    """RPC endpoint for ``chain_id``; ``RPC_URL_<id>`` overrides the table."""
    override = os.getenv(f"RPC_URL_{chain_id}")
    if override:
        return override
    return RPC_URLS.get(chain_id, RPC_URLS[1])


def _encode_address_arg(address: str) -> str:
    return normalize_address(address)[2:].rjust(64, "0")


def _hex_to_int(value: Any) -> int:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise CollaboratorError("rpc", f"unexpected result {value!r}")
    if value == "0x":
        # eth_call against an address without code
        raise CollaboratorError("rpc", "empty eth_call result")
    return int(value, 16)


class ChainRpc:
    """Read-only chain queries used by the hot wallet balance checks."""

    def __init__(self, session, limiter=None):
        self._session = session
        self._limiter = limiter or NoLimit()
        self._ids = itertools.count(1)

    async def _call(self, chain_id: int, method: str, params: List[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        url = rpc_url(chain_id)

        async def _post():
            async with self._session.post(url, json=body) as resp:
                if resp.status >= 400:
                    raise CollaboratorError("rpc", await read_error_message(resp), resp.status)
                return await resp.json()

        payload = await call_with_timeout(_post, limiter=self._limiter)
        if not isinstance(payload, dict):
            raise CollaboratorError("rpc", f"{method}: unexpected payload {payload!r}")
        if payload.get("error"):
            err = payload["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise CollaboratorError("rpc", f"{method}: {message}")
        return payload.get("result")

    async def native_balance(self, owner: str, chain_id: int) -> int:
        result = await self._call(chain_id, "eth_getBalance", [normalize_address(owner), "latest"])
        return _hex_to_int(result)

    async def erc20_balance(self, token_address: str, owner: str, chain_id: int) -> int:
        call = {
            "to": normalize_address(token_address),
            "data": BALANCE_OF_SELECTOR + _encode_address_arg(owner),
        }
        return _hex_to_int(await self._call(chain_id, "eth_call", [call, "latest"]))

    async def erc20_decimals(self, token_address: str, chain_id: int) -> int:
        call = {"to": normalize_address(token_address), "data": DECIMALS_SELECTOR}
        return _hex_to_int(await self._call(chain_id, "eth_call", [call, "latest"]))

    async def balance_of(self, token: TokenRef, owner: str, chain_id: int,
                         decimals: Optional[int] = None) -> Decimal:
        """Human-unit balance of ``token`` held by ``owner``.

        The native sentinel routes to ``eth_getBalance``; anything else is an
        ERC-20 ``balanceOf`` scaled by the decimals reported on-chain.
        """
        if token.native:
            raw = await self.native_balance(owner, chain_id)
            return from_base_units(raw, NATIVE_DECIMALS)
        raw = await self.erc20_balance(token.address, owner, chain_id)
        if decimals is None:
            decimals = await self.erc20_decimals(token.address, chain_id)
        return from_base_units(raw, decimals)
