"""Token identities and chain-scoped token lists."""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from eth_utils import is_hex_address

from errors import InvalidAddressError, TokenNotFoundError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
NATIVE_ADDRESS = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"

POPULAR_SYMBOLS = (
    "ETH", "WETH", "USDT", "USDC", "DAI", "WBTC", "BTC",
    "1INCH", "UNI", "LINK", "AAVE", "COMP", "MKR", "SNX",
    "WPOL", "BNB", "AVAX", "FTM", "CRV", "SUSHI",
)


def is_valid_address(address: Any) -> bool:
    """True for a 0x-prefixed 20-byte hex string (any letter case)."""
    return isinstance(address, str) and len(address) == 42 and is_hex_address(address)


def normalize_address(address: str) -> str:
    return address.lower()


def is_native(address: Optional[str]) -> bool:
    if not address:
        return False
    lowered = address.lower()
    return lowered in (NATIVE_ADDRESS, ZERO_ADDRESS)


@dataclass(frozen=True)
class TokenRef:
    """A tradable asset on one chain."""

    symbol: str
    address: str
    decimals: int
    name: str = ""

    def __post_init__(self):
        if not isinstance(self.decimals, int) or self.decimals < 0:
            raise ValueError(f"{self.symbol}: decimals must be a non-negative int, got {self.decimals!r}")
        if not is_valid_address(self.address):
            raise InvalidAddressError(f"{self.symbol} token", self.address)

    @property
    def native(self) -> bool:
        return is_native(self.address)


def _normalize_symbol(symbol: str) -> str:
    symbol = symbol.strip().upper()
    symbol = re.sub(r"[\s_]+", "-", symbol)
    return re.sub(r"[^A-Z0-9\-]", "", symbol)


class TokenList:
    """Tokens known to the token-list service for a single chain."""

    def __init__(self, chain_id: int, tokens: Iterable[TokenRef]):
        self.chain_id = chain_id
        self._tokens: List[TokenRef] = list(tokens)
        self._by_address: Dict[str, TokenRef] = {
            normalize_address(t.address): t for t in self._tokens
        }

    @classmethod
    def from_payload(cls, chain_id: int, payload: Mapping[str, Any]) -> "TokenList":
        """Build from ``{"tokens": {address: {...}}}`` or a bare address mapping."""
        raw = payload.get("tokens") if isinstance(payload.get("tokens"), Mapping) else payload
        tokens = []
        for address, info in raw.items():
            if not isinstance(info, Mapping):
                continue
            try:
                tokens.append(
                    TokenRef(
                        symbol=str(info["symbol"]),
                        address=info.get("address") or address,
                        decimals=int(info["decimals"]),
                        name=str(info.get("name", "")),
                    )
                )
            except (KeyError, TypeError, ValueError):
                # unusable entries (missing decimals, bad address) are skipped
                continue
        return cls(chain_id, tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __iter__(self):
        return iter(self._tokens)

    def by_address(self, address: str) -> Optional[TokenRef]:
        return self._by_address.get(normalize_address(address))

    def resolve(self, symbol: str) -> TokenRef:
        """Return the token for ``symbol`` or raise with close-match hints."""
        for token in self._tokens:
            if token.symbol == symbol:
                return token
        norm_map: Dict[str, TokenRef] = {}
        for token in self._tokens:
            norm_map.setdefault(_normalize_symbol(token.symbol), token)
        norm = _normalize_symbol(symbol)
        if norm in norm_map:
            return norm_map[norm]
        close = difflib.get_close_matches(norm, list(norm_map), n=5, cutoff=0.6)
        raise TokenNotFoundError(symbol, [norm_map[c].symbol for c in close])

    def search(self, query: str) -> List[TokenRef]:
        """Filter by symbol or name; exact symbol first, then prefix, then A-Z."""
        term = query.strip().lower()
        if not term:
            return list(self._tokens)
        hits = [
            t for t in self._tokens
            if term in t.symbol.lower() or term in t.name.lower()
        ]

        def rank(token: TokenRef):
            sym = token.symbol.lower()
            return (sym != term, not sym.startswith(term), sym)

        return sorted(hits, key=rank)

    def popular(self) -> List[TokenRef]:
        order = {s: i for i, s in enumerate(POPULAR_SYMBOLS)}
        hits = [t for t in self._tokens if t.symbol.upper() in order]
        return sorted(hits, key=lambda t: order[t.symbol.upper()])
