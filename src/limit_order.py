"""Turn trade intents into 1inch limit-order-protocol v4 orders."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from amounts import from_base_units, to_base_units, to_decimal
from errors import InvalidAddressError, PrecisionError
from tokens import TokenRef, is_valid_address, normalize_address

UINT_40_MAX = 2**40 - 1

# MakerTraits bit layout (limit-order-protocol v4)
_NO_PARTIAL_FILLS_FLAG = 1 << 255
_ALLOW_MULTIPLE_FILLS_FLAG = 1 << 254
_EXPIRATION_OFFSET = 80
_NONCE_OFFSET = 120


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, value: Any) -> "Side":
        if isinstance(value, Side):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown trade side: {value!r}") from None


@dataclass(frozen=True)
class TradeIntent:
    """One suggested grid trade: ``amount`` of the base token at ``price``."""

    side: Side
    price: Decimal
    amount: Decimal
    base_symbol: str
    rationale: str = ""

    def __post_init__(self):
        object.__setattr__(self, "side", Side.parse(self.side))
        object.__setattr__(self, "price", to_decimal(self.price))
        object.__setattr__(self, "amount", to_decimal(self.amount))
        if self.price <= 0:
            raise PrecisionError(f"Price must be positive, got {self.price}")
        if self.amount <= 0:
            raise PrecisionError(f"Amount must be positive, got {self.amount}")

    @property
    def notional(self) -> Decimal:
        return self.amount * self.price

    @classmethod
    def from_suggestion(cls, trade: Mapping[str, Any], base_symbol: str) -> "TradeIntent":
        """Build from a ``{"type", "price", "amount", "reason"}`` suggestion entry."""
        return cls(
            side=Side.parse(trade["type"]),
            price=trade["price"],
            amount=trade["amount"],
            base_symbol=base_symbol,
            rationale=str(trade.get("reason", "")),
        )


@dataclass(frozen=True)
class LimitOrder:
    salt: int
    maker: str
    receiver: str
    maker_asset: str
    taker_asset: str
    making_amount: int
    taking_amount: int
    expiration: int
    nonce: int
    allows_partial_fill: bool = True
    allows_multiple_fills: bool = True

    @property
    def maker_traits(self) -> int:
        traits = 0
        if not self.allows_partial_fill:
            traits |= _NO_PARTIAL_FILLS_FLAG
        if self.allows_multiple_fills:
            traits |= _ALLOW_MULTIPLE_FILLS_FLAG
        traits |= (self.expiration & UINT_40_MAX) << _EXPIRATION_OFFSET
        traits |= (self.nonce & UINT_40_MAX) << _NONCE_OFFSET
        return traits


def _random_uint40() -> int:
    return secrets.randbelow(UINT_40_MAX + 1)


def _check_address(field: str, value: Any) -> str:
    if not is_valid_address(value):
        raise InvalidAddressError(field, value)
    return value


def build_order(
    intent: TradeIntent,
    maker_token: TokenRef,
    quote_token: TokenRef,
    maker_address: str,
    chain_id: int,
    expiration_minutes: int = 60,
    now: Optional[int] = None,
) -> LimitOrder:
    """Build a limit order for ``intent``.

    ``maker_token`` is the base asset of the pair.  A sell gives base for
    quote, a buy gives quote for base.  Salt and nonce are random so equal
    inputs give different, equally valid orders.  ``chain_id`` is accepted
    for symmetry with signing; the order fields themselves are chain-free.
    """
    issued_at = int(time.time()) if now is None else int(now)
    expiration = issued_at + int(expiration_minutes) * 60
    if expiration > UINT_40_MAX:
        raise PrecisionError(f"Expiration {expiration} does not fit in 40 bits")

    base_units = to_base_units(intent.amount, maker_token.decimals)
    quote_units = to_base_units(intent.notional, quote_token.decimals)

    if intent.side is Side.SELL:
        maker_asset, taker_asset = maker_token.address, quote_token.address
        making_amount, taking_amount = base_units, quote_units
    else:
        maker_asset, taker_asset = quote_token.address, maker_token.address
        making_amount, taking_amount = quote_units, base_units

    maker = _check_address("maker", maker_address)
    _check_address("makerAsset", maker_asset)
    _check_address("takerAsset", taker_asset)

    return LimitOrder(
        salt=_random_uint40(),
        maker=maker,
        # proceeds always go back to the maker
        receiver=maker,
        maker_asset=maker_asset,
        taker_asset=taker_asset,
        making_amount=making_amount,
        taking_amount=taking_amount,
        expiration=expiration,
        nonce=_random_uint40(),
        allows_partial_fill=True,
        allows_multiple_fills=True,
    )


@dataclass(frozen=True)
class OrderView:
    side: Side
    price: Decimal
    amount: Decimal


def describe_order(
    maker_asset: str,
    making_amount: int,
    taking_amount: int,
    base_token: TokenRef,
    quote_token: TokenRef,
) -> OrderView:
    """Recover side, price and base amount from an order's raw amounts."""
    selling_base = normalize_address(maker_asset) == normalize_address(base_token.address)
    if selling_base:
        base = from_base_units(making_amount, base_token.decimals)
        quote = from_base_units(taking_amount, quote_token.decimals)
        side = Side.SELL
    else:
        quote = from_base_units(making_amount, quote_token.decimals)
        base = from_base_units(taking_amount, base_token.decimals)
        side = Side.BUY
    price = quote / base if base else Decimal(0)
    return OrderView(side=side, price=price, amount=base)
