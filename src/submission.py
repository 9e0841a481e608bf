"""Serialize signed orders and talk to the 1inch orderbook API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from errors import CollaboratorError, SerializationError, SubmissionError
from rate_limit import NoLimit
from request_utils import (
    TRANSPORT_ERRORS,
    bearer_headers,
    call_with_timeout,
    read_error_message,
)
from signing import SignedOrder
from limit_order import LimitOrder
from tokens import ZERO_ADDRESS, is_valid_address, normalize_address
from utils import logger, short_hex

DEFAULT_BASE_URL = "https://api.1inch.dev"
ORDERBOOK_VERSION = "v4.0"

_STATUS_MAP = {
    "active": "pending",
    "open": "pending",
    "filled": "filled",
    "executed": "filled",
    "cancelled": "cancelled",
    "canceled": "cancelled",
}


def map_order_status(status: Any) -> str:
    """Collapse orderbook statuses into ``pending`` / ``filled`` / ``cancelled``."""
    return _STATUS_MAP.get(str(status or "").strip().lower(), "pending")


def _address_field(field: str, value: Any, *, allow_zero: bool = False) -> str:
    text = "" if value is None else str(value)
    if not text or text == "0x" or len(text) != 42 or not is_valid_address(text):
        raise SerializationError(field, value)
    text = normalize_address(text)
    if text == ZERO_ADDRESS and not allow_zero:
        raise SerializationError(field, value)
    return text


def serialize_order(order: LimitOrder) -> Dict[str, str]:
    """Wire form of ``order``: every integer as a decimal string, addresses lowercase.

    A zero ``receiver`` means "the maker" on-chain but the API rejects it, so
    the maker address is written instead.
    """
    maker = _address_field("maker", order.maker)
    receiver = _address_field("receiver", order.receiver or ZERO_ADDRESS, allow_zero=True)
    if receiver == ZERO_ADDRESS:
        receiver = maker
    return {
        "salt": str(int(order.salt)),
        "maker": maker,
        "receiver": receiver,
        "makerAsset": _address_field("makerAsset", order.maker_asset),
        "takerAsset": _address_field("takerAsset", order.taker_asset),
        "makingAmount": str(int(order.making_amount)),
        "takingAmount": str(int(order.taking_amount)),
        "makerTraits": str(int(order.maker_traits)),
    }


def submission_payload(signed: SignedOrder) -> Dict[str, Any]:
    return {
        "orderHash": signed.order_hash,
        "signature": signed.signature,
        "data": {**serialize_order(signed.order), "extension": "0x"},
    }


@dataclass(frozen=True)
class MakerOrder:
    """An order as reported back by the orderbook."""

    order_hash: str
    signature: str
    maker_asset: str
    taker_asset: str
    making_amount: int
    taking_amount: int
    status: str
    created_at: Optional[str]

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "MakerOrder":
        data = raw.get("data") or {}
        return cls(
            order_hash=str(raw.get("orderHash", "")),
            signature=str(raw.get("signature", "")),
            maker_asset=str(data.get("makerAsset", "")),
            taker_asset=str(data.get("takerAsset", "")),
            making_amount=int(data.get("makingAmount", 0)),
            taking_amount=int(data.get("takingAmount", 0)),
            status=map_order_status(raw.get("status")),
            created_at=raw.get("createDateTime"),
        )


class OrderbookClient:
    """Submits signed orders and lists a maker's orders.

    Submission is never retried here; the caller sees a ``SubmissionError``
    whose ``retryable`` flag says whether trying again is sensible.
    """

    def __init__(self, session, api_key: str, base_url: str = DEFAULT_BASE_URL, limiter=None):
        self._session = session
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._limiter = limiter or NoLimit()

    def _url(self, chain_id: int, path: str = "") -> str:
        return f"{self._base_url}/orderbook/{ORDERBOOK_VERSION}/{int(chain_id)}{path}"

    async def submit(self, signed: SignedOrder, chain_id: int) -> Dict[str, Any]:
        body = submission_payload(signed)
        url = self._url(chain_id)

        async def _post():
            async with self._session.post(url, json=body, headers=bearer_headers(self._api_key)) as resp:
                if not 200 <= resp.status < 300:
                    raise SubmissionError(resp.status, await read_error_message(resp))
                try:
                    return await resp.json(content_type=None)
                except ValueError:
                    return {}

        try:
            result = await call_with_timeout(_post, limiter=self._limiter)
        except SubmissionError:
            raise
        except TRANSPORT_ERRORS as exc:
            raise SubmissionError(None, str(exc) or type(exc).__name__, network=True) from exc
        logger.info(
            "order submitted | chain=%s maker=%s hash=%s",
            chain_id,
            short_hex(signed.order.maker),
            short_hex(signed.order_hash),
        )
        return result if isinstance(result, dict) else {"result": result}

    async def fetch_orders(self, maker: str, chain_id: int, limit: int = 50) -> List[MakerOrder]:
        url = self._url(chain_id, "/orders")
        params = {"maker": maker, "page": "1", "limit": str(limit)}

        async def _get():
            async with self._session.get(url, params=params, headers=bearer_headers(self._api_key)) as resp:
                if resp.status >= 400:
                    raise CollaboratorError("orderbook", await read_error_message(resp), resp.status)
                return await resp.json()

        try:
            data = await call_with_timeout(_get, limiter=self._limiter)
        except TRANSPORT_ERRORS as exc:
            raise CollaboratorError("orderbook", str(exc) or type(exc).__name__) from exc
        raw_orders = data.get("orders") if isinstance(data, dict) else data
        orders: List[MakerOrder] = []
        for idx, raw in enumerate(raw_orders or []):
            try:
                orders.append(MakerOrder.from_api(raw))
            except (AttributeError, TypeError, ValueError):
                logger.warning("skipping malformed order | maker=%s idx=%d", short_hex(maker), idx)
        return orders
