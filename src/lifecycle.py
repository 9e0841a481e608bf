"""Order record state machine and the store that drives it.

Each trade intent gets one ``OrderRecord``::

    READY --build--> CREATED --sign+submit--> SUBMITTED
    READY --build fails--> FAILED
    CREATED --sign or submit fails--> FAILED

Records are immutable; the transition functions below are pure and return a
new record.  ``LifecycleStore`` performs the I/O (balances, signing,
submission) and swaps records in place, so the UI can always show which
order succeeded, which failed, and why.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from errors import (
    GridSignerError,
    InsufficientBalanceError,
    InvalidAddressError,
    InvalidTransitionError,
    PrecisionError,
    SerializationError,
    SigningError,
    SubmissionError,
)
from id_generator import uuid_record_id
from limit_order import LimitOrder, Side, TradeIntent, build_order
from request_utils import TRANSPORT_ERRORS
from signing import ExternalSigner, PrivateKeySigner, SignedOrder, Signer, sign_order
from tokens import TokenRef
from utils import logger, short_hex


class OrderStatus(str, Enum):
    READY = "ready"
    CREATED = "created"
    SUBMITTED = "submitted"
    FAILED = "failed"


_TRANSITIONS = {
    OrderStatus.READY: {OrderStatus.CREATED, OrderStatus.FAILED},
    OrderStatus.CREATED: {OrderStatus.SUBMITTED, OrderStatus.FAILED},
    OrderStatus.SUBMITTED: set(),
    OrderStatus.FAILED: set(),
}


@dataclass(frozen=True)
class OrderRecord:
    record_id: str
    intent: TradeIntent
    status: OrderStatus = OrderStatus.READY
    order: Optional[LimitOrder] = None
    signed: Optional[SignedOrder] = None
    error_reason: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return not _TRANSITIONS[self.status]

    @property
    def signature(self) -> Optional[str]:
        return self.signed.signature if self.signed else None

    @property
    def order_hash(self) -> Optional[str]:
        return self.signed.order_hash if self.signed else None


def new_record(intent: TradeIntent, idx: Optional[int] = None) -> OrderRecord:
    return OrderRecord(record_id=uuid_record_id("limit", intent.side.value, idx), intent=intent)


def _transition(record: OrderRecord, target: OrderStatus, **changes) -> OrderRecord:
    if target not in _TRANSITIONS[record.status]:
        raise InvalidTransitionError(record.record_id, record.status.value, target.value)
    return dataclasses.replace(record, status=target, **changes)


def mark_created(record: OrderRecord, order: LimitOrder) -> OrderRecord:
    return _transition(record, OrderStatus.CREATED, order=order)


def mark_signed(record: OrderRecord, signed: SignedOrder) -> OrderRecord:
    """Attach a signature; the record stays ``CREATED`` until submission."""
    if record.status is not OrderStatus.CREATED:
        raise InvalidTransitionError(record.record_id, record.status.value, "signed")
    return dataclasses.replace(record, signed=signed)


def mark_submitted(record: OrderRecord, signed: SignedOrder) -> OrderRecord:
    return _transition(record, OrderStatus.SUBMITTED, signed=signed)


def mark_failed(record: OrderRecord, reason: str) -> OrderRecord:
    return _transition(record, OrderStatus.FAILED, error_reason=reason)


def status_label(record: OrderRecord) -> str:
    """One-line, per-state description for display."""
    status = record.status
    if status is OrderStatus.READY:
        return "ready"
    if status is OrderStatus.CREATED:
        return "signed, awaiting submission" if record.signed else "built, awaiting signature"
    if status is OrderStatus.SUBMITTED:
        return f"submitted {record.order_hash}"
    if status is OrderStatus.FAILED:
        return f"failed: {record.error_reason}"
    raise AssertionError(f"unhandled status {status!r}")


def required_balances(records: Iterable[OrderRecord]) -> Tuple[Decimal, Decimal]:
    """Base amount needed by sells and quote notional needed by buys."""
    sell_total = Decimal(0)
    buy_total = Decimal(0)
    for record in records:
        if record.intent.side is Side.SELL:
            sell_total += record.intent.amount
        else:
            buy_total += record.intent.notional
    return sell_total, buy_total


def check_sufficiency(
    records: Iterable[OrderRecord],
    base_symbol: str,
    base_balance: Decimal,
    quote_symbol: Optional[str] = None,
    quote_balance: Optional[Decimal] = None,
) -> None:
    """Raise ``InsufficientBalanceError`` if the batch cannot be funded.

    The quote side is only checked when a quote balance is supplied.
    """
    sell_total, buy_total = required_balances(records)
    if sell_total > base_balance:
        raise InsufficientBalanceError(base_symbol, sell_total, base_balance)
    if quote_balance is not None and buy_total > quote_balance:
        raise InsufficientBalanceError(quote_symbol or "quote", buy_total, quote_balance)


class LifecycleStore:
    """Session-scoped owner of the hot wallet and the order records."""

    def __init__(self, hot_wallet_manager, orderbook, rpc=None):
        self._wallets = hot_wallet_manager
        self._orderbook = orderbook
        self._rpc = rpc if rpc is not None else getattr(hot_wallet_manager, "rpc", None)
        self._records: Dict[str, OrderRecord] = {}
        self._sequence: List[str] = []
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------
    @property
    def records(self) -> List[OrderRecord]:
        return [self._records[rid] for rid in self._sequence]

    def get(self, record_id: str) -> OrderRecord:
        return self._records[record_id]

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in OrderStatus}
        for record in self._records.values():
            counts[record.status.value] += 1
        return counts

    def load_intents(self, intents: Iterable[TradeIntent]) -> List[OrderRecord]:
        """Replace the current batch with fresh ``READY`` records."""
        self._records.clear()
        self._sequence.clear()
        self.last_error = None
        for idx, intent in enumerate(intents):
            self._append(new_record(intent, idx))
        logger.info("intents loaded | count=%d", len(self._sequence))
        return self.records

    def restart(self, record_id: str) -> OrderRecord:
        """Replace a ``FAILED`` record with a fresh ``READY`` one for the same intent."""
        old = self._records[record_id]
        if old.status is not OrderStatus.FAILED:
            raise InvalidTransitionError(record_id, old.status.value, OrderStatus.READY.value)
        pos = self._sequence.index(record_id)
        fresh = new_record(old.intent, pos)
        del self._records[record_id]
        self._sequence[pos] = fresh.record_id
        self._records[fresh.record_id] = fresh
        logger.info("record restarted | old=%s new=%s", record_id, fresh.record_id)
        return fresh

    def _append(self, record: OrderRecord) -> None:
        self._records[record.record_id] = record
        self._sequence.append(record.record_id)

    def _update(self, record: OrderRecord) -> OrderRecord:
        self._records[record.record_id] = record
        return record

    # ------------------------------------------------------------------
    def _default_signer(self) -> PrivateKeySigner:
        return PrivateKeySigner(self._wallets.get_or_create().private_key)

    def _maker_for(self, signer: Signer) -> str:
        if isinstance(signer, ExternalSigner):
            return signer.address
        return self._wallets.get_or_create().address

    async def _balance(self, token: TokenRef, chain_id: int, signer: Signer) -> Decimal:
        if not isinstance(signer, ExternalSigner):
            return await self._wallets.native_or_token_balance(token, chain_id)
        if self._rpc is None:
            logger.warning("no rpc client configured; balance reported as 0 | token=%s", token.symbol)
            return Decimal(0)
        try:
            return await self._rpc.balance_of(token, signer.address, chain_id, decimals=token.decimals)
        except (GridSignerError, ValueError, *TRANSPORT_ERRORS) as exc:
            logger.warning(
                "balance query failed; treating as 0 | token=%s chain=%s address=%s error=%s",
                token.symbol,
                chain_id,
                signer.address,
                exc,
            )
            return Decimal(0)

    async def preflight(
        self,
        base_token: TokenRef,
        quote_token: TokenRef,
        chain_id: int,
        signer: Optional[Signer] = None,
    ) -> None:
        """All-or-nothing funding check over every ``READY`` record."""
        signer = signer or self._default_signer()
        pending = [r for r in self.records if r.status is OrderStatus.READY]
        sell_total, buy_total = required_balances(pending)
        base_balance = (
            await self._balance(base_token, chain_id, signer) if sell_total > 0 else Decimal(0)
        )
        quote_balance = (
            await self._balance(quote_token, chain_id, signer) if buy_total > 0 else None
        )
        try:
            check_sufficiency(pending, base_token.symbol, base_balance, quote_token.symbol, quote_balance)
        except InsufficientBalanceError as exc:
            self.last_error = str(exc)
            logger.error(
                "preflight rejected batch | token=%s required=%s available=%s",
                exc.symbol,
                exc.required,
                exc.available,
            )
            raise

    async def run_batch(
        self,
        base_token: TokenRef,
        quote_token: TokenRef,
        chain_id: int,
        signer: Optional[Signer] = None,
        expiration_minutes: int = 60,
    ) -> List[OrderRecord]:
        """Build, sign and submit every ``READY`` record in array order.

        Signing and submission failures fail only their own record.  Input
        validation errors fail the record and are re-raised, leaving later
        records ``READY``.
        """
        signer = signer or self._default_signer()
        await self.preflight(base_token, quote_token, chain_id, signer)
        maker = self._maker_for(signer)
        self.last_error = None

        for record_id in list(self._sequence):
            if self._records[record_id].status is not OrderStatus.READY:
                continue
            await self._process(record_id, base_token, quote_token, chain_id, signer, maker, expiration_minutes)
        logger.info("batch finished | %s", " ".join(f"{k}={v}" for k, v in self.counts().items()))
        return self.records

    async def _process(
        self,
        record_id: str,
        base_token: TokenRef,
        quote_token: TokenRef,
        chain_id: int,
        signer: Signer,
        maker: str,
        expiration_minutes: int,
    ) -> OrderRecord:
        record = self._records[record_id]
        intent = record.intent
        try:
            order = build_order(intent, base_token, quote_token, maker, chain_id, expiration_minutes)
        except (PrecisionError, InvalidAddressError) as exc:
            self._fail(record, f"build: {exc}")
            raise
        record = self._update(mark_created(record, order))
        logger.info(
            "order created | id=%s side=%s price=%s amount=%s making=%s taking=%s",
            record_id,
            intent.side.value,
            intent.price,
            intent.amount,
            order.making_amount,
            order.taking_amount,
        )

        try:
            signed = await sign_order(order, chain_id, signer)
        except SigningError as exc:
            return self._fail(record, str(exc))
        record = self._update(mark_signed(record, signed))

        try:
            await self._orderbook.submit(signed, chain_id)
        except SerializationError as exc:
            self._fail(record, f"serialize: {exc}")
            raise
        except SubmissionError as exc:
            return self._fail(record, str(exc))
        record = self._update(mark_submitted(record, signed))
        logger.info("order submitted | id=%s hash=%s", record_id, short_hex(signed.order_hash))
        return record

    def _fail(self, record: OrderRecord, reason: str) -> OrderRecord:
        logger.error(
            "order failed | id=%s side=%s price=%s status=%s reason=%s",
            record.record_id,
            record.intent.side.value,
            record.intent.price,
            record.status.value,
            reason,
        )
        self.last_error = reason
        return self._update(mark_failed(record, reason))
