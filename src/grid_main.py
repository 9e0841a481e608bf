# grid_main.py
"""Suggest, sign and submit one batch of grid limit orders.

The runner resolves the configured pair on the configured chain, prices it
with a one-unit quote, asks the suggestion model for a handful of grid
trades, then builds, signs and submits one 1inch limit order per trade with
the hot wallet as maker.  Per-order outcomes are logged, followed by the
maker's orders as the orderbook reports them.
"""

from __future__ import annotations

import asyncio
import os
import signal
from typing import Optional

from account import TradingSession
from errors import GridSignerError
from lifecycle import LifecycleStore, status_label
from limit_order import describe_order
from signing import ExternalSigner, Signer
from utils import logger, setup_logging


async def run_grid(
    session: TradingSession,
    base_symbol: str,
    quote_symbol: str,
    signer: Optional[Signer] = None,
) -> LifecycleStore:
    chain_id = session.chain_id
    tokens = await session.oneinch.fetch_tokens(chain_id)
    base_token = tokens.resolve(base_symbol)
    quote_token = tokens.resolve(quote_symbol)

    if isinstance(signer, ExternalSigner):
        maker = signer.address
    else:
        maker = session.hot_wallets.get_or_create().address
    logger.info(
        "[grid] session | chain=%s pair=%s/%s maker=%s",
        chain_id,
        base_token.symbol,
        quote_token.symbol,
        maker,
    )

    price = await session.oneinch.current_price(chain_id, base_token, quote_token)
    suggestion = await session.suggestions.suggest(price, base_token.symbol, quote_token.symbol)
    if suggestion.reasoning:
        logger.info("[grid] model reasoning | %s", suggestion.reasoning)

    store = session.build_store()
    store.load_intents(suggestion.trades)
    if not store.records:
        logger.warning("[grid] no usable trades suggested; nothing to submit")
        return store

    await store.run_batch(
        base_token,
        quote_token,
        chain_id,
        signer=signer,
        expiration_minutes=session.expiration_minutes,
    )
    for record in store.records:
        logger.info(
            "[grid] %s %s @ %s | id=%s %s",
            record.intent.side.value,
            record.intent.amount,
            record.intent.price,
            record.record_id,
            status_label(record),
        )

    try:
        orders = await session.orderbook.fetch_orders(maker, chain_id)
    except GridSignerError as exc:
        logger.warning("[grid] could not list orders | maker=%s error=%s", maker, exc)
        return store
    for order in orders:
        view = describe_order(
            order.maker_asset, order.making_amount, order.taking_amount, base_token, quote_token
        )
        logger.info(
            "[grid] orderbook | hash=%s side=%s price=%s amount=%s status=%s",
            order.order_hash,
            view.side.value,
            view.price,
            view.amount,
            order.status,
        )
    return store


async def main():
    setup_logging()
    base_symbol = os.getenv("GRID_BASE_SYMBOL") or input("Base token ? ")
    quote_symbol = os.getenv("GRID_QUOTE_SYMBOL") or input("Quote token ? ")

    session = TradingSession()
    task = asyncio.create_task(run_grid(session, base_symbol, quote_symbol))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except NotImplementedError:
            # Fallback for platforms without loop signal handlers (e.g. Windows)
            signal.signal(sig, lambda s, f, lp=loop: lp.call_soon_threadsafe(task.cancel))

    try:
        store = await task
        logger.info("[grid] done | %s", " ".join(f"{k}={v}" for k, v in store.counts().items()))
    except asyncio.CancelledError:
        logger.info("[grid] interrupted")
    except GridSignerError as exc:
        logger.error("[grid] aborted | error=%s", exc)
    finally:
        await session.close()


if __name__ == "__main__":
    asyncio.run(main())
