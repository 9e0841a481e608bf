"""Grid trade suggestions from an OpenRouter-hosted model."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List

from errors import CollaboratorError
from limit_order import TradeIntent
from rate_limit import NoLimit
from request_utils import (
    TRANSPORT_ERRORS,
    bearer_headers,
    call_with_timeout,
    read_error_message,
)
from utils import logger

DEFAULT_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL = "anthropic/claude-3.5-sonnet"
# model answers are slow compared to REST lookups
SUGGESTION_TIMEOUT = float(os.getenv("GRID_SUGGESTION_TIMEOUT", "60"))

SYSTEM_PROMPT = (
    "You are a professional crypto trading AI assistant. Analyze market conditions "
    "and provide strategic grid trading recommendations. Always respond with valid JSON only."
)

USER_PROMPT = """Current price for {base} is ${price}. Return as JSON the grid trades based on current market sentiment. I want to create {count} orders for {base}/{quote} trading pair.

Please analyze the current market conditions and provide:
1. {count} strategic grid trading orders (mix of buy and sell orders)
2. Market sentiment analysis
3. Reasoning for the suggested trades

Return the response in this exact JSON format:
{{
  "gridTrades": [
    {{
      "type": "buy",
      "price": 0.95,
      "amount": 100,
      "reason": "Support level buy order"
    }}
  ],
  "marketSentiment": "bullish/bearish/neutral",
  "reasoning": "Explanation of market analysis"
}}"""


@dataclass(frozen=True)
class GridSuggestion:
    trades: List[TradeIntent]
    market_sentiment: str = ""
    reasoning: str = ""
    skipped: List[str] = field(default_factory=list)


def _strip_fences(content: str) -> str:
    content = content.strip()
    if "```json" in content:
        content = content.split("```json", 1)[1].split("```", 1)[0]
    elif content.startswith("```"):
        content = content.strip("`")
    return content.strip()


def parse_suggestion(content: str, base_symbol: str) -> GridSuggestion:
    """Parse model output into trade intents.

    The ``gridTrades`` array must exist.  Individual trades with a bad side,
    price or amount are dropped and listed in ``skipped``.
    """
    try:
        body = json.loads(_strip_fences(content))
    except ValueError as exc:
        raise CollaboratorError("suggest", f"model output is not JSON: {exc}") from exc
    if not isinstance(body, dict) or not isinstance(body.get("gridTrades"), list):
        raise CollaboratorError("suggest", "model output has no gridTrades array")

    trades: List[TradeIntent] = []
    skipped: List[str] = []
    for idx, raw in enumerate(body["gridTrades"]):
        try:
            trades.append(TradeIntent.from_suggestion(raw, base_symbol))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("suggested trade skipped | idx=%d error=%s", idx, exc)
            skipped.append(f"{idx}: {exc}")
    return GridSuggestion(
        trades=trades,
        market_sentiment=str(body.get("marketSentiment", "")),
        reasoning=str(body.get("reasoning", "")),
        skipped=skipped,
    )


class SuggestionClient:
    def __init__(
        self,
        session,
        api_key: str,
        model: str = DEFAULT_MODEL,
        url: str = DEFAULT_URL,
        limiter=None,
        order_count: int = 5,
    ):
        self._session = session
        self._api_key = api_key
        self.model = model
        self.url = url
        self._limiter = limiter or NoLimit()
        self.order_count = order_count

    def _request_body(self, current_price: Decimal, base_symbol: str, quote_symbol: str) -> dict:
        prompt = USER_PROMPT.format(
            base=base_symbol, quote=quote_symbol, price=current_price, count=self.order_count
        )
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.7,
            "max_tokens": 1000,
        }

    async def suggest(self, current_price: Decimal, base_symbol: str, quote_symbol: str) -> GridSuggestion:
        body = self._request_body(current_price, base_symbol, quote_symbol)
        headers = {**bearer_headers(self._api_key), "X-Title": "Grid Order Signer"}

        async def _post() -> Any:
            async with self._session.post(self.url, json=body, headers=headers) as resp:
                if resp.status >= 400:
                    raise CollaboratorError("suggest", await read_error_message(resp), resp.status)
                return await resp.json()

        try:
            data = await call_with_timeout(_post, limiter=self._limiter, timeout=SUGGESTION_TIMEOUT)
        except TRANSPORT_ERRORS as exc:
            raise CollaboratorError("suggest", str(exc) or type(exc).__name__) from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise CollaboratorError("suggest", "invalid response format from model provider") from None
        if not isinstance(content, str):
            raise CollaboratorError("suggest", "model returned non-text content")

        suggestion = parse_suggestion(content, base_symbol)
        logger.info(
            "suggestions received | pair=%s/%s trades=%d skipped=%d sentiment=%s",
            base_symbol,
            quote_symbol,
            len(suggestion.trades),
            len(suggestion.skipped),
            suggestion.market_sentiment or "-",
        )
        return suggestion
