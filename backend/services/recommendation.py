"""
AI buy/sell recommendation for the company detail panel.

Collects fundamentals and the latest daily RSI, then asks Claude for a
rating. Never raises: any failure degrades to a NEUTRAL rating.
"""

import json
import logging

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage

import config
from services.fundamentals import (
    FundamentalsError,
    alpha_vantage_query,
    format_market_cap,
    get_company_overview,
    parse_number,
)

logger = logging.getLogger(__name__)

RECOMMENDATIONS = ("STRONG_BUY", "BUY", "NEUTRAL", "SELL", "STRONG_SELL")

_RECOMMENDATION_SYSTEM_PROMPT = """You are an equity analyst writing a one-line rating for a dashboard.
Given a company's fundamentals and its 14-day RSI, rate the stock.

Rules:
- recommendation must be one of STRONG_BUY, BUY, NEUTRAL, SELL, STRONG_SELL
- explanation is at most 3 short sentences and cites the numbers you used
- Return ONLY valid JSON: {"recommendation": "...", "explanation": "..."}"""


async def get_latest_rsi(symbol: str) -> float | None:
    data = await alpha_vantage_query(
        {
            "function": "RSI",
            "symbol": symbol,
            "interval": "daily",
            "time_period": 14,
            "series_type": "close",
        }
    )
    series = data.get("Technical Analysis: RSI") or {}
    if not series:
        return None
    latest = max(series)  # ISO dates sort chronologically
    return parse_number(series[latest].get("RSI"))


def _metric_lines(overview: dict, rsi: float | None) -> list[str]:
    return [
        f"Sector: {overview.get('Sector') or 'N/A'}",
        f"Industry: {overview.get('Industry') or 'N/A'}",
        f"Market Cap: {format_market_cap(overview.get('MarketCapitalization'))}",
        f"P/E Ratio: {overview.get('PERatio') or 'N/A'}",
        f"RSI: {rsi if rsi is not None else 'N/A'}",
    ]


def _parse_rating(raw: str) -> dict | None:
    if "```" in raw:
        raw = raw.split("```")[1]
        if raw.startswith("json"):
            raw = raw[4:]
    result = json.loads(raw.strip())
    if not isinstance(result, dict):
        return None
    rating = str(result.get("recommendation", "")).upper()
    if rating not in RECOMMENDATIONS:
        return None
    return {"recommendation": rating, "explanation": str(result.get("explanation", ""))}


async def get_ai_recommendation(symbol: str) -> dict:
    """Returns { symbol, recommendation, explanation }."""
    try:
        overview = await get_company_overview(symbol)
    except FundamentalsError as exc:
        logger.error("Recommendation for %s: no fundamentals: %s", symbol, exc)
        return {
            "symbol": symbol,
            "recommendation": "NEUTRAL",
            "explanation": f"Unable to analyze {symbol} at this time.",
        }

    try:
        rsi = await get_latest_rsi(symbol)
    except FundamentalsError as exc:
        logger.warning("RSI unavailable for %s: %s", symbol, exc)
        rsi = None

    metrics = _metric_lines(overview, rsi)
    llm = ChatAnthropic(model=config.ANTHROPIC_MODEL, max_tokens=256)
    try:
        resp = await llm.ainvoke(
            [
                SystemMessage(content=_RECOMMENDATION_SYSTEM_PROMPT),
                HumanMessage(content=json.dumps({"symbol": symbol, "metrics": metrics}, indent=2)),
            ]
        )
        rating = _parse_rating(str(resp.content).strip())
        if rating:
            return {"symbol": symbol, **rating}
        logger.warning("Recommendation for %s: unusable model output", symbol)
    except Exception as exc:
        logger.error("Recommendation generation failed for %s: %s", symbol, exc)

    return {"symbol": symbol, "recommendation": "NEUTRAL", "explanation": "\n".join(metrics)}
