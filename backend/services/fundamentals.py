"""
Company fundamentals from the Alpha Vantage OVERVIEW endpoint.

Alpha Vantage returns every field as a string ("None" and "-" for missing
values) and reports problems inside a 200 response, so both cases are
normalised here.
"""

import logging
from typing import Any

import httpx

import config
from services.cache import TTLCache

logger = logging.getLogger(__name__)

_overview_cache = TTLCache(config.FUNDAMENTALS_CACHE_TTL)

_ERROR_KEYS = ("Error Message", "Note", "Information")

# Fields surfaced in the company detail panel
SUMMARY_FIELDS = {
    "pe_ratio": "PERatio",
    "forward_pe": "ForwardPE",
    "peg_ratio": "PEGRatio",
    "eps": "EPS",
    "dividend_yield": "DividendYield",
    "profit_margin": "ProfitMargin",
    "return_on_equity": "ReturnOnEquityTTM",
    "return_on_assets": "ReturnOnAssetsTTM",
    "revenue_ttm": "RevenueTTM",
    "beta": "Beta",
    "week_52_high": "52WeekHigh",
    "week_52_low": "52WeekLow",
    "moving_average_50": "50DayMovingAverage",
    "moving_average_200": "200DayMovingAverage",
    "analyst_target_price": "AnalystTargetPrice",
}


class FundamentalsError(RuntimeError):
    """The fundamentals provider failed or returned an unusable payload."""


def parse_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text in {"", "None", "-", "N/A"}:
        return None
    try:
        return float(text.rstrip("%"))
    except ValueError:
        return None


def format_market_cap(value: Any) -> str:
    """$1.23T / $4.56B / $7.89M, or 'N/A' when the value is not a number."""
    num = parse_number(value)
    if num is None:
        return "N/A"
    if num >= 1e12:
        return f"${num / 1e12:.2f}T"
    if num >= 1e9:
        return f"${num / 1e9:.2f}B"
    if num >= 1e6:
        return f"${num / 1e6:.2f}M"
    return f"${num:,.2f}".rstrip("0").rstrip(".")


async def alpha_vantage_query(params: dict, client: httpx.AsyncClient | None = None) -> dict:
    """GET the Alpha Vantage query endpoint and return the JSON body."""
    if not config.ALPHA_VANTAGE_API_KEY:
        raise FundamentalsError("ALPHA_VANTAGE_API_KEY is not configured")

    query = {**params, "apikey": config.ALPHA_VANTAGE_API_KEY}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=15) as own_client:
                resp = await own_client.get(config.ALPHA_VANTAGE_URL, params=query)
        else:
            resp = await client.get(config.ALPHA_VANTAGE_URL, params=query)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise FundamentalsError(f"Alpha Vantage request failed: {exc}") from exc

    if not isinstance(data, dict):
        raise FundamentalsError("Alpha Vantage returned an unexpected payload")
    for key in _ERROR_KEYS:
        if key in data:
            raise FundamentalsError(str(data[key]))
    return data


async def get_company_overview(symbol: str, client: httpx.AsyncClient | None = None) -> dict:
    """Raw OVERVIEW payload for ``symbol``; cached for five minutes."""
    cached = _overview_cache.get(symbol)
    if cached is not None:
        return cached

    data = await alpha_vantage_query({"function": "OVERVIEW", "symbol": symbol}, client)
    if not data.get("Symbol"):
        raise FundamentalsError(f"No overview data for {symbol}")

    _overview_cache.put(symbol, data)
    return data


def summarize_overview(overview: dict) -> dict:
    """Detail panel view of an overview payload with numbers parsed."""
    summary = {
        "symbol": overview.get("Symbol"),
        "name": overview.get("Name"),
        "description": overview.get("Description"),
        "sector": overview.get("Sector") or "N/A",
        "industry": overview.get("Industry") or "N/A",
        "market_cap": parse_number(overview.get("MarketCapitalization")),
        "market_cap_display": format_market_cap(overview.get("MarketCapitalization")),
        "analyst_ratings": {
            "buy": parse_number(overview.get("AnalystRatingBuy")),
            "hold": parse_number(overview.get("AnalystRatingHold")),
            "sell": parse_number(overview.get("AnalystRatingSell")),
        },
    }
    for key, field in SUMMARY_FIELDS.items():
        summary[key] = parse_number(overview.get(field))
    return summary
