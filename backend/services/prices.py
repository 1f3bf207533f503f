"""
Stock quote service using yfinance.

All public functions are async. yfinance is synchronous, so all calls
run inside asyncio.to_thread to avoid blocking the event loop.

Quotes are cached for QUOTE_CACHE_TTL seconds. The ticker board reloads the
whole universe in small batches with a pause in between to stay under the
provider's rate limits; a symbol that fails keeps its previous quote.
"""

import asyncio
import csv
import datetime
import io
import logging
import math
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import yfinance as yf

import config
from services.cache import TTLCache
from services.universe import STOCK_UNIVERSE, StockInfo, find_stock, format_symbol

logger = logging.getLogger(__name__)

_quote_cache = TTLCache(config.QUOTE_CACHE_TTL)
_history_cache = TTLCache(config.QUOTE_CACHE_TTL)

VALID_PERIODS = {"1d", "5d", "1mo", "3mo", "6mo", "1y", "5y"}

EXPORT_COLUMNS = [
    "Symbol",
    "Name",
    "Market",
    "Price",
    "Change",
    "ChangePercent",
    "Open",
    "High",
    "Low",
    "Volume",
    "PreviousClose",
    "Timestamp",
]


class UnknownTickerError(LookupError):
    """Raised when a symbol is not part of the tracked universe."""


def as_number(value: Any) -> float | None:
    """Return ``value`` as a float if it is a finite number, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        return None
    return number


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _fetch_quote(provider_symbol: str) -> dict:
    """Synchronous fetch, runs in a thread."""
    t = yf.Ticker(provider_symbol)
    hist = t.history(period="5d")
    if hist.empty:
        raise ValueError(f"No price data for {provider_symbol}")

    last = hist.iloc[-1]
    close = as_number(float(last["Close"]))
    previous = as_number(float(hist["Close"].iloc[-2])) if len(hist) > 1 else close
    change = close - previous if close is not None and previous is not None else None
    change_pct = (change / previous * 100) if change is not None and previous else None

    return {
        "price": close,
        "previous_close": previous,
        "change": round(change, 4) if change is not None else None,
        "change_pct": round(change_pct, 4) if change_pct is not None else None,
        "open": as_number(float(last["Open"])),
        "high": as_number(float(last["High"])),
        "low": as_number(float(last["Low"])),
        "volume": int(last["Volume"]) if as_number(float(last["Volume"])) is not None else None,
        "timestamp": hist.index[-1].to_pydatetime().isoformat(),
    }


def _fetch_history(provider_symbol: str, period: str) -> list[dict]:
    """Synchronous history fetch."""
    t = yf.Ticker(provider_symbol)
    hist = t.history(period=period)
    if hist.empty:
        return []

    result = []
    for dt_idx, row in hist.iterrows():
        result.append({
            "date": str(dt_idx.date()),
            "open": round(float(row["Open"]), 4),
            "high": round(float(row["High"]), 4),
            "low": round(float(row["Low"]), 4),
            "close": round(float(row["Close"]), 4),
            "volume": int(row["Volume"]),
        })
    return result


def _require_stock(symbol: str) -> StockInfo:
    stock = find_stock(symbol)
    if stock is None:
        raise UnknownTickerError(f"Ticker {symbol!r} is not in the stock list")
    return stock


# ---------------------------------------------------------------------------
# Public async API
# ---------------------------------------------------------------------------

async def get_quote(symbol: str) -> dict:
    """
    Returns: { symbol, name, market, price, change, change_pct, open, high,
               low, volume, previous_close, timestamp }

    On provider failure the quote carries ``error`` and no prices instead of
    raising. Raises UnknownTickerError for symbols outside the universe.
    """
    stock = _require_stock(symbol)
    cached = _quote_cache.get(stock.symbol)
    if cached is not None:
        return cached

    try:
        data = await asyncio.to_thread(_fetch_quote, format_symbol(stock.symbol, stock.market))
    except Exception as exc:
        logger.error("Failed to fetch quote for %s: %s", stock.symbol, exc)
        return {**stock.to_dict(), "price": None, "change_pct": None, "error": str(exc)}

    quote = {**stock.to_dict(), **data}
    _quote_cache.put(stock.symbol, quote)
    return quote


async def get_price_history(symbol: str, period: str = "1mo") -> list[dict]:
    """
    period: '1d' | '5d' | '1mo' | '3mo' | '6mo' | '1y' | '5y'
    Returns list of { date, open, high, low, close, volume }
    """
    stock = _require_stock(symbol)
    if period not in VALID_PERIODS:
        period = "1mo"

    cache_key = f"{stock.symbol}:{period}"
    cached = _history_cache.get(cache_key)
    if cached is not None:
        return cached

    try:
        data = await asyncio.to_thread(
            _fetch_history, format_symbol(stock.symbol, stock.market), period
        )
    except Exception as exc:
        logger.error("Failed to fetch history for %s: %s", stock.symbol, exc)
        return []
    _history_cache.put(cache_key, data)
    return data


# ---------------------------------------------------------------------------
# Ticker board
# ---------------------------------------------------------------------------

class QuoteBoard:
    """Last known quote for every stock in the universe."""

    def __init__(
        self,
        stocks: Iterable[StockInfo] = STOCK_UNIVERSE,
        fetch: Callable[[str], Awaitable[dict]] = get_quote,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._stocks = list(stocks)
        self._fetch = fetch
        self._sleep = sleep
        self._quotes: dict[str, dict] = {
            s.symbol: {**s.to_dict(), "price": None, "change_pct": None, "loading": True}
            for s in self._stocks
        }
        self.last_update: datetime.datetime | None = None
        self._refreshing = False

    def snapshot(self) -> list[dict]:
        return [dict(self._quotes[s.symbol]) for s in self._stocks]

    async def refresh(
        self,
        symbols: list[str] | None = None,
        batch_size: int = config.QUOTE_BATCH_SIZE,
        delay: float = config.QUOTE_BATCH_DELAY,
    ) -> dict:
        """
        Reload quotes batch by batch. Symbols in a batch are fetched
        concurrently; the board waits ``delay`` seconds between batches.

        Returns { updated, failed: {symbol: error}, last_update }.
        """
        if symbols is None:
            symbols = [s.symbol for s in self._stocks]
        if self._refreshing:
            logger.warning("Quote refresh already running; skipping.")
            return {"updated": 0, "failed": {}, "skipped": True, "last_update": self.last_update_display()}

        self._refreshing = True
        updated = 0
        failed: dict[str, str] = {}
        try:
            for i in range(0, len(symbols), batch_size):
                batch = symbols[i : i + batch_size]
                results = await asyncio.gather(
                    *[self._fetch(sym) for sym in batch], return_exceptions=True
                )
                for sym, result in zip(batch, results):
                    if isinstance(result, Exception):
                        failed[sym] = str(result)
                    elif result.get("error") or result.get("price") is None:
                        failed[sym] = result.get("error") or "no price"
                    else:
                        self._quotes[sym] = {**result, "loading": False}
                        updated += 1
                if i + batch_size < len(symbols):
                    await self._sleep(delay)
        finally:
            self._refreshing = False

        for sym, err in failed.items():
            # Keep the previous quote on screen
            if sym in self._quotes:
                self._quotes[sym]["loading"] = False
            logger.warning("Quote refresh failed for %s: %s", sym, err)

        if updated:
            self.last_update = datetime.datetime.now()
        logger.info("Quote refresh: %d updated, %d failed", updated, len(failed))
        return {"updated": updated, "failed": failed, "last_update": self.last_update_display()}

    def last_update_display(self) -> str | None:
        if self.last_update is None:
            return None
        return self.last_update.strftime("%m/%d/%Y %I:%M %p")


def export_csv(quotes: Iterable[dict]) -> str:
    """Render board quotes as CSV. Quotes without a price are left out."""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for q in quotes:
        if q.get("price") is None:
            continue
        writer.writerow({
            "Symbol": q.get("symbol"),
            "Name": q.get("name"),
            "Market": q.get("market"),
            "Price": q.get("price"),
            "Change": q.get("change"),
            "ChangePercent": q.get("change_pct"),
            "Open": q.get("open"),
            "High": q.get("high"),
            "Low": q.get("low"),
            "Volume": q.get("volume"),
            "PreviousClose": q.get("previous_close"),
            "Timestamp": q.get("timestamp"),
        })
    return buf.getvalue()
