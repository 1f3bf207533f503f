"""
Company mentions in assistant replies.

The system prompt asks the model to tag the company it is talking about as
``!TICKER, Company Name!``. This module finds those tags and maps them onto
the tracked stock universe.
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from services.universe import STOCK_UNIVERSE, StockInfo

logger = logging.getLogger(__name__)

# The name must hold at least one visible character
TICKER_TOKEN = re.compile(r"!([A-Z][A-Z0-9.\-]*),[ \t]*([^!\n]*?[^!\s])[ \t]*!")


@dataclass(frozen=True)
class TickerMatch:
    raw_token: str
    ticker_symbol: str
    company_name: str


def extract_tickers(text: str, seen: set[str] | None = None) -> Iterator[TickerMatch]:
    """
    Lazily yield each distinct ``!TICKER, Name!`` token in ``text`` once.

    ``seen`` carries raw tokens across calls; tokens already in it are
    skipped and new ones are added as they are yielded.
    """
    if seen is None:
        seen = set()
    for m in TICKER_TOKEN.finditer(text):
        raw = m.group(0)
        if raw in seen:
            continue
        seen.add(raw)
        yield TickerMatch(raw_token=raw, ticker_symbol=m.group(1), company_name=m.group(2).strip())


class TickerExtractionFilter:
    """Reports every token at most once for the lifetime of the filter."""

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def feed(self, text: str) -> list[TickerMatch]:
        return list(extract_tickers(text, self._seen))

    @property
    def seen(self) -> frozenset[str]:
        return frozenset(self._seen)


class TickerResolver:
    """
    Maps a TickerMatch to a tracked stock.

    Exact company name first, then exact symbol. With ``fuzzy`` enabled, a
    case-insensitive substring match on names (either direction) is tried
    last and only accepted when it yields a single candidate.
    """

    def __init__(self, stocks: tuple[StockInfo, ...] = STOCK_UNIVERSE, fuzzy: bool = True) -> None:
        self._stocks = stocks
        self.fuzzy = fuzzy

    def resolve(self, match: TickerMatch) -> StockInfo | None:
        for stock in self._stocks:
            if stock.name == match.company_name:
                return stock
        for stock in self._stocks:
            if stock.symbol == match.ticker_symbol:
                return stock
        if not self.fuzzy:
            return None

        name = match.company_name.strip().lower()
        if not name:
            return None
        candidates = [
            s for s in self._stocks
            if name in s.name.lower() or s.name.lower() in name
        ]
        if len(candidates) == 1:
            return candidates[0]
        if candidates:
            logger.debug(
                "Ambiguous company %r: %s", match.company_name, [c.symbol for c in candidates]
            )
        return None
