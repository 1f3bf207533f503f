"""Tests for !TICKER, Name! extraction and resolution."""

from assistant.ticker_filter import (
    TickerExtractionFilter,
    TickerMatch,
    TickerResolver,
    extract_tickers,
)
from services.universe import StockInfo


def test_single_token_in_prose():
    matches = list(extract_tickers("Apple is strong! !AAPL, Apple Inc.! buy it"))
    assert matches == [
        TickerMatch(raw_token="!AAPL, Apple Inc.!", ticker_symbol="AAPL", company_name="Apple Inc.")
    ]


def test_repeated_token_reported_once():
    text = "!MSFT, Microsoft Corporation! is big. Again: !MSFT, Microsoft Corporation!"
    matches = list(extract_tickers(text))
    assert len(matches) == 1
    assert matches[0].ticker_symbol == "MSFT"


def test_distinct_tokens_in_order():
    text = "Compare !MSFT, Microsoft Corporation! with !INTC, Intel Corporation!."
    assert [m.ticker_symbol for m in extract_tickers(text)] == ["MSFT", "INTC"]


def test_unmatched_bang_is_ignored():
    assert list(extract_tickers("Wow! Great quarter!")) == []
    assert list(extract_tickers("trailing !MSFT, Microsoft")) == []


def test_first_match_wins_on_shared_delimiter():
    # the closing ! of the first token cannot open a second one
    matches = list(extract_tickers("!MSFT, Microsoft!INTC, Intel!"))
    assert [m.ticker_symbol for m in matches] == ["MSFT"]


def test_lowercase_led_identifier_does_not_match():
    assert list(extract_tickers("!msft, Microsoft!")) == []


def test_blank_company_name_does_not_match():
    assert list(extract_tickers("!A, !")) == []
    assert list(extract_tickers("!A,   \t!")) == []
    assert [m.company_name for m in extract_tickers("!X, Y !")] == ["Y"]


def test_resolver_ignores_blank_name():
    resolver = TickerResolver((StockInfo("IBM", "International Business Machines", "US"),), fuzzy=True)
    assert resolver.resolve(_match("A", " ")) is None


def test_extraction_is_lazy():
    gen = extract_tickers("!MSFT, Microsoft Corporation! !INTC, Intel Corporation!")
    assert next(gen).ticker_symbol == "MSFT"
    assert next(gen).ticker_symbol == "INTC"


def test_filter_dedups_across_calls():
    f = TickerExtractionFilter()
    assert len(f.feed("!MSFT, Microsoft Corporation!")) == 1
    assert f.feed("again !MSFT, Microsoft Corporation!") == []
    assert len(f.feed("!INTC, Intel Corporation!")) == 1
    assert f.seen == {"!MSFT, Microsoft Corporation!", "!INTC, Intel Corporation!"}


_STOCKS = (
    StockInfo("MSFT", "Microsoft Corporation", "US"),
    StockInfo("SHOP.TRT", "Shopify Inc.", "TSX"),
    StockInfo("RY.TRT", "Royal Bank of Canada", "TSX"),
    StockInfo("TD.TRT", "Toronto-Dominion Bank", "TSX"),
)


def _match(ticker: str, name: str) -> TickerMatch:
    return TickerMatch(raw_token=f"!{ticker}, {name}!", ticker_symbol=ticker, company_name=name)


def test_resolver_exact_name():
    resolver = TickerResolver(_STOCKS)
    assert resolver.resolve(_match("XXX", "Microsoft Corporation")).symbol == "MSFT"


def test_resolver_exact_symbol():
    resolver = TickerResolver(_STOCKS, fuzzy=False)
    assert resolver.resolve(_match("SHOP.TRT", "Shopify")).symbol == "SHOP.TRT"


def test_resolver_fuzzy_single_candidate():
    resolver = TickerResolver(_STOCKS, fuzzy=True)
    assert resolver.resolve(_match("SHOP", "shopify")).symbol == "SHOP.TRT"


def test_resolver_fuzzy_disabled():
    resolver = TickerResolver(_STOCKS, fuzzy=False)
    assert resolver.resolve(_match("SHOP", "shopify")) is None


def test_resolver_ambiguous_is_noop():
    resolver = TickerResolver(_STOCKS, fuzzy=True)
    # "Bank" appears in two names
    assert resolver.resolve(_match("BANK", "Bank")) is None


def test_resolver_no_candidate():
    resolver = TickerResolver(_STOCKS, fuzzy=True)
    assert resolver.resolve(_match("AAPL", "Apple Inc.")) is None
