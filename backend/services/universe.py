"""
The fixed list of companies shown on the ticker board.

Symbols are stored in Alpha Vantage notation (exchange suffixes like .TRT,
.LON, .SHG). ``format_symbol`` rewrites them into the Yahoo Finance notation
used for quotes and charts.
"""

from dataclasses import asdict, dataclass
from typing import Literal

Market = Literal["US", "XETRA", "LSE", "TSX", "TSXV", "BSE", "SSE", "SZSE", "MX"]


@dataclass(frozen=True)
class StockInfo:
    symbol: str
    name: str
    market: Market

    def to_dict(self) -> dict:
        return asdict(self)


STOCK_UNIVERSE: tuple[StockInfo, ...] = (
    # US (NYSE / NASDAQ)
    StockInfo("IBM", "International Business Machines Corporation", "US"),
    StockInfo("MSFT", "Microsoft Corporation", "US"),
    StockInfo("AMZN", "Amazon.com Inc.", "US"),
    StockInfo("GOOGL", "Alphabet Inc.", "US"),
    StockInfo("META", "Meta Platforms Inc.", "US"),
    StockInfo("BRKB.BA", "Berkshire Hathaway Inc.", "US"),
    StockInfo("SPY", "SPDR S&P 500 ETF Trust", "US"),
    StockInfo("TCEHY", "Tencent Holdings Ltd.", "US"),
    StockInfo("BABA", "Alibaba Group Holding Ltd.", "US"),
    StockInfo("LVMUY", "LVMH Moët Hennessy Louis Vuitton", "US"),
    StockInfo("UBER", "Uber Technologies Inc.", "US"),
    StockInfo("RTX", "Raytheon Technologies Corporation", "US"),
    StockInfo("LMT", "Lockheed Martin Corporation", "US"),
    StockInfo("INTC", "Intel Corporation", "US"),
    StockInfo("ABNB", "Airbnb Inc.", "US"),
    StockInfo("RSP", "Invesco S&P 500 Equal Weight ETF", "US"),
    StockInfo("COIN", "Coinbase Global Inc.", "US"),
    StockInfo("TLT", "iShares 20+ Year Treasury Bond ETF", "US"),
    StockInfo("BIDU", "Baidu Inc.", "US"),
    StockInfo("EL", "Estée Lauder Companies Inc.", "US"),
    StockInfo("PINS", "Pinterest Inc.", "US"),
    StockInfo("PARA", "Paramount Global", "US"),
    StockInfo("QLD", "ProShares Ultra QQQ", "US"),
    StockInfo("DJT", "DJT Corporation", "US"),
    StockInfo("TMF", "Direxion Daily 20+ Year Treasury Bull 3x Shares", "US"),
    StockInfo("EWZ", "iShares MSCI Brazil ETF", "US"),
    # Germany (XETRA)
    StockInfo("MBG.XETRA", "Mercedes-Benz Group AG", "XETRA"),
    StockInfo("DHER.XETRA", "Deutsche Börse AG", "XETRA"),
    StockInfo("SMSN.IL", "Siemens AG", "XETRA"),
    StockInfo("POAHY.US", "Porsche Automobil Holding SE", "XETRA"),
    StockInfo("BMW.XETRA", "BMW AG", "XETRA"),
    StockInfo("SAP.XETRA", "SAP SE", "XETRA"),
    # UK (London Stock Exchange)
    StockInfo("BT-A.LON", "BT Group plc", "LSE"),
    StockInfo("HSBA.LSE", "HSBC Holdings plc", "LSE"),
    StockInfo("BP.LSE", "BP p.l.c.", "LSE"),
    StockInfo("VOD.LSE", "Vodafone Group Plc", "LSE"),
    # Canada (TSX)
    StockInfo("SHOP.TRT", "Shopify Inc.", "TSX"),
    StockInfo("RY.TRT", "Royal Bank of Canada", "TSX"),
    StockInfo("TD.TRT", "Toronto-Dominion Bank", "TSX"),
    StockInfo("CNR.TRT", "Canadian National Railway Company", "TSX"),
    # Canada (TSX Venture)
    StockInfo("GPV.TRV", "GreenPower Motor Company Inc.", "TSXV"),
    # India
    StockInfo("RELIANCE.NSE", "Reliance Industries Limited", "BSE"),
    StockInfo("TCS.NSE", "Tata Consultancy Services Limited", "BSE"),
    StockInfo("HDFCBANK.NSE", "HDFC Bank Limited", "BSE"),
    StockInfo("INFY.NSE", "Infosys Limited", "BSE"),
    # China (Shanghai)
    StockInfo("600104.SHG", "SAIC Motor Corporation Limited", "SSE"),
    StockInfo("601318.SHG", "Ping An Insurance (Group) Company of China, Ltd.", "SSE"),
    StockInfo("600519.SHG", "Kweichow Moutai Co., Ltd.", "SSE"),
    # China (Shenzhen)
    StockInfo("000002.SHE", "China Vanke Co., Ltd.", "SZSE"),
    StockInfo("000651.SHE", "Gree Electric Appliances Inc. of Zhuhai", "SZSE"),
    StockInfo("000333.SHE", "Midea Group Co., Ltd.", "SZSE"),
    # Mexico
    StockInfo("FEMSAUB.MX", "Grupo Femsa", "MX"),
)

# Per-market suffix rewrites (source suffix -> Yahoo Finance suffix)
_SUFFIX_MAP: dict[str, dict[str, str]] = {
    "US": {".US": ""},
    "XETRA": {".XETRA": ".DE", ".DEX": ".DE", ".US": ""},
    "LSE": {".LON": ".L", ".LSE": ".L"},
    "TSX": {".TRT": ".TO"},
    "TSXV": {".TRV": ".V"},
    "BSE": {".NSE": ".NS", ".BSE": ".BO"},
    "SSE": {".SHG": ".SS", ".SHH": ".SS"},
    "SZSE": {".SHE": ".SZ"},
    "MX": {".MX": ".MX"},
}

_BY_SYMBOL = {s.symbol: s for s in STOCK_UNIVERSE}


def format_symbol(symbol: str, market: str) -> str:
    """Rewrite ``symbol``'s exchange suffix into the quote provider's notation."""
    for suffix, replacement in _SUFFIX_MAP.get(market, {}).items():
        if symbol.upper().endswith(suffix):
            return symbol[: -len(suffix)] + replacement
    return symbol


def find_stock(symbol: str) -> StockInfo | None:
    return _BY_SYMBOL.get(symbol) or _BY_SYMBOL.get(symbol.upper())


def search_universe(query: str, stocks: tuple[StockInfo, ...] = STOCK_UNIVERSE) -> list[StockInfo]:
    """Case-insensitive substring match on symbol or name."""
    q = query.strip().lower()
    if not q:
        return []
    return [s for s in stocks if q in s.symbol.lower() or q in s.name.lower()]
