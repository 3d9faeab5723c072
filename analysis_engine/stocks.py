"""
Stock Analysis — Ticker Universe
──────────────────────────────────
Popular BIST (Borsa Istanbul) and US tickers the analysis endpoints accept.
"""

from typing import Dict, List, Optional

BIST_STOCKS = [
    {"ticker": "ASELS.IS", "name": "Aselsan",          "sector": "Defense"},
    {"ticker": "THYAO.IS", "name": "Turkish Airlines", "sector": "Airlines"},
    {"ticker": "GARAN.IS", "name": "Garanti BBVA",     "sector": "Banking"},
    {"ticker": "AKBNK.IS", "name": "Akbank",           "sector": "Banking"},
    {"ticker": "YKBNK.IS", "name": "Yapi Kredi",       "sector": "Banking"},
    {"ticker": "ISCTR.IS", "name": "Is Bank",          "sector": "Banking"},
    {"ticker": "KCHOL.IS", "name": "Koc Holding",      "sector": "Conglomerate"},
    {"ticker": "SAHOL.IS", "name": "Sabanci Holding",  "sector": "Conglomerate"},
    {"ticker": "EREGL.IS", "name": "Erdemir",          "sector": "Steel"},
    {"ticker": "BIMAS.IS", "name": "BIM",              "sector": "Retail"},
    {"ticker": "SISE.IS",  "name": "Sisecam",          "sector": "Glass & Chemicals"},
    {"ticker": "TUPRS.IS", "name": "Tupras",           "sector": "Energy"},
    {"ticker": "TCELL.IS", "name": "Turkcell",         "sector": "Telecom"},
    {"ticker": "PGSUS.IS", "name": "Pegasus Airlines", "sector": "Airlines"},
    {"ticker": "VESTL.IS", "name": "Vestel",           "sector": "Electronics"},
]

US_STOCKS = [
    {"ticker": "AAPL",  "name": "Apple Inc.",        "sector": "Technology"},
    {"ticker": "MSFT",  "name": "Microsoft",         "sector": "Technology"},
    {"ticker": "NVDA",  "name": "NVIDIA",            "sector": "Semiconductors"},
    {"ticker": "GOOGL", "name": "Alphabet",          "sector": "Technology"},
    {"ticker": "AMZN",  "name": "Amazon",            "sector": "E-commerce"},
    {"ticker": "META",  "name": "Meta Platforms",    "sector": "Technology"},
    {"ticker": "TSLA",  "name": "Tesla",             "sector": "Automotive"},
    {"ticker": "JPM",   "name": "JPMorgan Chase",    "sector": "Banking"},
    {"ticker": "V",     "name": "Visa",              "sector": "Financial Services"},
    {"ticker": "JNJ",   "name": "Johnson & Johnson", "sector": "Healthcare"},
    {"ticker": "UNH",   "name": "UnitedHealth",      "sector": "Healthcare"},
    {"ticker": "HD",    "name": "Home Depot",        "sector": "Retail"},
    {"ticker": "PG",    "name": "Procter & Gamble",  "sector": "Consumer Goods"},
    {"ticker": "DIS",   "name": "Walt Disney",       "sector": "Entertainment"},
    {"ticker": "NFLX",  "name": "Netflix",           "sector": "Entertainment"},
]

_BY_MARKET: Dict[str, List[dict]] = {"BIST": BIST_STOCKS, "US": US_STOCKS}


def get_stocks_by_market(market: str) -> List[dict]:
    return _BY_MARKET.get(market, [])


def get_stock_info(market: str, ticker: str) -> Optional[dict]:
    for stock in get_stocks_by_market(market):
        if stock["ticker"] == ticker:
            return stock
    return None


def is_valid_ticker(market: str, ticker: str) -> bool:
    return get_stock_info(market, ticker) is not None
