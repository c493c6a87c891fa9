"""
Price Alert Engine - Supported Symbols
"""

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class SymbolInfo:
    """A tradable asset the feed can sample."""
    id: str
    ticker: str
    name: str


SUPPORTED_SYMBOLS: Dict[str, SymbolInfo] = {
    info.id: info
    for info in [
        SymbolInfo("bitcoin", "BTC", "Bitcoin"),
        SymbolInfo("ethereum", "ETH", "Ethereum"),
        SymbolInfo("cardano", "ADA", "Cardano"),
        SymbolInfo("solana", "SOL", "Solana"),
        SymbolInfo("dogecoin", "DOGE", "Dogecoin"),
        SymbolInfo("binance-coin", "BNB", "BNB"),
        SymbolInfo("polkadot", "DOT", "Polkadot"),
    ]
}

DEFAULT_SYMBOLS = ["bitcoin", "ethereum", "cardano", "solana", "dogecoin"]


def get_symbol(symbol_id: str) -> Optional[SymbolInfo]:
    return SUPPORTED_SYMBOLS.get(symbol_id.lower())


def is_supported(symbol_id: str) -> bool:
    return symbol_id.lower() in SUPPORTED_SYMBOLS


def all_symbols() -> List[SymbolInfo]:
    return list(SUPPORTED_SYMBOLS.values())


def format_symbol(symbol_id: str) -> str:
    """'Bitcoin (BTC)' for known ids, the upper-cased id otherwise."""
    info = get_symbol(symbol_id)
    return f"{info.name} ({info.ticker})" if info else symbol_id.upper()
