"""Collaborator contracts and implementations for scalper."""

from scalper.brokers.base import BalanceClient, MarketDataClient, OrderClient
from scalper.brokers.coindcx import CoinDCXMarketData
from scalper.brokers.paper import PaperBroker

__all__ = [
    "BalanceClient",
    "CoinDCXMarketData",
    "MarketDataClient",
    "OrderClient",
    "PaperBroker",
]
