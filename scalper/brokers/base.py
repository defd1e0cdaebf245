"""Contracts for the external collaborators the engine talks to."""

from abc import ABC, abstractmethod
from typing import Optional

from scalper.models import Candle, Order, OrderResult


class MarketDataClient(ABC):
    """Source of the latest trade price and recent OHLC bars."""

    @abstractmethod
    def fetch_latest_price(self) -> Optional[float]:
        """Get the most recent trade price.

        Returns:
            The price, or None when the venue reports no recent trades.

        Raises:
            TransientFetchError: On network or decoding failure.
        """
        pass

    @abstractmethod
    def fetch_recent_bars(self, pair: str, interval: str) -> list[Candle]:
        """Get recent OHLC bars.

        Args:
            pair: Market data pair code.
            interval: Candle interval (1m, 5m, ...).

        Returns:
            Bars ordered oldest to newest.

        Raises:
            TransientFetchError: On network or decoding failure.
        """
        pass


class OrderClient(ABC):
    """Places orders for the traded market."""

    @abstractmethod
    def submit_order(self, order: Order) -> OrderResult:
        """Submit an order.

        Returns:
            OrderResult; any status other than ``COMPLETE`` is a rejection.

        Raises:
            OrderExecutionError: If the order could not be submitted.
        """
        pass


class BalanceClient(ABC):
    """Reports wallet balances."""

    @abstractmethod
    def fetch_balances(self) -> dict[str, float]:
        """Get balances keyed by asset symbol.

        Raises:
            TransientFetchError: On network or decoding failure.
        """
        pass
