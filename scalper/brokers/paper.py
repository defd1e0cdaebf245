"""Paper trading broker for simulation mode."""

import uuid
from typing import Optional

from scalper.brokers.base import BalanceClient, OrderClient
from scalper.log import get_logger
from scalper.models import Order, OrderResult

logger = get_logger("paper")


class PaperBroker(OrderClient, BalanceClient):
    """Simulated order execution against a virtual wallet.

    Orders fill immediately and in full at their limit price. The broker
    does not write the trade ledger: the position state machine records
    every decision exactly once whether or not the order fills.
    """

    def __init__(
        self,
        base_asset: str = "BTC",
        quote_asset: str = "USDT",
        starting_balances: Optional[dict[str, float]] = None,
    ):
        """Initialize paper trading broker.

        Args:
            base_asset: Asset bought and sold.
            quote_asset: Asset paid with.
            starting_balances: Initial virtual wallet, by asset.
        """
        self._base = base_asset
        self._quote = quote_asset
        self._starting_balances = dict(
            starting_balances
            if starting_balances is not None
            else {quote_asset: 10500.0, base_asset: 0.05}
        )
        self._balances = dict(self._starting_balances)

    def submit_order(self, order: Order) -> OrderResult:
        """Fill a simulated order.

        Buys the wallet cannot cover and sells larger than the held base
        amount are rejected without touching balances.
        """
        value = order.price * order.quantity
        quote = self._balances.get(self._quote, 0.0)
        base = self._balances.get(self._base, 0.0)

        if order.side == "BUY" and value > quote:
            return OrderResult(
                order_id="",
                status="REJECTED",
                filled_qty=0,
                filled_price=0.0,
                message=f"Insufficient {self._quote}. Required: {value:.2f}, Available: {quote:.2f}",
            )
        if order.side == "SELL" and order.quantity > base:
            return OrderResult(
                order_id="",
                status="REJECTED",
                filled_qty=0,
                filled_price=0.0,
                message=f"Insufficient {self._base}. Required: {order.quantity:.8f}, Available: {base:.8f}",
            )

        if order.side == "BUY":
            self._balances[self._quote] = quote - value
            self._balances[self._base] = base + order.quantity
        else:
            self._balances[self._quote] = quote + value
            self._balances[self._base] = base - order.quantity

        order_id = f"PAPER_{uuid.uuid4().hex[:12].upper()}"
        logger.info(
            "(SIMULATION) %s %.8f %s @ %.2f [%s]",
            order.side, order.quantity, self._base, order.price, order_id,
        )
        return OrderResult(
            order_id=order_id,
            status="COMPLETE",
            filled_qty=order.quantity,
            filled_price=order.price,
            message="Paper order executed successfully",
        )

    def fetch_balances(self) -> dict[str, float]:
        """Current virtual wallet."""
        return dict(self._balances)

    def reset(self) -> None:
        """Restore the starting wallet."""
        self._balances = dict(self._starting_balances)
