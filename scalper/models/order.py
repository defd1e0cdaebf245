"""Order and OrderResult data models."""

from typing import Literal

from pydantic import BaseModel, Field


class Order(BaseModel):
    """A limit order for the traded market."""

    side: Literal["BUY", "SELL"] = Field(..., description="Order side")
    price: float = Field(..., gt=0, description="Limit price per unit")
    quantity: float = Field(..., gt=0, description="Base asset quantity")

    model_config = {"frozen": True}


class OrderResult(BaseModel):
    """Represents the result of an order submission."""

    order_id: str = Field(..., description="Unique order identifier")
    status: str = Field(..., description="Order status")
    filled_qty: float = Field(..., ge=0, description="Filled quantity")
    filled_price: float = Field(..., ge=0, description="Average filled price")
    message: str = Field(default="", description="Status message")

    model_config = {"frozen": True}
