"""Position state: a tagged union of Idle and InPosition."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class Idle(BaseModel):
    """No exposure; scanning for an entry."""

    kind: Literal["idle"] = "idle"

    model_config = {"frozen": True}


class InPosition(BaseModel):
    """Holding a long position opened at ``entry_price``."""

    kind: Literal["in_position"] = "in_position"
    entry_price: float = Field(..., gt=0, description="Price the position was opened at")
    highest_price_seen: float = Field(..., gt=0, description="Peak price since entry")
    quantity: float = Field(..., gt=0, description="Base asset quantity held")

    model_config = {"frozen": True}

    def stop_price(self, trailing_pct: float) -> float:
        """Trailing stop level below the highest price seen."""
        return self.highest_price_seen * (1 - trailing_pct)

    def unrealized_pl_pct(self, price: float) -> float:
        return (price - self.entry_price) / self.entry_price * 100


PositionState = Annotated[Union[Idle, InPosition], Field(discriminator="kind")]
