from __future__ import annotations
from enum import Enum
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

class TimeRange(str, Enum):
    ALL = "all"
    LAST_HOUR = "1hr"
    LAST_24_HOURS = "24hrs"

    @classmethod
    def parse(cls, value) -> Optional["TimeRange"]:
        """Map a selector to a TimeRange; None when it is not recognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

class Trend(str, Enum):
    UP = "up"
    DOWN = "down"

class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"

class PricePoint(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    date: str = Field(validation_alias=AliasChoices("date", "timestamp"))
    price: float
    synthetic: bool = False  # interpolated / carry-forward, not a real trade

class DeltaMarker(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str
    direction: Trend

class RenderModel(BaseModel):
    filtered_series: list[PricePoint]
    trend: Trend
    color_token: str
    fill_token: str
    axis_domain: tuple[float, float]
    delta_markers: list[DeltaMarker]
    last_price: Optional[float] = None

class OrderRequest(BaseModel):
    ticker: str
    amount: float

class SeriesSnapshot(BaseModel):
    ticker: str
    points: list[PricePoint]

class HoldingsSnapshot(BaseModel):
    ticker: str
    holdings: Optional[float] = None  # None == unknown
