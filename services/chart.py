# services/chart.py
"""
Pure transforms that turn a raw price series into what the chart draws:
time-window filtering, trend colour, value-axis domain and buy/sell delta markers.
"""
from __future__ import annotations
import math
from datetime import datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from typing import Sequence

import pandas as pd

from core.schemas import DeltaMarker, PricePoint, RenderModel, TimeRange, Trend

# trailing window per range (ms); anything not listed is unfiltered
WINDOW_MS = {
    TimeRange.LAST_HOUR: 60 * 60 * 1000,
    TimeRange.LAST_24_HOURS: 24 * 60 * 60 * 1000,
}

EMPTY_DOMAIN = (-0.5, 0.5)
PAD_FRAC = 0.05

GREEN = "#22c55e"  # green-500
RED = "#ef4444"    # red-500
TREND_STYLE = {
    Trend.UP: (GREEN, "fillGreen"),
    Trend.DOWN: (RED, "fillRed"),
}

_HALF = Decimal("0.5")

def round2(value: float, ties: str = "up") -> float:
    """
    Round to 2 decimals using the shortest decimal form of `value`
    (0.975 is treated as 0.975, not 0.97499999...).
    Exact half-cent ties go toward +inf (ties="up") or -inf (ties="down").
    """
    value = float(value)
    if not math.isfinite(value):
        return value
    cents = Decimal(repr(value)) * 100
    lo = cents.to_integral_value(rounding=ROUND_FLOOR)
    frac = cents - lo
    if frac > _HALF or (frac == _HALF and ties == "up"):
        lo += 1
    return float(lo / 100)

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)

def _parse_dates(series: Sequence[PricePoint]) -> pd.Series:
    return pd.to_datetime(pd.Series([p.date for p in series], dtype="object"),
                          utc=True, errors="coerce", format="mixed")

def filter_series(series: Sequence[PricePoint], time_range, now: datetime | None = None) -> list[PricePoint]:
    """
    Keep the points inside the trailing window of `time_range`.
    Unknown ranges are treated as "all". Points whose date cannot be parsed
    never fall inside a window.
    """
    window = WINDOW_MS.get(TimeRange.parse(time_range))
    if window is None or not series:
        return list(series)

    now = now or _now_utc()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start = pd.Timestamp(now) - pd.Timedelta(milliseconds=window)

    keep = (_parse_dates(series) >= start).tolist()  # NaT compares False
    return [p for p, ok in zip(series, keep) if ok]

def classify_trend(series: Sequence[PricePoint]) -> Trend:
    if len(series) < 2:
        return Trend.UP
    if series[-1].price < series[0].price:
        return Trend.DOWN
    return Trend.UP

def axis_domain(series: Sequence[PricePoint]) -> tuple[float, float]:
    """Padded (min, max) for the value axis; bounds round outward on exact ties."""
    if not series:
        return EMPTY_DOMAIN
    prices = [p.price for p in series]
    lo, hi = min(prices), max(prices)
    span = (hi - lo) or 1.0
    pad = span * PAD_FRAC
    return round2(lo - pad, ties="down"), round2(hi + pad, ties="up")

def delta_markers(series: Sequence[PricePoint], show_markers: bool = True) -> list[DeltaMarker]:
    if not show_markers:
        return []
    out = []
    for prev, curr in zip(series, series[1:]):
        # synthetic fills are not trades
        if prev.synthetic or curr.synthetic:
            continue
        delta = curr.price - prev.price
        if delta == 0:
            continue
        out.append(DeltaMarker(date=curr.date, direction=Trend.UP if delta > 0 else Trend.DOWN))
    return out

def build_render_model(series: Sequence[PricePoint],
                       time_range=TimeRange.ALL,
                       show_markers: bool = True,
                       now: datetime | None = None) -> RenderModel:
    filtered = filter_series(series, time_range, now=now)
    trend = classify_trend(filtered)
    color, fill = TREND_STYLE[trend]
    return RenderModel(
        filtered_series=filtered,
        trend=trend,
        color_token=color,
        fill_token=fill,
        axis_domain=axis_domain(filtered),
        delta_markers=delta_markers(filtered, show_markers),
        last_price=filtered[-1].price if filtered else None,
    )

def time_axis_format(time_range) -> str:
    """d3 time format for x-axis ticks and tooltips."""
    if TimeRange.parse(time_range) in WINDOW_MS:
        return "%I:%M:%S %p"   # 12-hour, en-US style
    return "%b %-d"         # "Jan 5"

def coerce_series(rows) -> list[PricePoint]:
    """
    Sanitize raw feed rows into PricePoints:
      - accepts dicts or PricePoints
      - drops rows without a date or a numeric price
      - keeps feed order
    """
    out = []
    for r in rows or []:
        if isinstance(r, PricePoint):
            out.append(r)
            continue
        try:
            out.append(PricePoint.model_validate(r))
        except (TypeError, ValueError):
            continue
    return out
