# services/monitor.py
import asyncio, logging
from datetime import datetime
from typing import Callable

from core.bus import BUS, SERIES, HOLDINGS
from core.schemas import HoldingsSnapshot, RenderModel, SeriesSnapshot, TimeRange
from services.chart import build_render_model
from services.order_entry import format_holdings

log = logging.getLogger(__name__)

class TickerMonitor:
    """
    Keeps the latest series/holdings snapshot for one ticker and re-runs the
    chart transforms on every delivery. Each series emission replaces the
    previous one wholesale.
    """

    def __init__(self, ticker: str, time_range=TimeRange.ALL, show_markers: bool = True,
                 on_render: Callable[[RenderModel], None] | None = None,
                 clock: Callable[[], datetime] | None = None):
        self.ticker = ticker
        self.time_range = time_range
        self.show_markers = show_markers
        self.on_render = on_render
        self.clock = clock
        self.series = []
        self.holdings = None
        self.model: RenderModel | None = None

    def render(self) -> RenderModel:
        now = self.clock() if self.clock else None
        self.model = build_render_model(self.series, self.time_range, self.show_markers, now=now)
        if self.on_render:
            self.on_render(self.model)
        return self.model

    def apply(self, evt) -> None:
        if getattr(evt, "ticker", None) != self.ticker:
            return
        if isinstance(evt, SeriesSnapshot):
            self.series = list(evt.points)
            m = self.render()
            log.debug("[%s] %d pts trend=%s domain=%s markers=%d", self.ticker,
                      len(m.filtered_series), m.trend.value, m.axis_domain, len(m.delta_markers))
        elif isinstance(evt, HoldingsSnapshot):
            self.holdings = evt.holdings

    @property
    def holdings_label(self) -> str:
        return format_holdings(self.holdings)

    async def run(self, bus=None, max_events: int | None = None):
        """Listen to 'series' and 'holdings' events for this ticker."""
        bus = bus or BUS
        q = asyncio.Queue()
        bus.subscribe(SERIES, q)
        bus.subscribe(HOLDINGS, q)
        seen = 0
        try:
            while max_events is None or seen < max_events:
                evt = await q.get()
                seen += 1
                self.apply(evt)
        finally:
            bus.unsubscribe(SERIES, q)
            bus.unsubscribe(HOLDINGS, q)
