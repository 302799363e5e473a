# services/stream_store.py
import asyncio, logging

from core.bus import BUS, SERIES, HOLDINGS
from core.schemas import SeriesSnapshot, HoldingsSnapshot
from core.state import STORE, StateStore
from services.chart import coerce_series

log = logging.getLogger(__name__)

async def run_store_stream(ticker: str, store: StateStore | None = None, bus=None,
                           interval: float = 1.0, iterations: int | None = None):
    """
    Poll the state store and push full snapshots to the BUS whenever the
    series or the holdings of `ticker` change. The first poll always publishes.
    """
    store = store or STORE
    bus = bus or BUS
    last_series = last_holdings = None
    first = True
    n = 0

    while iterations is None or n < iterations:
        n += 1
        try:
            st = store.read()
            rows = st.series.get(ticker, [])
            holdings = st.holdings.get(ticker)

            if first or rows != last_series:
                await bus.publish(SERIES, SeriesSnapshot(ticker=ticker, points=coerce_series(rows)))
                last_series = list(rows)
            if first or holdings != last_holdings:
                await bus.publish(HOLDINGS, HoldingsSnapshot(ticker=ticker, holdings=holdings))
                last_holdings = holdings
            first = False
        except Exception:
            log.exception("store stream error for %s; retrying", ticker)
        if iterations is None or n < iterations:
            await asyncio.sleep(interval)
