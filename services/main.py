# services/main.py
import asyncio, logging
from core.config import CFG
from core.schemas import TimeRange
from services.sim_feed import run_sim_feed
from services.stream_store import run_store_stream
from services.monitor import TickerMonitor


logging.basicConfig(level=CFG.LOG_LEVEL, format="%(asctime)s %(levelname)s %(message)s")

def _log_render(model):
    logging.info("render %s: last=%s trend=%s domain=%s markers=%d",
                 CFG.TICKER, model.last_price, model.trend.value,
                 model.axis_domain, len(model.delta_markers))

async def main():
    ticker = CFG.TICKER
    time_range = TimeRange.parse(CFG.TIME_RANGE) or TimeRange.ALL
    logging.info("Booting services (ticker=%s, range=%s)", ticker, time_range.value)

    monitor = TickerMonitor(ticker, time_range, CFG.SHOW_DELTA_MARKERS, on_render=_log_render)
    tasks = [
        asyncio.create_task(monitor.run()),                                   # render models
        asyncio.create_task(run_store_stream(ticker, interval=CFG.FEED_INTERVAL_SEC)),  # snapshots
        asyncio.create_task(run_sim_feed([ticker])),                          # prices
    ]

    try:
        await asyncio.gather(*tasks)
    except Exception:
        logging.exception("Fatal exception; cancelling tasks…")
        for t in tasks:
            if not t.cancelled():
                t.cancel()
        raise

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n[main] interrupted")
