# services/sim_feed.py
import asyncio, logging
import numpy as np

from core.config import CFG
from core.state import STORE, StateStore, iso_ms, now_ms

log = logging.getLogger(__name__)

TRADE_PROB = 0.3   # chance per step that a real trade prints; otherwise a synthetic carry-forward

def step_price(px: float, rng: np.random.Generator, vol_bps: float = 25.0) -> float:
    # random walk in bps with slight mean reversion
    shock = rng.normal(0.0, vol_bps) / 1e4
    drift = -0.15 * shock
    return max(0.0001, px * (1.0 + shock + drift))

def feed_once(store: StateStore, tickers, rng: np.random.Generator, t_ms: int | None = None) -> list[dict]:
    """Append one point per ticker: a real trade with TRADE_PROB, else a synthetic fill at the last price."""
    t_ms = t_ms if t_ms is not None else now_ms()
    out = []
    for s in tickers:
        store.ensure_ticker(s)
        px = store.last_price(s)
        if rng.random() < TRADE_PROB:
            out.append(store.append_price(s, iso_ms(t_ms), step_price(px, rng)))
        else:
            out.append(store.append_price(s, iso_ms(t_ms), px, synthetic=True))
    return out

async def run_sim_feed(tickers, store: StateStore | None = None, interval: float = CFG.FEED_INTERVAL_SEC,
                       seed: int | None = None, iterations: int | None = None):
    store = store or STORE
    rng = np.random.default_rng(seed)
    n = 0
    log.info("sim feed starting for %s every %.1fs", ",".join(tickers), interval)
    while iterations is None or n < iterations:
        n += 1
        feed_once(store, tickers, rng)
        if iterations is None or n < iterations:
            await asyncio.sleep(interval)

def main():
    logging.basicConfig(level=CFG.LOG_LEVEL, format="%(asctime)s %(levelname)s %(message)s")
    print("[sim_feed] starting… (Ctrl-C to stop)")
    try:
        asyncio.run(run_sim_feed([CFG.TICKER]))
    except KeyboardInterrupt:
        print("\n[sim_feed] interrupted")

if __name__ == "__main__":
    main()
