from __future__ import annotations
from dataclasses import dataclass, asdict, field
from pathlib import Path
import asyncio, copy, json, logging, os, tempfile
from datetime import datetime, timezone
from filelock import FileLock

from core.config import CFG
from core.errors import MutationError, StateCorruptError
from core.ts_store import append_jsonl

log = logging.getLogger(__name__)

STORAGE = CFG.STORAGE_DIR
STATE_PATH = STORAGE / "state.json"

# ---- Size knobs ----
MAX_POINTS_PER_TICKER = 5000
MIN_PRICE = 0.0001


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)

def iso_ms(ts_ms: int) -> str:
    """Millisecond UTC ISO-8601 string, e.g. 2024-01-01T00:00:00.000Z"""
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


@dataclass
class SharedState:
    ts_ms: int = 0
    series: dict[str, list[dict]] = field(default_factory=dict)   # {ticker: [{"date", "price", "synthetic"}, ...]}
    holdings: dict[str, float] = field(default_factory=dict)


class StateStore:
    """
    File-backed stand-in for the reactive backend: price series and holdings
    per ticker, plus the buy/sell mutations the widget calls.

    Several processes share the file (the feed and every UI session), so each
    read-modify-write holds a file lock and writes go through a unique temp
    file swapped in with os.replace.
    """

    def __init__(self, path: Path = STATE_PATH, journal_dir: Path | None = None,
                 impact_bps: float = CFG.IMPACT_BPS, latency_sec: float = CFG.MUTATION_LATENCY_SEC):
        self.path = Path(path)
        self.journal_dir = journal_dir
        self.impact_bps = impact_bps
        self.latency_sec = latency_sec
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(str(self.path.with_suffix(".json.lock")), thread_local=True)
        self._last_good = SharedState()
        with self._lock:
            if not self.path.exists():
                self._write(SharedState())  # init file

    def _load(self) -> SharedState:
        """Strict read: a missing file is empty state, an undecodable one raises."""
        try:
            with self.path.open("r", encoding="utf-8") as f:
                d = json.load(f)
            st = SharedState(**d)
        except FileNotFoundError:
            return SharedState()
        except (ValueError, TypeError) as e:
            raise StateCorruptError(f"unreadable state at {self.path}: {e!r}") from e
        self._last_good = st
        return st

    def read(self) -> SharedState:
        """Lenient read for display: falls back to the last good snapshot."""
        try:
            return self._load()
        except (OSError, StateCorruptError) as e:
            log.warning("%s; serving last good snapshot", e)
            return copy.deepcopy(self._last_good)

    def write(self, st: SharedState):
        with self._lock:
            self._write(st)

    def _write(self, st: SharedState):
        for ticker, bucket in st.series.items():
            if len(bucket) > MAX_POINTS_PER_TICKER:
                st.series[ticker] = bucket[-MAX_POINTS_PER_TICKER:]
        with tempfile.NamedTemporaryFile("w", encoding="utf-8", dir=self.path.parent,
                                         prefix=self.path.name + ".", suffix=".tmp",
                                         delete=False) as f:
            json.dump(asdict(st), f, separators=(",", ":"), ensure_ascii=False)
        try:
            os.replace(f.name, self.path)
        except OSError:
            Path(f.name).unlink(missing_ok=True)
            raise
        self._last_good = st

    # ---------- queries ----------
    def get_series(self, ticker: str) -> list[dict]:
        return list(self.read().series.get(ticker, []))

    def get_current_holdings(self, ticker: str) -> float | None:
        h = self.read().holdings.get(ticker)
        return float(h) if h is not None else None

    def last_price(self, ticker: str) -> float | None:
        bucket = self.read().series.get(ticker) or []
        return float(bucket[-1]["price"]) if bucket else None

    # ---------- updates ----------
    def append_price(self, ticker: str, date: str, price: float, synthetic: bool = False) -> dict:
        row = {"date": date, "price": float(price), "synthetic": bool(synthetic)}
        with self._lock:
            st = self._load()
            st.series.setdefault(ticker, []).append(row)
            st.ts_ms = now_ms()
            self._write(st)
        return row

    def ensure_ticker(self, ticker: str, start_price: float = CFG.START_PRICE) -> None:
        """Seed a ticker with one real point so it can be traded."""
        with self._lock:
            st = self._load()
            if st.series.get(ticker):
                return
            t = now_ms()
            st.series[ticker] = [{"date": iso_ms(t), "price": float(start_price), "synthetic": False}]
            st.ts_ms = t
            self._write(st)

    # ---------- mutations ----------
    async def buy_ticker(self, ticker: str, amount: float) -> None:
        await self._execute(ticker, "buy", amount)

    async def sell_ticker(self, ticker: str, amount: float) -> None:
        await self._execute(ticker, "sell", amount)

    async def _execute(self, ticker: str, side: str, amount: float) -> None:
        if self.latency_sec > 0:
            await asyncio.sleep(self.latency_sec)
        amount = float(amount)
        if not amount > 0:
            raise MutationError("Amount must be positive")

        with self._lock:
            st = self._load()
            bucket = st.series.get(ticker)
            if not bucket:
                raise MutationError(f"Unknown ticker {ticker}")

            held = float(st.holdings.get(ticker, 0.0))
            if side == "sell" and amount > held:
                raise MutationError("Insufficient holdings")

            d = 1.0 if side == "buy" else -1.0
            px0 = float(bucket[-1]["price"])
            px = max(MIN_PRICE, px0 * (1.0 + d * amount * self.impact_bps / 1e4))

            t = now_ms()
            st.holdings[ticker] = held + d * amount
            bucket.append({"date": iso_ms(t), "price": px, "synthetic": False})
            st.ts_ms = t
            self._write(st)

        append_jsonl("orders", {"t": t, "ticker": ticker, "side": side, "amount": amount,
                                "price": px, "holdings": st.holdings[ticker]},
                     ts_ms=t, log_dir=self.journal_dir)


STORE = StateStore()

# ---------- helpers bound to the default store ----------
def get_current_holdings(ticker: str) -> float | None:
    return STORE.get_current_holdings(ticker)

async def buy_ticker(ticker: str, amount: float) -> None:
    await STORE.buy_ticker(ticker, amount)

async def sell_ticker(ticker: str, amount: float) -> None:
    await STORE.sell_ticker(ticker, amount)

# =========================
# Public API for UI imports
# =========================
def load_state_for_ui() -> dict:
    """Return the current state as a plain dict (for the UI)."""
    return asdict(STORE.read())
