"""
Tests for the file-backed state store and the order journal.

Covers:
- StateStore queries and updates
- buy/sell mutations
- corrupt-file handling (never written over)
- concurrent writers: threads in one process and a second process
- JSONL order journal
"""

import asyncio
import json
import multiprocessing
import threading

import pytest

from core.errors import MutationError, StateCorruptError
from core.state import SharedState, StateStore, iso_ms
from core.ts_store import append_jsonl


def _journal_rows(log_dir):
    rows = []
    for p in sorted(log_dir.glob("orders_*.jsonl")):
        rows += [json.loads(ln) for ln in p.read_text(encoding="utf-8").splitlines() if ln.strip()]
    return rows


def _feed_points(path, log_dir, n):
    """Second writer: appends `n` synthetic points to the same state file."""
    other = StateStore(path, journal_dir=log_dir, latency_sec=0)
    for i in range(n):
        other.append_price("BRDG", iso_ms(1_700_000_000_000 + i), 1.0, synthetic=True)


class TestStateStore:

    def test_init_creates_file(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        StateStore(path, journal_dir=tmp_path)
        assert json.loads(path.read_text())["series"] == {}

    def test_append_price_and_series(self, store):
        store.append_price("BRDG", "2024-01-01", 1.0)
        store.append_price("BRDG", "2024-01-02", 1.5, synthetic=True)
        assert store.get_series("BRDG") == [
            {"date": "2024-01-01", "price": 1.0, "synthetic": False},
            {"date": "2024-01-02", "price": 1.5, "synthetic": True},
        ]
        assert store.last_price("BRDG") == 1.5
        assert store.get_series("OTHER") == []

    def test_series_capped(self, store, monkeypatch):
        import core.state as state_mod
        monkeypatch.setattr(state_mod, "MAX_POINTS_PER_TICKER", 3)
        for i in range(5):
            store.append_price("BRDG", f"2024-01-0{i + 1}", float(i))
        assert [r["price"] for r in store.get_series("BRDG")] == [2.0, 3.0, 4.0]

    def test_holdings_unknown_is_none(self, store):
        assert store.get_current_holdings("BRDG") is None

    def test_ensure_ticker_seeds_once(self, store):
        store.ensure_ticker("BRDG", start_price=2.0)
        store.ensure_ticker("BRDG", start_price=9.0)
        assert [r["price"] for r in store.get_series("BRDG")] == [2.0]

    def test_no_temp_files_left_behind(self, store):
        for i in range(5):
            store.append_price("BRDG", f"2024-01-0{i + 1}", float(i))
        assert list(store.path.parent.glob("*.tmp")) == []

    def test_iso_ms(self):
        assert iso_ms(0) == "1970-01-01T00:00:00.000Z"


class TestCorruptState:
    """An undecodable file is reported, served from the last good copy, and never overwritten."""

    def test_read_serves_last_good_snapshot(self, store):
        store.append_price("BRDG", "2024-01-01", 1.0)
        store.path.write_text("{not json")
        assert store.get_series("BRDG") == [{"date": "2024-01-01", "price": 1.0, "synthetic": False}]

    def test_fresh_store_on_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        assert StateStore(path, journal_dir=tmp_path).read() == SharedState()

    def test_updates_refuse_to_write_over_corrupt_file(self, store):
        store.ensure_ticker("BRDG")
        store.path.write_text("{not json")

        with pytest.raises(StateCorruptError):
            store.append_price("BRDG", "2024-01-02", 2.0)
        with pytest.raises(StateCorruptError):
            store.ensure_ticker("OTHER")
        assert store.path.read_text() == "{not json"

    @pytest.mark.asyncio
    async def test_mutation_refuses_to_write_over_corrupt_file(self, store):
        store.ensure_ticker("BRDG")
        store.path.write_text("{not json")
        with pytest.raises(StateCorruptError):
            await store.buy_ticker("BRDG", 1)
        assert store.path.read_text() == "{not json"


class TestConcurrentWriters:

    def test_threads_do_not_lose_updates(self, store):
        def worker(k):
            for i in range(25):
                store.append_price("BRDG", f"t{k}-{i}", float(i))

        threads = [threading.Thread(target=worker, args=(k,)) for k in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store.get_series("BRDG")) == 100

    @pytest.mark.skipif("fork" not in multiprocessing.get_all_start_methods(),
                        reason="needs fork start method")
    def test_feed_process_and_orders_share_the_file(self, store, tmp_path):
        n_points, n_buys = 300, 150
        store.ensure_ticker("BRDG", start_price=1.0)

        ctx = multiprocessing.get_context("fork")
        proc = ctx.Process(target=_feed_points, args=(store.path, tmp_path / "logs", n_points))
        proc.start()

        async def buy_many():
            errors = []
            for _ in range(n_buys):
                try:
                    await store.buy_ticker("BRDG", 1)
                except Exception as e:
                    errors.append(e)
            return errors

        errors = asyncio.run(buy_many())
        proc.join(timeout=60)

        assert proc.exitcode == 0
        assert errors == []
        assert store.get_current_holdings("BRDG") == float(n_buys)
        series = store.get_series("BRDG")
        assert len(series) == 1 + n_points + n_buys
        assert sum(r["synthetic"] for r in series) == n_points


class TestMutations:

    @pytest.mark.asyncio
    async def test_buy_updates_holdings_and_price(self, store):
        store.ensure_ticker("BRDG", start_price=1.0)
        await store.buy_ticker("BRDG", 2.0)

        assert store.get_current_holdings("BRDG") == 2.0
        series = store.get_series("BRDG")
        assert len(series) == 2
        assert series[-1]["synthetic"] is False
        assert series[-1]["price"] == pytest.approx(1.0 * (1 + 2.0 * 100.0 / 1e4))

    @pytest.mark.asyncio
    async def test_sell_lowers_price(self, store):
        store.ensure_ticker("BRDG", start_price=1.0)
        await store.buy_ticker("BRDG", 5)
        px = store.last_price("BRDG")
        await store.sell_ticker("BRDG", 2)
        assert store.get_current_holdings("BRDG") == 3.0
        assert store.last_price("BRDG") < px

    @pytest.mark.asyncio
    async def test_sell_more_than_held(self, store):
        store.ensure_ticker("BRDG")
        with pytest.raises(MutationError) as exc:
            await store.sell_ticker("BRDG", 1)
        assert exc.value.message == "Insufficient holdings"
        assert store.get_current_holdings("BRDG") is None

    @pytest.mark.asyncio
    async def test_unknown_ticker(self, store):
        with pytest.raises(MutationError, match="Unknown ticker"):
            await store.buy_ticker("NOPE", 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -1, float("nan")])
    async def test_non_positive_amount(self, store, amount):
        store.ensure_ticker("BRDG")
        with pytest.raises(MutationError, match="positive"):
            await store.buy_ticker("BRDG", amount)

    @pytest.mark.asyncio
    async def test_orders_are_journaled(self, store, tmp_path):
        store.ensure_ticker("BRDG")
        await store.buy_ticker("BRDG", 1.5)
        rows = _journal_rows(tmp_path / "logs")
        assert len(rows) == 1
        assert rows[0]["side"] == "buy"
        assert rows[0]["amount"] == 1.5
        assert rows[0]["holdings"] == 1.5


class TestJournal:

    def test_rows_go_to_daily_file(self, tmp_path):
        t = 1_700_000_000_000
        append_jsonl("orders", {"t": t, "n": 1}, log_dir=tmp_path)
        append_jsonl("orders", {"t": t, "n": 2}, log_dir=tmp_path)
        assert (tmp_path / "orders_20231114.jsonl").exists()
        assert [r["n"] for r in _journal_rows(tmp_path)] == [1, 2]
