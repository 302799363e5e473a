import os
import tempfile

# keep the default store out of the repo's storage/ while tests import core.state
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="ticker-widget-tests-"))

import pytest

from core.state import StateStore


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / "state.json", journal_dir=tmp_path / "logs", impact_bps=100.0, latency_sec=0)
