import os
from pathlib import Path
from dotenv import load_dotenv
load_dotenv()

ROOT = Path(__file__).resolve().parents[1]

def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")

def _csv(name: str) -> list[str]:
    return [s.strip() for s in os.getenv(name, "").split(",") if s.strip()]

class CFG:
    # Widget display
    TICKER = os.getenv("TICKER", "BRDG")
    TICKER_LABEL = os.getenv("TICKER_LABEL", TICKER)
    TEAM_MEMBERS = os.getenv("TEAM_MEMBERS", "")
    TEAM_IMAGES = _csv("TEAM_IMAGES")
    TIME_RANGE = os.getenv("TIME_RANGE", "all").lower()   # "all", "1hr" or "24hrs"
    SHOW_DELTA_MARKERS = _flag("SHOW_DELTA_MARKERS", True)

    # Backing store
    STORAGE_DIR = Path(os.getenv("STORAGE_DIR", str(ROOT / "storage")))
    START_PRICE = float(os.getenv("START_PRICE", "1.0"))
    IMPACT_BPS = float(os.getenv("IMPACT_BPS", "50"))           # price move per unit traded
    MUTATION_LATENCY_SEC = float(os.getenv("MUTATION_LATENCY_SEC", "0"))

    # Simulated feed
    FEED_INTERVAL_SEC = float(os.getenv("FEED_INTERVAL_SEC", "1.0"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
