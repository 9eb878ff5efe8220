import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DB_PATH = Path(os.environ.get("PRICE_COMPARE_DB", BASE_DIR / "pricecompare.db"))
DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "CAD")

DIRECT_TIMEOUT_SECONDS = 15
NAVIGATION_TIMEOUT_MS = 15000
RENDER_WAIT_DEFAULT_MS = 8000
RENDER_WAIT_MAX_MS = 20000

# Outer bounds applied by the offer pipeline around each retrieval tier
DIRECT_DEADLINE_SECONDS = 20
RENDER_DEADLINE_SECONDS = 45

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0.0.0 Safari/537.36"
)
ACCEPT_LANGUAGE = "en-CA,en;q=0.9"
