"""Shared constants"""

from __future__ import annotations

# ===== filtering =====
DEFAULT_MIN_AREA_SQFT = 1500.0
SQFT_PER_SQM = 10.764
DEFAULT_LOOKBACK_MONTHS = 2

# ===== pagination =====
DEFAULT_PAGE_PARAM = "page"
DEFAULT_INITIAL_MAX_PAGES = 15
DEFAULT_UPDATE_MAX_PAGES = 3

# ===== retry =====
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_S = 2.0
DEFAULT_BACKOFF_JITTER = 0.25
# successive backoff delays stay strictly increasing below this ratio
MAX_BACKOFF_JITTER = 0.3

# ===== enrichment =====
DEFAULT_DETAIL_CONCURRENCY = 3
DETAIL_FAILED_MARKER = "failed to load"

# ===== output =====
RECORD_COLUMNS = ("title", "location", "price", "area", "description", "listed", "url")
DEFAULT_RESULTS_FILE = "results.csv"
DEFAULT_CHECKPOINT_FILE = "lastRun.json"

# ===== browser =====
DEFAULT_NAV_TIMEOUT_MS = 120000
DEFAULT_ITEM_WAIT_MS = 60000
BLOCKED_RESOURCE_TYPES = ("image", "font", "stylesheet")
