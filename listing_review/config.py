"""Configuration constants, paths, and thresholds."""

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Load .env if present
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent.parent
_env_path = BASE_DIR / ".env"
if _env_path.exists():
    for _line in _env_path.read_text().splitlines():
        _line = _line.strip()
        if _line and not _line.startswith("#") and "=" in _line:
            _k, _, _v = _line.partition("=")
            os.environ.setdefault(_k.strip(), _v.strip().strip("\"'"))

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
RULES_PATH = Path(os.environ.get("RULES_PATH", BASE_DIR / "data" / "rules.json"))
POLICIES_PATH = Path(os.environ.get("POLICIES_PATH", BASE_DIR / "data" / "policy_sections.json"))
FALLBACK_RULES_PATH = Path(os.environ.get("FALLBACK_RULES_PATH", BASE_DIR / "data" / "fallback_rules.json"))
DB_PATH = Path(os.environ.get("DB_PATH", BASE_DIR / "listing_review.db"))

# ---------------------------------------------------------------------------
# Term Matching
# ---------------------------------------------------------------------------
CONTEXT_WORDS = 10
CONTEXT_CHARS = 50

# ---------------------------------------------------------------------------
# Policy Section Scoring
# ---------------------------------------------------------------------------
POLICY_MATCH_THRESHOLD = 0.3
POLICY_FLAG_THRESHOLD = 0.6
MAX_POLICY_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 4
POLICY_STOP_WORDS = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
    "by", "is", "are", "was", "were", "be", "been", "being", "have", "has",
    "had", "do", "does", "did", "will", "would", "could", "should", "may",
    "might", "must", "can", "this", "that", "these", "those", "a", "an",
})

# ---------------------------------------------------------------------------
# Compliance Score
# ---------------------------------------------------------------------------
TIER_PENALTIES = {
    "critical": 40,
    "high": 30,
    "medium": 15,
    "low": 5,
    "warning": 2,
}
SEVERE_ISSUE_PENALTY = 20
SECTION_CONTEXT_PREFIX = 50

# ---------------------------------------------------------------------------
# LLM Settings
# ---------------------------------------------------------------------------
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
LLM_MODEL = os.environ.get("LLM_MODEL", "claude-sonnet-4-20250514")
# Tried in order by the augmenter; the next one is used when a call fails.
LLM_FALLBACK_MODELS = tuple(
    m.strip()
    for m in os.environ.get("LLM_FALLBACK_MODELS", f"{LLM_MODEL},claude-3-5-haiku-20241022").split(",")
    if m.strip()
)
AI_TIMEOUT_SECONDS = float(os.environ.get("AI_TIMEOUT_SECONDS", "20"))
AI_MAX_TOKENS = 1024

# Terms the model tends to over-flag; never reported as AI issues.
AI_ALLOWED_TERMS = (
    "posters", "poster", "art", "vintage", "handmade", "custom", "original",
    "publications", "films", "photographs", "music", "books", "records",
    "shavers", "grooming", "personal care", "hygiene", "beauty",
    "hair removal", "shaving", "trimmer", "razor", "dermapen", "skincare",
)
