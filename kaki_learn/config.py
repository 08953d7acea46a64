import os
from typing import Optional

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

DB_PATH: str = os.environ.get("KAKI_DB", "kaki.db")

# Easing factor given to study items created for a learner
DEFAULT_EASING_FACTOR: float = float(os.environ.get("KAKI_EASING_FACTOR", "2.5"))
if DEFAULT_EASING_FACTOR <= 1:
    raise ValueError(f"KAKI_EASING_FACTOR must be greater than 1, got {DEFAULT_EASING_FACTOR}")

MAX_DISTRACTORS = 3

# Live study sessions the web host keeps before evicting the oldest
MAX_STUDY_SESSIONS: int = int(os.environ.get("KAKI_MAX_SESSIONS", "500"))


def session_seed() -> Optional[int]:
    """Seed for session randomness, or None for an unseeded source."""
    raw = os.environ.get("KAKI_SEED", "")
    return int(raw) if raw.strip() else None
