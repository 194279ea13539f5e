import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


SAVES_DIR = Path(os.getenv("RECURRING_SAVES_DIR", "saves"))

# Max steps taken when walking a schedule forward to today
GUARD_LIMIT = _env_int("RECURRING_GUARD_LIMIT", 500)

LOOK_AHEAD_DAYS = _env_int("RECURRING_LOOK_AHEAD_DAYS", 30)
UPCOMING_LIMIT = 25

LOG_LEVEL = os.getenv("RECURRING_LOG_LEVEL", "WARNING").upper()

PAYMENT_MODES = ("cash", "bank", "upi", "card")

DEFAULT_CATEGORIES = [
    "Housekeeping",
    "Tea/Coffee",
    "Stationery",
    "Travel",
    "Festival Gifts",
    "Birthday Celebrations",
    "Misc",
]
