import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from bmi import (
    METRIC,
    ValidationError,
    calculate_bmi,
    category_color,
    check_unit,
    compute_category,
    healthy_weight_range,
    weight_adjustment,
)


logger = logging.getLogger(__name__)

MAX_USERS = 4
USER_COUNT_CHOICES = (2, 3, 4)
USER_COLORS = ["#6366F1", "#F472B6", "#34D399", "#FBBF24"]


# ---------------- Entry ----------------
@dataclass(frozen=True)
class Entry:
    id: str
    user: int
    bmi: float
    timestamp: datetime

    @property
    def category(self) -> str:
        # derived from bmi on every read, never stored
        return compute_category(self.bmi)

    @property
    def color(self) -> str:
        return category_color(self.category)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user,
            "bmi": self.bmi,
            "category": self.category,
            "timestamp": self.timestamp.isoformat(),
        }


def user_color(user: int) -> str:
    return USER_COLORS[(user - 1) % len(USER_COLORS)]


def check_user(user, num_users: int) -> int:
    try:
        user = int(user)
    except (TypeError, ValueError):
        raise ValidationError("Unknown user.")
    if not 1 <= user <= num_users:
        raise ValidationError(f"User must be between 1 and {num_users}.")
    return user


def calculate_entry(weight, height, unit: str, user: int,
                    num_users: int = MAX_USERS, now: Optional[datetime] = None) -> Entry:
    """Validate one form submission and turn it into a new Entry for `user`."""
    user = check_user(user, num_users)
    bmi = calculate_bmi(weight, height, unit)
    return Entry(
        id=str(uuid.uuid4()),
        user=user,
        bmi=bmi,
        timestamp=now or datetime.now(timezone.utc),
    )


# ---------------- Store ----------------
class HistoryStore:
    """In-memory list of entries. Lives as long as the browser session that owns it."""

    def __init__(self, entries: Iterable[Entry] = ()):
        self._entries: List[Entry] = list(entries)

    def append(self, entry: Entry) -> None:
        self._entries.append(entry)

    def remove(self, entry_id: str) -> bool:
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.id != entry_id]
        return len(self._entries) < before

    def clear(self) -> None:
        self._entries = []

    def entries(self) -> List[Entry]:
        return list(self._entries)

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    def __contains__(self, entry_id):
        return any(e.id == entry_id for e in self._entries)


# ---------------- Derived views ----------------
def group_by_user(history: Iterable[Entry]) -> Dict[int, List[Entry]]:
    grouped: Dict[int, List[Entry]] = {}
    for entry in sorted(history, key=lambda e: e.timestamp):
        grouped.setdefault(entry.user, []).append(entry)
    return grouped


def derive_chart(history: Iterable[Entry], num_users: int) -> List[dict]:
    """
    Reshape the history into rows for a line chart.

    Each user's entries are sorted oldest first and lined up by position,
    so row i holds every user's i-th measurement ("Entry i"), whatever its
    date. A user with fewer entries simply has no key in later rows.
    """
    grouped = group_by_user(history)
    series = {user: grouped.get(user, []) for user in range(1, num_users + 1)}
    max_entries = max((len(entries) for entries in series.values()), default=0)

    rows = []
    for i in range(max_entries):
        row = {"name": f"Entry {i + 1}"}
        for user, entries in series.items():
            if i < len(entries):
                row[f"User {user}"] = entries[i].bmi
        rows.append(row)
    return rows


def derive_sorted_table(history: Iterable[Entry]) -> List[Entry]:
    return sorted(history, key=lambda e: e.timestamp, reverse=True)


def chart_bounds(rows: List[dict]) -> Optional[Tuple[float, float]]:
    values = [v for row in rows for k, v in row.items() if k != "name"]
    if not values:
        return None
    return round(min(values) - 2, 1), round(max(values) + 2, 1)


# ---------------- Sample data ----------------
SAMPLE_SERIES = {
    # starts overweight, trends down to normal
    1: (15, [28.0, 27.1, 26.2, 25.5, 24.8]),
    # stays in the normal range
    2: (20, [22.5, 22.8, 22.6, 23.0, 22.9]),
    # starts underweight, trends up
    3: (10, [17.9, 18.2, 18.6, 19.0, 19.5]),
    # fluctuates around 25
    4: (25, [24.5, 25.2, 24.8, 25.5, 25.0]),
}


def sample_entries() -> List[Entry]:
    entries = []
    for user, (day, values) in SAMPLE_SERIES.items():
        for month, bmi in enumerate(values, start=1):
            entries.append(Entry(
                id=f"u{user}e{month}",
                user=user,
                bmi=bmi,
                timestamp=datetime(2025, month, day, tzinfo=timezone.utc),
            ))
    return entries


# ---------------- Tracker state ----------------
class TrackerState:
    """Everything one browser session sees on the page."""

    def __init__(self, num_users: int = MAX_USERS, seed: bool = False):
        if num_users not in USER_COUNT_CHOICES:
            raise ValidationError(f"Number of users must be one of {USER_COUNT_CHOICES}.")
        self.num_users = num_users
        self.active_user = 1
        self.unit = METRIC
        self.latest: Optional[Entry] = None
        self.advice: dict = {}
        self.history = HistoryStore(
            e for e in (sample_entries() if seed else []) if e.user <= num_users
        )

    def set_user_count(self, count) -> None:
        try:
            count = int(count)
        except (TypeError, ValueError):
            raise ValidationError("Number of users must be a whole number.")
        if count not in USER_COUNT_CHOICES:
            raise ValidationError(f"Number of users must be one of {USER_COUNT_CHOICES}.")

        self.num_users = count
        self.active_user = 1
        self.history.clear()
        self.latest = None
        self.advice = {}
        logger.info("Tracked user count set to %d, history cleared", count)

    def select_user(self, user) -> None:
        self.active_user = check_user(user, self.num_users)

    def select_unit(self, unit: str) -> None:
        self.unit = check_unit(unit)

    def record(self, weight, height, now: Optional[datetime] = None) -> Entry:
        entry = calculate_entry(weight, height, self.unit, self.active_user,
                                num_users=self.num_users, now=now)
        self.history.append(entry)
        self.latest = entry

        normal_min_weight, normal_max_weight = healthy_weight_range(height, self.unit)
        self.advice = {
            "unit": self.unit,
            "normal_min_weight": normal_min_weight,
            "normal_max_weight": normal_max_weight,
        }
        self.advice.update(weight_adjustment(weight, height, self.unit))

        logger.debug("Recorded BMI %.1f for user %d", entry.bmi, entry.user)
        return entry

    def delete(self, entry_id: str) -> bool:
        removed = self.history.remove(entry_id)
        if removed and self.latest is not None and self.latest.id == entry_id:
            self.latest = None
            self.advice = {}
        return removed

    def clear(self) -> None:
        self.history.clear()
        self.latest = None
        self.advice = {}

    def users(self) -> List[int]:
        return list(range(1, self.num_users + 1))


class TrackerRegistry:
    """Maps a session token to its TrackerState, dropping the oldest beyond `limit`."""

    def __init__(self, limit: int = 500, num_users: int = MAX_USERS, seed: bool = True):
        self.limit = limit
        self.num_users = num_users
        self.seed = seed
        self._states: "OrderedDict[str, TrackerState]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, token: str) -> TrackerState:
        with self._lock:
            state = self._states.get(token)
            if state is None:
                state = TrackerState(num_users=self.num_users, seed=self.seed)
                self._states[token] = state
                while len(self._states) > self.limit:
                    evicted, _ = self._states.popitem(last=False)
                    logger.info("Evicted tracker session %s", evicted[:8])
            else:
                self._states.move_to_end(token)
            return state

    def __len__(self):
        return len(self._states)

    def __contains__(self, token):
        return token in self._states
