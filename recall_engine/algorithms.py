import math
import logging
from enum import Enum
from datetime import datetime, timedelta
from typing import Optional, Tuple

from .models import ItemState, SchedulingResult


class Algorithm(str, Enum):
    """Scheduling algorithms, in the order used for hash assignment."""
    FSRS = "fsrs"
    LEITNER = "leitner"
    SM2 = "sm2"

    @property
    def label(self) -> str:
        return ALGORITHM_NAMES[self]


ALGORITHM_NAMES = {
    Algorithm.FSRS: "FSRS",
    Algorithm.LEITNER: "Leitner",
    Algorithm.SM2: "SM-2",
}

FSRS_SEED_STABILITY = 0.4
LEITNER_INTERVALS = [1, 2, 4, 7, 14]
SM2_SEED_EASE = 2.5
SM2_MIN_EASE = 1.3

MASTERY_LABELS = ["New", "Learning", "Young", "Mature", "Strong", "Mastered"]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _prior_value(item: ItemState, value, default: float, field: str) -> float:
    """Returns a positive stored value, or the seed when it is absent or malformed."""
    if value is None:
        if item.repetitions > 0:
            logging.warning(f"Item {item.id} has {item.repetitions} reviews but no {field}; using seed {default}")
        return default
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = float("nan")
    if math.isnan(value) or math.isinf(value) or value <= 0:
        logging.warning(f"Item {item.id} has malformed {field} {value!r}; using seed {default}")
        return default
    return value


def _result(stability: float, difficulty: float, interval: int, repetitions: int, now: datetime) -> SchedulingResult:
    interval = max(1, interval)
    return SchedulingResult(
        stability=stability,
        difficulty=difficulty,
        interval=interval,
        due_date=now.date() + timedelta(days=interval),
        repetitions=repetitions,
    )


# --- FSRS-like ---

def fsrs_retrievability(item: ItemState, now: datetime) -> float:
    """exp(-t / S) with t in days since the last study; 1.0 without history or stability."""
    if not item.study_history or not item.stability or item.stability <= 0:
        return 1.0
    elapsed = (now - item.study_history[-1].timestamp).total_seconds() / 86400
    return math.exp(-max(0.0, elapsed) / item.stability)


def next_fsrs(item: ItemState, performance: int, now: datetime) -> Tuple[SchedulingResult, float]:
    retention = fsrs_retrievability(item, now)
    stability = _prior_value(item, item.stability, FSRS_SEED_STABILITY, "stability")
    working_difficulty = 11 - 2 * performance

    if performance < 3:
        # Never grows on a lapse, even below the floor of 1
        new_stability = min(stability, max(1.0, stability * 0.5))
        interval = 1
    else:
        new_stability = stability * (1 + (performance - 2.5) * 0.2 * (11 - working_difficulty))
        interval = _round_half_up(new_stability * 2.5)

    new_difficulty = min(10.0, max(1.0, working_difficulty - (performance - 2.5) * 0.2))
    return _result(new_stability, new_difficulty, interval, item.repetitions + 1, now), retention


# --- Leitner ---

def next_leitner(item: ItemState, performance: int, now: datetime) -> Tuple[SchedulingResult, float]:
    box = int(_prior_value(item, item.stability, 1, "box"))
    if not 1 <= box <= 5:
        logging.warning(f"Item {item.id} has box {box} outside 1-5; clamping")
        box = min(5, max(1, box))
    retention = 1 - box / 10

    if performance >= 3:
        new_box = min(box + 1, 5)
    else:
        new_box = max(box - 1, 1)

    try:
        interval = LEITNER_INTERVALS[new_box - 1]
    except IndexError:
        interval = 14

    return _result(new_box, performance, interval, item.repetitions + 1, now), retention


# --- SM-2 ---

def next_sm2(item: ItemState, performance: int, now: datetime) -> Tuple[SchedulingResult, float]:
    """SuperMemo-2 on a 1-4 rating; the ease factor lives in `stability`."""
    ease_factor = _prior_value(item, item.stability, SM2_SEED_EASE, "ease factor")
    if ease_factor < SM2_MIN_EASE:
        logging.warning(f"Item {item.id} has ease factor {ease_factor} below {SM2_MIN_EASE}; clamping")
        ease_factor = SM2_MIN_EASE
    repetitions = max(0, item.repetitions)
    prior_interval = item.interval if item.interval and item.interval > 0 else 1
    retention = max(0.5, math.exp(-prior_interval / 100))

    if performance < 3:
        return _result(ease_factor, ease_factor, 1, 0, now), retention

    ease_factor = ease_factor + (0.1 - (5 - performance) * (0.08 + (5 - performance) * 0.02))
    if ease_factor < SM2_MIN_EASE:
        ease_factor = SM2_MIN_EASE

    if repetitions == 0:
        interval = 1
    elif repetitions == 1:
        interval = 6
    else:
        interval = _round_half_up(prior_interval * ease_factor)

    return _result(ease_factor, ease_factor, interval, repetitions + 1, now), retention


_CALCULATORS = {
    Algorithm.FSRS: next_fsrs,
    Algorithm.LEITNER: next_leitner,
    Algorithm.SM2: next_sm2,
}


def next_state(algorithm: Algorithm, item: ItemState, performance: int, now: datetime) -> Tuple[SchedulingResult, float]:
    """Dispatches to one algorithm. Returns the new state and the pre-review retention estimate."""
    if performance not in (1, 2, 3, 4):
        raise ValueError(f"Performance must be 1-4, got {performance!r}")
    return _CALCULATORS[Algorithm(algorithm)](item, performance, now)


# --- Assignment ---

def stable_hash(text: str) -> int:
    """31-multiplier string hash over UTF-16 code units, as a signed 32-bit value made absolute."""
    data = text.encode("utf-16-le")
    value = 0
    for i in range(0, len(data), 2):
        value = ((value << 5) - value + (data[i] | data[i + 1] << 8)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def parse_algorithm(value) -> Optional[Algorithm]:
    try:
        return Algorithm(value)
    except ValueError:
        return None


def resolve_algorithm(item_id, experiment_enabled: bool = True, default: Algorithm = Algorithm.FSRS) -> Algorithm:
    if not experiment_enabled:
        return Algorithm(default)
    order = list(Algorithm)
    return order[stable_hash(str(item_id)) % len(order)]


# --- Mastery ---

def mastery_level(item: ItemState) -> int:
    interval = item.interval or 0
    if interval <= 0:
        return 0
    if interval <= 2:
        return 1
    if interval <= 7:
        return 2
    if interval <= 30:
        return 3
    if interval <= 90:
        return 4
    return 5


def mastery_label(level: int) -> str:
    if 0 <= level < len(MASTERY_LABELS):
        return MASTERY_LABELS[level]
    return MASTERY_LABELS[0]
