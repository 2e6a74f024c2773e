import math
from datetime import datetime, timedelta

import pytest

from recall_engine.algorithms import (
    Algorithm,
    fsrs_retrievability,
    mastery_label,
    mastery_level,
    next_state,
    resolve_algorithm,
    stable_hash,
)
from recall_engine.models import ItemState, StudyRecord

NOW = datetime(2026, 3, 1, 9, 0)
TODAY = NOW.date()


def review(algorithm, item, performance):
    result, retention = next_state(algorithm, item, performance, NOW)
    updated = item.model_copy(update={**result.model_dump(), "algorithm": algorithm.value})
    return updated, retention


def test_new_fsrs_item_rated_easy():
    result, retention = next_state(Algorithm.FSRS, ItemState(id="a"), 4, NOW)
    assert result.stability == pytest.approx(1.36)
    assert result.interval == 3
    assert result.difficulty == pytest.approx(2.7)
    assert result.repetitions == 1
    assert result.due_date == TODAY + timedelta(days=3)
    assert retention == 1.0


def test_fsrs_lapse_never_grows_stability():
    # Lapses never raise stability, so the 0.4 seed stays 0.4 instead of lifting to the floor of 1
    for stability in [0.4, 1.0, 1.5, 3.0, 12.0]:
        for performance in (1, 2):
            item = ItemState(id="a", stability=stability, repetitions=3)
            result, _ = next_state(Algorithm.FSRS, item, performance, NOW)
            assert result.stability <= stability
            assert result.interval == 1


def test_fsrs_retrievability_decays_with_elapsed_days():
    item = ItemState(
        id="a",
        stability=4.0,
        study_history=[StudyRecord(performance=3, timestamp=NOW - timedelta(days=2))],
    )
    assert fsrs_retrievability(item, NOW) == pytest.approx(math.exp(-0.5))
    assert fsrs_retrievability(ItemState(id="b", stability=4.0), NOW) == 1.0


def test_fsrs_malformed_stability_uses_seed():
    result, _ = next_state(Algorithm.FSRS, ItemState(id="a", stability=-3.0, repetitions=2), 4, NOW)
    assert result.stability == pytest.approx(1.36)


def test_new_leitner_item_rated_again():
    result, retention = next_state(Algorithm.LEITNER, ItemState(id="a"), 1, NOW)
    assert result.stability == 1
    assert result.interval == 1
    assert retention == pytest.approx(0.9)


def test_leitner_box_stays_in_range():
    item = ItemState(id="a")
    for performance in [4, 4, 4, 4, 4, 4, 3, 1, 2, 1, 1, 1, 1, 4]:
        item, _ = review(Algorithm.LEITNER, item, performance)
        assert 1 <= item.stability <= 5

    top = ItemState(id="b", stability=5, repetitions=9)
    result, retention = next_state(Algorithm.LEITNER, top, 4, NOW)
    assert result.stability == 5
    assert result.interval == 14
    assert retention == pytest.approx(0.5)


def test_leitner_box_intervals():
    expected = [2, 4, 7, 14]
    item = ItemState(id="a")
    for interval in expected:
        item, _ = review(Algorithm.LEITNER, item, 3)
        assert item.interval == interval


def test_new_sm2_item_rated_hard():
    result, retention = next_state(Algorithm.SM2, ItemState(id="a"), 2, NOW)
    assert result.interval == 1
    assert result.repetitions == 0
    assert result.stability == 2.5
    assert retention == pytest.approx(math.exp(-0.01))


def test_sm2_success_sequence():
    item = ItemState(id="a")
    item, _ = review(Algorithm.SM2, item, 4)
    assert (item.interval, item.repetitions, item.stability) == (1, 1, pytest.approx(2.5))
    item, _ = review(Algorithm.SM2, item, 4)
    assert (item.interval, item.repetitions) == (6, 2)
    item, _ = review(Algorithm.SM2, item, 4)
    assert (item.interval, item.repetitions) == (15, 3)
    item, _ = review(Algorithm.SM2, item, 3)
    assert item.stability == pytest.approx(2.36)


def test_sm2_ease_never_below_floor():
    item = ItemState(id="a", stability=1.35, interval=6, repetitions=2)
    for performance in [3, 3, 1, 3, 2, 3]:
        item, _ = review(Algorithm.SM2, item, performance)
        assert item.stability >= 1.3

    low, _ = review(Algorithm.SM2, ItemState(id="b", stability=1.1, repetitions=1), 1)
    assert low.stability == 1.3


def test_every_algorithm_schedules_at_least_a_day_ahead():
    states = [
        ItemState(id="new"),
        ItemState(id="tiny", stability=0.01, difficulty=5.0, interval=1, repetitions=4),
        ItemState(id="big", stability=4.0, difficulty=2.0, interval=40, repetitions=7),
    ]
    for algorithm in Algorithm:
        for state in states:
            for performance in (1, 2, 3, 4):
                result, _ = next_state(algorithm, state, performance, NOW)
                assert result.interval >= 1
                assert result.due_date > TODAY


def test_invalid_performance_is_rejected():
    with pytest.raises(ValueError):
        next_state(Algorithm.FSRS, ItemState(id="a"), 5, NOW)


def test_stable_hash_matches_string_hashcode():
    assert stable_hash("") == 0
    assert stable_hash("1") == 49
    assert stable_hash("hello") == 99162322
    # Wraps to the most negative 32-bit value
    assert stable_hash("polygenelubricants") == 2147483648


def test_resolve_algorithm_is_deterministic():
    assert resolve_algorithm("3") == Algorithm.FSRS
    assert resolve_algorithm("1") == Algorithm.LEITNER
    assert resolve_algorithm("2") == Algorithm.SM2
    for item_id in ["abc", "42", "9f1c2e"]:
        assert resolve_algorithm(item_id) == resolve_algorithm(item_id)


def test_resolve_algorithm_when_experiment_disabled():
    for item_id in ["1", "2", "3"]:
        assert resolve_algorithm(item_id, experiment_enabled=False, default=Algorithm.SM2) == Algorithm.SM2


def test_mastery_levels():
    cases = {0: 0, 1: 1, 2: 1, 3: 2, 7: 2, 8: 3, 30: 3, 31: 4, 90: 4, 91: 5}
    for interval, level in cases.items():
        assert mastery_level(ItemState(id="a", interval=interval)) == level
    assert mastery_label(0) == "New"
    assert mastery_label(5) == "Mastered"
    assert mastery_label(9) == "New"
