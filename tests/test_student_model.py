"""Tests for core/student_model.py"""

import random
from datetime import timedelta

from core.models import AttemptRecord, MasteryLevel, TrendDirection
from core.student_model import StudentModel


def history(results, start, step=timedelta(days=1), concept_id="linear_eq", student_id="s1"):
    return [
        AttemptRecord(student_id, concept_id, correct, start + i * step, attempt_id=f"a{i:03d}")
        for i, correct in enumerate(results)
    ]


def test_no_history_has_no_snapshot(now):
    assert StudentModel().rebuild("s1", "linear_eq", []) is None


def test_first_attempt(now):
    update = StudentModel().rebuild("s1", "linear_eq", history([True], now))

    assert update.first_introduced is True
    assert update.milestone_reached is False
    snap = update.snapshot
    assert snap.total_attempts == 1
    assert snap.mastery_level == MasteryLevel.INTRODUCED
    assert snap.trend == TrendDirection.STABLE
    assert snap.previous_percent is None
    assert snap.first_assessed == snap.last_assessed == now


def test_linear_equations_scenario(now):
    """38 attempts, 34 correct, most recent yesterday."""
    yesterday = now - timedelta(days=1)
    attempts = history([False] * 4 + [True] * 34, yesterday, step=timedelta(0))

    snap = StudentModel().rebuild("s1", "linear_eq", attempts).snapshot

    assert snap.total_attempts == 38
    assert snap.correct_attempts == 34
    assert snap.incorrect_attempts == 4
    assert snap.mastery_percent == 89.47
    assert snap.mastery_level == MasteryLevel.PROFICIENT
    # Previous snapshot was 33 / 37
    assert snap.previous_percent == 89.19
    assert snap.trend == TrendDirection.STABLE
    assert snap.last_assessed == yesterday


def test_rebuild_is_idempotent(now):
    rng = random.Random(3)
    attempts = history([rng.random() > 0.3 for _ in range(25)], now)
    model = StudentModel()

    first = model.rebuild("s1", "linear_eq", attempts)
    shuffled = attempts[:]
    random.Random(11).shuffle(shuffled)
    second = model.rebuild("s1", "linear_eq", shuffled)

    assert first.snapshot == second.snapshot
    assert first.milestone_reached == second.milestone_reached


def test_rebuild_ignores_other_pairs(now):
    mixed = history([True] * 3, now) + history([False] * 3, now, concept_id="systems")
    snap = StudentModel().rebuild("s1", "linear_eq", mixed).snapshot

    assert snap.total_attempts == 3
    assert snap.mastery_percent == 100.0


def test_milestone_fires_once(now):
    model = StudentModel()
    perfect = history([True] * 6, now)

    # Fifth correct answer is the first time the pair reaches MASTERED
    fifth = model.rebuild("s1", "linear_eq", perfect[:5])
    assert fifth.snapshot.mastery_level == MasteryLevel.MASTERED
    assert fifth.milestone_reached is True
    assert fifth.snapshot.mastered_at == perfect[4].timestamp

    sixth = model.rebuild("s1", "linear_eq", perfect)
    assert sixth.milestone_reached is False
    assert sixth.snapshot.mastered_at == perfect[4].timestamp


def test_milestone_not_repeated_after_relapse(now):
    model = StudentModel()
    results = [True] * 5 + [False] * 5 + [True] * 10
    attempts = history(results, now)

    update = model.rebuild("s1", "linear_eq", attempts)
    assert update.milestone_reached is False
    assert update.snapshot.mastered_at == attempts[4].timestamp


def test_declining_trend(now):
    results = [True] * 10 + [False]
    update = StudentModel().rebuild("s1", "linear_eq", history(results, now, step=timedelta(0)))

    # 100% -> 90.91%
    assert update.snapshot.trend == TrendDirection.DECLINING
    assert update.snapshot.previous_percent == 100.0


def test_snapshot_serialization(now):
    snap = StudentModel().rebuild("s1", "linear_eq", history([True] * 6, now)).snapshot

    data = StudentModel.snapshot_to_dict(snap)
    assert all(isinstance(v, str) for v in data.values())
    assert StudentModel.snapshot_from_dict(data) == snap


def test_stored_mastery_survives_late_attempt(now):
    model = StudentModel()
    on_time = history([True] * 5, now + timedelta(hours=1), step=timedelta(hours=1))
    first = model.rebuild("s1", "linear_eq", on_time)
    assert first.milestone_reached is True

    # An older attempt delivered late: the replay alone never reaches MASTERED
    late = AttemptRecord("s1", "linear_eq", False, now, attempt_id="late")
    assert model.rebuild("s1", "linear_eq", on_time + [late]).snapshot.mastered_at is None

    kept = model.rebuild("s1", "linear_eq", on_time + [late], stored=first.snapshot)
    assert kept.snapshot.mastered_at == first.snapshot.mastered_at
    assert kept.milestone_reached is False


def test_milestone_fires_against_unmastered_stored_snapshot(now):
    model = StudentModel()
    perfect = history([True] * 5, now)
    before = model.rebuild("s1", "linear_eq", perfect[:4]).snapshot
    assert before.mastered_at is None

    update = model.rebuild("s1", "linear_eq", perfect, stored=before)
    assert update.milestone_reached is True
    assert update.snapshot.mastered_at == perfect[4].timestamp
