"""Tests for core/aggregator.py"""

import random
from datetime import timedelta

from core.aggregator import AttemptAggregator
from core.models import AttemptRecord
from core.policy import MasteryPolicy


def attempt(is_correct, at, attempt_id=None, concept_id="linear_eq"):
    kwargs = {"attempt_id": attempt_id} if attempt_id else {}
    return AttemptRecord("s1", concept_id, is_correct, at, **kwargs)


def test_no_attempts_has_no_stats():
    assert AttemptAggregator().aggregate([]) is None


def test_plain_percentage_below_minimum(now):
    stats = AttemptAggregator().aggregate([attempt(True, now), attempt(False, now + timedelta(days=90))])

    # Only two attempts: recency weighting is not applied yet
    assert stats.total == 2
    assert stats.correct == 1
    assert stats.incorrect == 1
    assert stats.percent == 50.0


def test_same_day_attempts_match_plain_percentage(now):
    attempts = [attempt(i >= 4, now, attempt_id=f"a{i:02d}") for i in range(38)]
    stats = AttemptAggregator().aggregate(attempts)

    assert stats.correct == 34
    assert stats.percent == 89.47


def test_recent_attempts_outweigh_old_ones(now):
    old = [attempt(False, now, f"old{i}") for i in range(3)]
    recent = [attempt(True, now + timedelta(days=60), f"new{i}") for i in range(3)]

    stats = AttemptAggregator(MasteryPolicy(half_life_days=30)).aggregate(old + recent)

    # Two half-lives: old attempts weigh 0.25 each -> 3 / 3.75
    assert stats.percent == 80.0
    assert stats.correct == 3
    assert stats.first_at == now
    assert stats.last_at == now + timedelta(days=60)


def test_longer_half_life_forgets_slower(now):
    history = [attempt(False, now, f"old{i}") for i in range(3)]
    history += [attempt(True, now + timedelta(days=60), f"new{i}") for i in range(3)]

    fast = AttemptAggregator(MasteryPolicy(half_life_days=10)).aggregate(history)
    slow = AttemptAggregator(MasteryPolicy(half_life_days=365)).aggregate(history)

    assert fast.percent > slow.percent > 50.0


def test_delivery_order_does_not_matter(now):
    history = [attempt(i % 3 != 0, now + timedelta(days=i), f"a{i:02d}") for i in range(20)]
    shuffled = history[:]
    random.Random(7).shuffle(shuffled)

    aggregator = AttemptAggregator()
    assert aggregator.aggregate(shuffled) == aggregator.aggregate(history)


def test_fold_yields_one_entry_per_attempt(now):
    history = [attempt(True, now + timedelta(days=i), f"a{i}") for i in range(5)]
    prefixes = AttemptAggregator().fold(history)

    assert [p.total for p in prefixes] == [1, 2, 3, 4, 5]
    assert all(p.percent == 100.0 for p in prefixes)
