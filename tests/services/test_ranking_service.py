"""
Tests for the RankingService.

The leaderboard is recomputed from the ledger on every read,
so these tests seed ledger entries with fixed timestamps and
pass the same `now` to every call.
"""

from datetime import datetime, timedelta

import pytest

from unlock_service.models.enums import TargetType
from unlock_service.services.ranking_service import (
    RankingService,
    window_bounds,
)


NOW = datetime(2026, 3, 1, 12, 0, 0)
PLATFORM = TargetType.PLATFORM_INVESTOR
DIRECTORY = TargetType.DIRECTORY_INVESTOR
PROJECT = TargetType.PROJECT_VISIBILITY


def seed_unlocks(add_entry, target, count, start=0, days_ago=1,
                 score=None, target_type=PLATFORM):
    for i in range(start, start + count):
        add_entry(
            f"pay_{target_type.name}_{target}_{i}", f"S{i}",
            target, NOW - timedelta(days=days_ago), score=score,
            target_type=target_type,
        )


class TestWindowBounds:

    def test_trailing_window(self):
        since, until = window_bounds(30, NOW)
        assert until == NOW
        assert since == NOW - timedelta(days=30)

    def test_window_must_be_positive(self):
        with pytest.raises(ValueError, match="at least 1"):
            window_bounds(0, NOW)


class TestTopN:

    def test_three_founders_put_target_on_leaderboard(self, db_session, add_entry):
        seed_unlocks(add_entry, "V7", 3)
        seed_unlocks(add_entry, "V8", 2)
        seed_unlocks(add_entry, "V9", 1)
        seed_unlocks(add_entry, "V10", 1, start=10)

        top = RankingService(db_session).top_n(3, now=NOW)

        assert [row.target_id for row in top][0] == "V7"
        assert top[0].request_count == 3
        assert top[0].position == 1
        assert len(top) == 3

    def test_ordered_by_request_count(self, db_session, add_entry):
        seed_unlocks(add_entry, "A", 1)
        seed_unlocks(add_entry, "B", 3)
        seed_unlocks(add_entry, "C", 2)

        top = RankingService(db_session).top_n(3, now=NOW)

        assert [row.target_id for row in top] == ["B", "C", "A"]
        assert [row.position for row in top] == [1, 2, 3]

    def test_ties_broken_by_average_score(self, db_session, add_entry):
        seed_unlocks(add_entry, "A", 2, score=60)
        seed_unlocks(add_entry, "B", 2, score=90)

        top = RankingService(db_session).top_n(2, now=NOW)

        assert [row.target_id for row in top] == ["B", "A"]
        assert top[0].avg_score == pytest.approx(90.0)

    def test_unscored_unlocks_count_as_neutral(self, db_session, add_entry):
        seed_unlocks(add_entry, "A", 1, score=None)
        seed_unlocks(add_entry, "B", 1, score=40)

        top = RankingService(db_session).top_n(2, now=NOW)

        assert [row.target_id for row in top] == ["A", "B"]
        assert top[0].avg_score == pytest.approx(50.0)

    def test_older_latest_unlock_wins_full_tie(self, db_session, add_entry):
        seed_unlocks(add_entry, "A", 1, days_ago=1, score=70)
        seed_unlocks(add_entry, "B", 1, days_ago=5, score=70)

        top = RankingService(db_session).top_n(2, now=NOW)

        assert [row.target_id for row in top] == ["B", "A"]

    def test_same_id_under_two_sources_ranked_separately(self, db_session, add_entry):
        seed_unlocks(add_entry, "42", 2, target_type=PLATFORM)
        seed_unlocks(add_entry, "42", 1, target_type=DIRECTORY)

        top = RankingService(db_session).top_n(3, now=NOW)

        assert [(r.target_id, r.target_type) for r in top] == [
            ("42", PLATFORM),
            ("42", DIRECTORY),
        ]

    def test_project_visibility_never_ranked(self, db_session, add_entry):
        seed_unlocks(add_entry, "P1", 3, target_type=PROJECT)
        seed_unlocks(add_entry, "V7", 1)

        service = RankingService(db_session)
        top = service.top_n(3, now=NOW)

        assert [row.target_id for row in top] == ["V7"]
        assert service.position_of("P1", PROJECT, now=NOW) is None

    def test_entries_outside_window_excluded(self, db_session, add_entry):
        seed_unlocks(add_entry, "OLD", 5, days_ago=31)
        seed_unlocks(add_entry, "NEW", 1, start=10, days_ago=2)

        top = RankingService(db_session).top_n(3, now=NOW)

        assert [row.target_id for row in top] == ["NEW"]

    def test_empty_ledger_gives_empty_leaderboard(self, db_session):
        assert RankingService(db_session).top_n(3, now=NOW) == []

    def test_n_must_be_positive(self, db_session):
        with pytest.raises(ValueError, match="at least 1"):
            RankingService(db_session).top_n(0, now=NOW)

    def test_repeated_reads_are_identical(self, db_session, add_entry):
        seed_unlocks(add_entry, "A", 2, score=70)
        seed_unlocks(add_entry, "B", 2, score=70)
        seed_unlocks(add_entry, "C", 2, score=70)

        service = RankingService(db_session)
        first = service.top_n(3, now=NOW)
        second = service.top_n(3, now=NOW)

        assert first == second
        # Full tie: target identity decides.
        assert [row.target_id for row in first] == ["A", "B", "C"]


class TestPositionOf:

    def test_position_of_ranked_target(self, db_session, add_entry):
        seed_unlocks(add_entry, "A", 1)
        seed_unlocks(add_entry, "B", 2)

        service = RankingService(db_session)

        assert service.position_of("B", PLATFORM, now=NOW) == 1
        assert service.position_of("A", PLATFORM, now=NOW) == 2

    def test_unranked_target_has_no_position(self, db_session, add_entry):
        seed_unlocks(add_entry, "A", 1)
        service = RankingService(db_session)

        assert service.position_of("Z", PLATFORM, now=NOW) is None
        assert service.position_of("A", DIRECTORY, now=NOW) is None
