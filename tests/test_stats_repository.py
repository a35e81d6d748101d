#!/usr/bin/env python3
"""
Tests for the SQLite vote/game ledger.

Each test gets its own database file under tmp_path.
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from persistence import StatsRepository, close_db, init_db, session_scope
from persistence.models import VoteRecord


@pytest.fixture
def repo(tmp_path):
    init_db(f"sqlite:///{tmp_path / 'stats.db'}")
    yield StatsRepository()
    close_db()


class TestVotes:
    def test_record_and_list(self, repo):
        repo.record_vote(1, 'n', 'red', 1.0, reason='closest fruit', strategy='expected-value')
        repo.record_vote(1, 'ne', 'red', 2.0, is_counter=True, balance_before=9.0)

        votes = repo.get_recent_votes()
        assert len(votes) == 2
        assert votes[0].direction == 'ne'
        assert votes[0].is_counter
        assert votes[1].reason == 'closest fruit'
        assert votes[1].to_dict()['strategy'] == 'expected-value'

    def test_reason_truncated(self, repo):
        vote = repo.record_vote(2, 's', 'blue', 1.0, reason='x' * 500)
        assert len(vote.reason) == 300

    def test_limit(self, repo):
        for i in range(5):
            repo.record_vote(i, 'n', 'red', 1.0)
        assert [v.round for v in repo.get_recent_votes(limit=2)] == [4, 3]


class TestGames:
    def test_record_game(self, repo):
        started = datetime(2024, 1, 1, 12, 0, 0)
        game = repo.record_game_result('red', 'red', True, votes_placed=4, amount_spent=6.0,
                                       rounds_played=9, strategy='aggressive', started_at=started)
        assert game.id is not None

        recent = repo.get_recent_games()
        assert len(recent) == 1
        data = recent[0].to_dict()
        assert data['winner_team'] == 'red'
        assert data['won'] is True
        assert data['started_at'] == '2024-01-01T12:00:00'
        assert data['ended_at'] is not None

    def test_overall_stats(self, repo):
        repo.record_game_result('red', 'red', True)
        repo.record_game_result('blue', 'red', False)
        repo.record_game_result('blue', None, False)
        repo.record_vote(1, 'n', 'red', 1.0)
        repo.record_vote(1, 'ne', 'red', 2.5, is_counter=True)

        stats = repo.get_overall_stats()
        assert stats['total_games'] == 3
        assert stats['total_wins'] == 1
        assert stats['total_losses'] == 2
        assert stats['win_rate'] == pytest.approx(100 / 3)
        assert stats['total_votes'] == 2
        assert stats['counter_votes'] == 1
        assert stats['total_spent'] == pytest.approx(3.5)

    def test_empty_stats(self, repo):
        stats = repo.get_overall_stats()
        assert stats['total_games'] == 0
        assert stats['win_rate'] == 0.0
        assert stats['total_spent'] == 0.0


class TestSessionScope:
    def test_rollback_on_error(self, repo):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(VoteRecord(round=1, direction='n', team='red', amount=1.0))
                session.flush()
                raise RuntimeError("boom")
        assert repo.get_recent_votes() == []
