#!/usr/bin/env python3
"""
Tests for the Flask status app.

Tests:
- /health and /status reflect the PID file and stored AgentState
- /stats and /votes read the ledger
- POST /pause and /resume toggle the pause marker
"""

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app import VERSION, create_app
from config import config
from engine import process
from engine.models import AgentState
from engine.simulator import MemoryAgentStore


@pytest.fixture
def stats_repo():
    repo = MagicMock()
    repo.get_overall_stats.return_value = {'total_games': 2, 'total_wins': 1}
    game = MagicMock()
    game.to_dict.return_value = {'winner_team': 'red', 'won': True}
    vote = MagicMock()
    vote.to_dict.return_value = {'direction': 'n', 'amount': 1.0}
    repo.get_recent_games.return_value = [game]
    repo.get_recent_votes.return_value = [vote]
    return repo


@pytest.fixture
def client(tmp_path, monkeypatch, stats_repo):
    monkeypatch.setattr(config, 'STATE_DIR', str(tmp_path / 'state'))
    store = MemoryAgentStore(AgentState(games_played=2, wins=1, current_team='red', phase='monitoring'))
    app = create_app(agent_store=store, stats_repo=stats_repo,
                     settings_loader=lambda: {'strategy': 'underdog', 'server': 'staging'})
    app.config['TESTING'] = True
    yield app.test_client()
    for pid_file in list(process._held_locks):
        process.release_lock(pid_file)


class TestHealth:
    def test_health(self, client):
        data = client.get('/health').get_json()
        assert data == {'status': 'ok', 'daemon_running': False, 'version': VERSION}

    def test_health_with_daemon(self, client):
        process.acquire_lock()
        assert client.get('/health').get_json()['daemon_running'] is True


class TestStatus:
    def test_status(self, client):
        data = client.get('/status').get_json()
        assert data['running'] is False
        assert data['phase'] == 'stopped'
        assert data['games_played'] == 2
        assert data['strategy'] == 'underdog'
        assert data['server'] == 'staging'


class TestLedger:
    def test_stats(self, client, stats_repo):
        data = client.get('/stats?limit=3').get_json()
        assert data['overall']['total_games'] == 2
        assert data['recent_games'] == [{'winner_team': 'red', 'won': True}]
        stats_repo.get_recent_games.assert_called_once_with(3)

    def test_votes_default_limit(self, client, stats_repo):
        data = client.get('/votes').get_json()
        assert data == [{'direction': 'n', 'amount': 1.0}]
        stats_repo.get_recent_votes.assert_called_once_with(20)


class TestPauseResume:
    def test_pause_then_resume(self, client):
        assert client.post('/pause').get_json()['success'] is True
        assert os.path.exists(config.PAUSE_FILE)
        assert client.get('/status').get_json()['paused'] is True

        assert client.post('/resume').get_json()['success'] is True
        assert not os.path.exists(config.PAUSE_FILE)

    def test_pause_requires_post(self, client):
        assert client.get('/pause').status_code == 405
