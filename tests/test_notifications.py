#!/usr/bin/env python3
"""
Tests for notification formatting and the Telegram sink.

Tests:
- One-line formatters for votes, team switches, game ends
- TelegramNotifier never raises on network errors
- build_notifier picks the Null sink unless fully configured
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import requests

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from engine.game_state import TeamInfo
from engine.notifications import (
    NullNotifier,
    TelegramNotifier,
    build_notifier,
    format_error,
    format_game_end,
    format_status,
    format_team_switch,
    format_vote,
    format_warning,
)

RED = TeamInfo(id='red', name='Red', emoji='🔴', score=2)
BLUE = TeamInfo(id='blue', name='Blue', emoji='🔵', score=1)


class TestFormatters:
    def test_vote_line(self):
        line = format_vote(7, 'ne', RED, 2, 41.5, teams=[RED, BLUE], reason='closest fruit')
        assert line == "🐍 R7 NE 🔴red x2 | bal:41.5 | 🔴red2 🔵blue1 | closest fruit"

    def test_vote_line_minimal(self):
        assert format_vote(1, 'n', None, 1, 10) == "🐍 R1 N ? x1 | bal:10.0"

    def test_game_end(self):
        assert format_game_end(RED, True) == "🎉 Game ended! Winner: 🔴 Red (we won!)"
        assert format_game_end(None, False, 'green') == "🏁 Game ended! Winner: green"

    def test_team_switch(self):
        assert format_team_switch(None, BLUE) == "🎯 Joining team: 🔵 Blue"
        assert format_team_switch('red', BLUE, 'better odds') == "🔄 Switching: red → 🔵 Blue (better odds)"

    def test_error_and_warning(self):
        assert format_error("Vote failed") == "❌ Vote failed"
        assert format_warning("Rate limited") == "⚠️ Rate limited"

    def test_status_block(self):
        text = format_status({'strategy': 'aggressive', 'server': 'live', 'paused': True,
                              'phase': 'monitoring', 'games_played': 3, 'wins': 1})
        assert "Strategy: aggressive" in text
        assert "Paused: Yes" in text
        assert "Games: 3 (1 wins)" in text
        assert "Running since: N/A" in text


class TestTelegramNotifier:
    def make(self):
        notifier = TelegramNotifier('bot-token', '1234', api_url='https://tg.example/')
        notifier.session = MagicMock()
        return notifier

    def test_send_posts_message(self):
        notifier = self.make()
        notifier.session.post.return_value = MagicMock(ok=True, status_code=200)

        assert notifier.send("hello")
        url = notifier.session.post.call_args.args[0]
        assert url == 'https://tg.example/botbot-token/sendMessage'
        assert notifier.session.post.call_args.kwargs['json']['chat_id'] == '1234'

    def test_http_failure_returns_false(self):
        notifier = self.make()
        notifier.session.post.return_value = MagicMock(ok=False, status_code=403)
        assert notifier.send("hello") is False

    def test_network_error_returns_false(self):
        notifier = self.make()
        notifier.session.post.side_effect = requests.ConnectionError("down")
        assert notifier.send("hello") is False

    def test_unconfigured_does_nothing(self):
        notifier = TelegramNotifier('', '1234')
        notifier.session = MagicMock()
        assert notifier.send("hello") is False
        notifier.session.post.assert_not_called()


class TestBuildNotifier:
    def test_enabled(self):
        notifier = build_notifier({'log_to_telegram': True, 'telegram_chat_id': 99}, 'tok')
        assert isinstance(notifier, TelegramNotifier)
        assert notifier.chat_id == '99'

    def test_disabled_or_incomplete(self):
        assert isinstance(build_notifier({'log_to_telegram': False, 'telegram_chat_id': 99}, 'tok'), NullNotifier)
        assert isinstance(build_notifier({'log_to_telegram': True, 'telegram_chat_id': None}, 'tok'), NullNotifier)
        assert isinstance(build_notifier({'log_to_telegram': True, 'telegram_chat_id': 99}, ''), NullNotifier)

    def test_null_sink(self):
        assert NullNotifier().send("anything") is False
