"""
Notifications

Best-effort delivery of daemon events (votes, team switches, game ends,
errors) to Telegram, plus the one-line formatters used for both the log
and the notification text. A failed send never raises.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

import requests

logger = logging.getLogger(__name__)


class NullNotifier:
    """Sink that drops everything"""

    def send(self, text: str) -> bool:
        return False


class TelegramNotifier:
    """Sends messages through the Telegram Bot API"""

    def __init__(self, bot_token: str, chat_id: str,
                 api_url: str = 'https://api.telegram.org', timeout: int = 10):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()

    def send(self, text: str) -> bool:
        if not self.bot_token or not self.chat_id:
            return False
        try:
            response = self.session.post(
                f"{self.api_url}/bot{self.bot_token}/sendMessage",
                json={'chat_id': self.chat_id, 'text': text, 'parse_mode': 'HTML'},
                timeout=self.timeout,
            )
            if not response.ok:
                logger.debug(f"Telegram send failed: HTTP {response.status_code}")
            return response.ok
        except requests.RequestException as e:
            logger.debug(f"Telegram send failed: {e}")
            return False


def build_notifier(settings: Dict[str, Any], bot_token: str, api_url: str = 'https://api.telegram.org'):
    """Telegram sink when enabled and configured, otherwise a NullNotifier"""
    chat_id = settings.get('telegram_chat_id')
    if settings.get('log_to_telegram') and chat_id and bot_token:
        return TelegramNotifier(bot_token, str(chat_id), api_url=api_url)
    return NullNotifier()


# ----------------------------------------------------------------------
# Formatters
# ----------------------------------------------------------------------

def _team_label(team) -> str:
    if team is None:
        return "?"
    emoji = getattr(team, 'emoji', '') or ''
    return f"{emoji}{team.id}"


def format_vote(round_number: int, direction: str, team, amount: float,
                balance: float, teams: Iterable = (), reason: Optional[str] = None) -> str:
    scores = ' '.join(f"{_team_label(t)}{t.score}" for t in teams)
    line = f"🐍 R{round_number} {direction.upper()} {_team_label(team)} x{amount} | bal:{balance:.1f}"
    if scores:
        line += f" | {scores}"
    if reason:
        line += f" | {reason}"
    return line


def format_game_end(winner, did_win: bool, winner_id: Optional[str] = None) -> str:
    emoji = '🎉' if did_win else '🏁'
    suffix = ' (we won!)' if did_win else ''
    if winner is not None:
        name = f"{getattr(winner, 'emoji', '') or ''} {winner.name or winner.id}".strip()
    else:
        name = winner_id or 'unknown'
    return f"{emoji} Game ended! Winner: {name}{suffix}"


def format_team_switch(from_team: Optional[str], to_team, reason: str = "") -> str:
    name = f"{getattr(to_team, 'emoji', '') or ''} {to_team.name or to_team.id}".strip()
    if not from_team:
        return f"🎯 Joining team: {name}"
    return f"🔄 Switching: {from_team} → {name} ({reason})"


def format_error(message: str) -> str:
    return f"❌ {message}"


def format_warning(message: str) -> str:
    return f"⚠️ {message}"


def format_status(status: Dict[str, Any]) -> str:
    started = status.get('started_at')
    started_text = datetime.fromtimestamp(started).strftime('%Y-%m-%d %H:%M:%S') if started else 'N/A'
    lines = [
        "🐍 Snake Daemon Status",
        f"├─ Strategy: {status.get('strategy')}",
        f"├─ Server: {status.get('server')}",
        f"├─ Paused: {'Yes' if status.get('paused') else 'No'}",
        f"├─ Phase: {status.get('phase')}",
        f"├─ Current Team: {status.get('current_team') or 'None'}",
        f"├─ Games: {status.get('games_played', 0)} ({status.get('wins', 0)} wins)",
        f"├─ Votes: {status.get('votes_placed', 0)}",
        f"└─ Running since: {started_text}",
    ]
    return '\n'.join(lines)
