import os
from dataclasses import dataclass, field
from typing import Dict


def _xdg_dir(env_var: str, fallback: str) -> str:
    base = os.environ.get(env_var) or os.path.join(os.path.expanduser('~'), fallback)
    return os.path.join(base, 'snake-rodeo')


SERVERS: Dict[str, str] = {
    'live': 'https://bot.trifle.life',
    'staging': 'https://bot-staging.trifle.life',
}


@dataclass
class Config:
    """Configuration for the snake-rodeo daemon"""

    # Status app (Flask) settings
    HOST: str = '127.0.0.1'  # localhost only
    PORT: int = int(os.environ.get('SNAKE_STATUS_PORT', '5055'))

    # Backend settings
    # Explicit URL override beats the 'server' user setting
    BACKEND_URL_OVERRIDE: str = os.environ.get('TRIFLE_BACKEND_URL', '')
    AUTH_TOKEN_OVERRIDE: str = os.environ.get('TRIFLE_AUTH_TOKEN', '')
    ORIGIN: str = 'https://trifle.life'
    SERVERS: Dict[str, str] = field(default_factory=lambda: dict(SERVERS))

    # Network timings
    REQUEST_TIMEOUT: int = 15          # seconds per HTTP request
    TOKEN_CACHE_SECONDS: int = 60      # re-read auth.json at most once a minute
    RATE_LIMIT_BACKOFF: float = 30.0   # used when a 429 carries no Retry-After

    # Decision loop timings
    AUTH_RETRY_DELAY: float = 5.0      # seconds between auth checks while signed out
    MONITOR_POLL_INTERVAL: float = 2.0  # poll while watching our vote for an override
    EXTENSION_WINDOW_SECONDS: int = 5  # trailing part of a round that extends it

    # Notifications
    TELEGRAM_BOT_TOKEN: str = os.environ.get('TELEGRAM_BOT_TOKEN', '')
    TELEGRAM_API_URL: str = 'https://api.telegram.org'

    # Paths (XDG base directories)
    CONFIG_DIR: str = os.environ.get('SNAKE_CONFIG_DIR') or _xdg_dir('XDG_CONFIG_HOME', '.config')
    STATE_DIR: str = os.environ.get('SNAKE_STATE_DIR') or _xdg_dir('XDG_STATE_HOME', os.path.join('.local', 'state'))
    DATA_DIR: str = os.environ.get('SNAKE_DATA_DIR') or _xdg_dir('XDG_DATA_HOME', os.path.join('.local', 'share'))

    @property
    def SETTINGS_FILE(self) -> str:
        return os.path.join(self.CONFIG_DIR, 'settings.json')

    @property
    def AUTH_FILE(self) -> str:
        return os.path.join(self.CONFIG_DIR, 'auth.json')

    @property
    def PID_FILE(self) -> str:
        return os.path.join(self.STATE_DIR, 'daemon.pid')

    @property
    def STATE_FILE(self) -> str:
        return os.path.join(self.STATE_DIR, 'daemon.state')

    @property
    def PAUSE_FILE(self) -> str:
        return os.path.join(self.STATE_DIR, 'daemon.paused')

    @property
    def LOG_FILE(self) -> str:
        return os.path.join(self.DATA_DIR, 'daemon.log')

    # Database
    @property
    def DATABASE_URL(self) -> str:
        return f'sqlite:///{os.path.join(self.DATA_DIR, "stats.db")}'

    def ensure_dirs(self):
        """Create config/state/data directories if missing"""
        for path in (self.CONFIG_DIR, self.STATE_DIR, self.DATA_DIR):
            os.makedirs(path, exist_ok=True)


# Create global config instance
config = Config()
