"""
Persistence Module

- AgentState JSON document (daemon bookkeeping, survives restarts)
- SQLite ledger of submitted votes and finished games
"""

from .models import VoteRecord, GameRecord
from .database import init_db, get_session, session_scope, close_db
from .stats_repository import StatsRepository
from .agent_state import AgentStateRepository

__all__ = [
    # Models
    'VoteRecord',
    'GameRecord',
    # Database
    'init_db',
    'get_session',
    'session_scope',
    'close_db',
    # Repositories
    'StatsRepository',
    'AgentStateRepository',
]
