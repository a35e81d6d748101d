"""
Data models for the daemon's own bookkeeping.

AgentState is owned by the autoplay daemon and round-tripped through
persistence.agent_state.AgentStateRepository.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, Optional


@dataclass
class AgentState:
    """Mutable daemon state that outlives a single game"""
    current_team: Optional[str] = None
    last_round: int = -1
    games_played: int = 0
    wins: int = 0
    votes_placed: int = 0
    round_spend: float = 0.0
    round_vote_count: int = 0
    started_at: Optional[float] = None

    # Status snapshot for `snake status` (written on phase changes)
    phase: str = "stopped"
    last_error: Optional[str] = None

    # Transient: per-round budget handed to should_counter_bid, never persisted
    round_budget_remaining: Optional[float] = field(default=None, compare=False)

    def reset_round(self):
        """Clear per-round spend tracking"""
        self.round_spend = 0.0
        self.round_vote_count = 0

    def reset_game(self):
        """Clear per-game tracking"""
        self.current_team = None
        self.last_round = -1
        self.reset_round()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop('round_budget_remaining', None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AgentState':
        """Build from a stored dict, ignoring unknown keys"""
        known = {f.name for f in fields(cls)} - {'round_budget_remaining'}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})
