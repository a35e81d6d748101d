"""
Strategy Interface - The contract between the autoplay daemon and a voting policy.

The daemon hands a strategy the parsed game state, the current balance and
its AgentState, and gets back a VoteAction, a SkipAction or None. Strategies
never talk to the network and never submit votes themselves; the lifecycle
hooks exist only for a strategy's internal bookkeeping.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from engine.game_state import ParsedGameState, TeamInfo
from engine.hex_grid import Hex, OPPOSITE_DIRECTIONS, count_exits
from engine.models import AgentState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteAction:
    """A vote to submit: which way, for whom, how much and why"""
    direction: str
    team: TeamInfo
    amount: float
    reason: str = ""

    skip = False

    @property
    def team_id(self) -> str:
        return self.team.id

    def to_dict(self) -> dict:
        return {
            'direction': self.direction,
            'team': self.team.id,
            'amount': self.amount,
            'reason': self.reason,
        }


@dataclass(frozen=True)
class SkipAction:
    """A deliberate decision not to vote this round"""
    reason: str

    skip = True

    def to_dict(self) -> dict:
        return {'skip': True, 'reason': self.reason}


Decision = Optional[Union[VoteAction, SkipAction]]


class Strategy(ABC):
    """
    Abstract base class for all voting policies.

    Subclasses implement compute_vote(). should_counter_bid() and the
    on_* hooks are optional; the defaults decline to counter and do nothing.
    """

    name: str = "base"
    description: str = ""

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        self.options = dict(options or {})

    @abstractmethod
    def compute_vote(self, state: ParsedGameState, balance: float,
                     agent: AgentState) -> Decision:
        """
        Decide this round's vote.

        Returns None when should_play() is false, a SkipAction when the
        strategy chooses to sit out, otherwise a VoteAction.
        """

    def should_play(self, state: Optional[ParsedGameState], balance: float,
                    agent: AgentState) -> bool:
        """Default gate: active game, somewhere to go, and money for minBid"""
        if state is None or not state.active:
            return False
        if not state.valid_directions:
            return False
        if balance < state.min_bid:
            return False
        return True

    def should_counter_bid(self, state: ParsedGameState, balance: float,
                           agent: AgentState, previous_vote: VoteAction) -> Optional[VoteAction]:
        """
        Called when another voter took the round away from previous_vote.

        agent.round_budget_remaining carries what is left of this round's
        budget. Return None to let the override stand.
        """
        return None

    def within_round_budget(self, state: ParsedGameState, balance: float,
                            agent: AgentState) -> bool:
        """True when one more minBid vote fits both balance and round budget"""
        budget = agent.round_budget_remaining or 0
        return balance >= state.min_bid and budget >= state.min_bid

    def on_game_start(self, state: ParsedGameState, agent: AgentState):
        pass

    def on_game_end(self, state: ParsedGameState, agent: AgentState, did_win: bool):
        pass

    def on_round_end(self, state: ParsedGameState, agent: AgentState):
        pass

    def get_option(self, key: str, default: Any = None) -> Any:
        value = self.options.get(key)
        return default if value is None else value

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    @staticmethod
    def landing_cell(state: ParsedGameState, direction: str) -> Hex:
        return state.head.neighbor(direction)

    def score_direction_safety(self, direction: str, state: ParsedGameState) -> int:
        """Free exits from the cell this direction lands on (higher = safer)"""
        return count_exits(
            self.landing_cell(state, direction),
            state.snake_body,
            state.grid_radius,
            OPPOSITE_DIRECTIONS[direction],
        )

    def find_safest_direction(self, state: ParsedGameState) -> Optional[str]:
        best = None
        best_safety = -1
        for direction in state.valid_directions:
            safety = self.score_direction_safety(direction, state)
            if safety > best_safety:
                best_safety = safety
                best = direction
        return best

    @staticmethod
    def teams_with_fruit(state: ParsedGameState):
        return [team for team in state.teams if team.closest_fruit is not None]

    @staticmethod
    def leader_sort_key(team: TeamInfo):
        """Highest score first, then closest fruit"""
        dist = team.closest_fruit.distance if team.closest_fruit else 100
        return (-team.score, dist)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name} {self.options}>"
