"""
Random Strategy

Baseline for comparisons: uniform choice among valid directions, floor bid.
"""

import random
from typing import Any, Dict, Optional

from engine.game_state import ParsedGameState
from engine.models import AgentState

from .interface import Decision, SkipAction, Strategy, VoteAction


class RandomStrategy(Strategy):
    """Uniformly random valid direction. Useful as a baseline."""

    name = "random"
    description = "Random valid direction at the minimum bid. Baseline for comparison."

    def __init__(self, options: Optional[Dict[str, Any]] = None, rng: Optional[random.Random] = None):
        super().__init__(options)
        self.rng = rng or random.Random(self.get_option('seed'))

    def compute_vote(self, state: ParsedGameState, balance: float,
                     agent: AgentState) -> Decision:
        if not self.should_play(state, balance, agent):
            return None

        candidates = self.teams_with_fruit(state)
        if not candidates:
            return SkipAction(reason='no_teams_with_fruits')

        team = next((t for t in candidates if t.id == agent.current_team), None)
        if team is None:
            team = self.rng.choice(candidates)

        direction = self.rng.choice(list(state.valid_directions))
        return VoteAction(
            direction=direction,
            team=team,
            amount=state.min_bid,
            reason="random",
        )
