"""
Conservative Strategy

Always bids the floor, prefers safe moves, and sits out rounds where our
team is behind.
"""

import logging

from engine.game_state import ParsedGameState
from engine.hex_grid import hex_distance
from engine.models import AgentState

from .interface import Decision, SkipAction, Strategy, VoteAction

logger = logging.getLogger(__name__)


class ConservativeStrategy(Strategy):
    """Minimum bids, safety first, skips when behind."""

    name = "conservative"
    description = "Minimum bids, safety-first moves, skips rounds when behind."

    def compute_vote(self, state: ParsedGameState, balance: float,
                     agent: AgentState) -> Decision:
        if not self.should_play(state, balance, agent):
            return None

        if state.min_bid > self.get_option('max_bid_amount', 1):
            return SkipAction(reason=f'min_bid_above_cap ({state.min_bid})')

        candidates = self.teams_with_fruit(state)
        if not candidates:
            return SkipAction(reason='no_teams_with_fruits')

        leader = sorted(candidates, key=self.leader_sort_key)[0]
        team = next((t for t in candidates if t.id == agent.current_team), None)

        if team is None:
            team = leader
        elif team.score < leader.score and self.get_option('skip_if_behind', True):
            return SkipAction(reason=f'behind ({team.score} vs {leader.score})')

        target = team.closest_fruit.position
        direction = max(
            state.valid_directions,
            key=lambda d: (
                self.score_direction_safety(d, state),
                -hex_distance(self.landing_cell(state, d), target),
            ),
        )
        return VoteAction(
            direction=direction,
            team=team,
            amount=state.min_bid,
            reason=f"steady (score:{team.score})",
        )
