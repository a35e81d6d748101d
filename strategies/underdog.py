"""
Underdog Strategy

Backs teams with small pools: fewer votes behind a team means a bigger
share of the prize if it wins.
"""

import logging

from engine.game_state import ParsedGameState, TeamInfo
from engine.hex_grid import hex_distance
from engine.models import AgentState

from .expected_value import estimate_team_votes
from .interface import Decision, SkipAction, Strategy, VoteAction

logger = logging.getLogger(__name__)


class UnderdogStrategy(Strategy):
    """Backs small-pool teams for a bigger payout share."""

    name = "underdog"
    description = "Backs small-pool teams for a bigger proportional payout."

    def payout_multiplier(self, team: TeamInfo, state: ParsedGameState) -> float:
        """Prize per unit bid if this team wins with us on board"""
        our_share = 1 / (estimate_team_votes(team, state) + 1)
        return state.prize_pool * our_share / state.min_bid

    def compute_vote(self, state: ParsedGameState, balance: float,
                     agent: AgentState) -> Decision:
        if not self.should_play(state, balance, agent):
            return None

        max_pool = self.get_option('max_pool_size', 10)
        min_multiplier = self.get_option('min_payout_multiplier', 2.0)

        candidates = [
            team for team in self.teams_with_fruit(state)
            if team.score < state.fruits_to_win
        ]
        if not candidates:
            return SkipAction(reason='no_teams_with_fruits')

        current = next((t for t in candidates if t.id == agent.current_team), None)
        if current is not None and current.pool <= max_pool:
            team = current
            reason = f"underdog_loyal (pool:{current.pool:.0f})"
        else:
            small = [t for t in candidates if t.pool <= max_pool]
            if not small:
                return SkipAction(reason=f'no_small_pools (max:{max_pool})')
            team = sorted(small, key=lambda t: (t.pool, t.closest_fruit.distance))[0]
            reason = f"underdog (pool:{team.pool:.0f})"

        multiplier = self.payout_multiplier(team, state)
        if multiplier < min_multiplier:
            return SkipAction(reason=f'payout_too_low (x{multiplier:.1f})')

        target = team.closest_fruit.position
        direction = max(
            state.valid_directions,
            key=lambda d: (
                -hex_distance(self.landing_cell(state, d), target),
                self.score_direction_safety(d, state),
            ),
        )
        return VoteAction(
            direction=direction,
            team=team,
            amount=state.min_bid,
            reason=f"{reason} x{multiplier:.1f}",
        )
