"""
Aggressive Strategy

Goes all-in on the leading team with higher bids.
- Always backs the team closest to winning
- Bids a multiple of minBid to hold the direction
- Outbids existing votes, capped at half the balance
"""

import logging
import math
from typing import Optional

from engine.game_state import ParsedGameState
from engine.hex_grid import hex_distance
from engine.models import AgentState

from .interface import Decision, SkipAction, Strategy, VoteAction

logger = logging.getLogger(__name__)


class AggressiveStrategy(Strategy):
    """High bids on leading teams. All-in mentality."""

    name = "aggressive"
    description = "High bids on leading teams. All-in mentality."

    def compute_vote(self, state: ParsedGameState, balance: float,
                     agent: AgentState) -> Decision:
        if not self.should_play(state, balance, agent):
            return None

        candidates = self.teams_with_fruit(state)
        if not candidates:
            return SkipAction(reason='no_teams_with_fruits')

        team = sorted(candidates, key=self.leader_sort_key)[0]
        direction = self.find_best_direction(state, team.closest_fruit.position)
        if direction is None:
            return None

        amount = self.calculate_aggressive_bid(state, balance, direction)
        return VoteAction(
            direction=direction,
            team=team,
            amount=amount,
            reason=f"backing_leader (score: {team.score})",
        )

    def should_counter_bid(self, state: ParsedGameState, balance: float,
                           agent: AgentState, previous_vote: VoteAction) -> Optional[VoteAction]:
        """Take the direction back at the aggressive price, within the round budget"""
        if not self.within_round_budget(state, balance, agent):
            return None

        amount = self.calculate_aggressive_bid(state, balance, previous_vote.direction)
        # Whole balls only
        amount = math.floor(min(amount, agent.round_budget_remaining))
        if amount < state.min_bid:
            return None

        team = state.team(previous_vote.team_id) or previous_vote.team
        return VoteAction(
            direction=previous_vote.direction,
            team=team,
            amount=amount,
            reason=f"retake (ext:{state.extensions}, bid:{amount})",
        )

    def find_best_direction(self, state: ParsedGameState, target) -> Optional[str]:
        """Distance dominates; safety is a smaller tie-breaker"""
        best = None
        best_score = None
        for direction in state.valid_directions:
            score = 0.0
            if target is not None:
                score += (10 - hex_distance(self.landing_cell(state, direction), target)) * 10
            score += self.score_direction_safety(direction, state) * 3
            if best_score is None or score > best_score:
                best_score = score
                best = direction
        return best

    def calculate_aggressive_bid(self, state: ParsedGameState, balance: float, direction: str) -> float:
        bid = state.min_bid * self.get_option('bid_multiplier', 2)

        existing = state.votes.get(direction)
        if existing is not None and self.get_option('always_outbid', True):
            bid = max(bid, existing.amount + 1)

        # Never more than half the balance, never less than the floor
        bid = min(bid, balance // 2)
        return max(bid, state.min_bid)
