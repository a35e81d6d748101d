"""
Expected Value Strategy

Maximizes expected value per vote: P(win) * payout share.

Game mechanics this relies on:
- The last accepted vote decides the round's direction, not the biggest one
- Payout is split by vote count, not by amount wagered
- A vote in the extension window extends the round and doubles minBid
- All-pay: every vote costs its amount whether the team wins or not

So cheap early votes beat expensive late ones, and bidding wars are a trap.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from engine.game_state import ParsedGameState, TeamInfo
from engine.hex_grid import CENTER, hex_distance
from engine.models import AgentState

from .interface import Decision, SkipAction, Strategy, VoteAction

logger = logging.getLogger(__name__)

FRUIT_LANDING_BONUS = 1000.0


@dataclass
class TeamAnalysis:
    """Result of team selection"""
    should_play: bool
    reason: str
    team: Optional[TeamInfo] = None
    expected_value: float = 0.0


def estimate_win_prob(team: TeamInfo, state: ParsedGameState) -> float:
    """
    Rough P(team wins) from (fruits still needed, distance to closest fruit).

    Lookup table, monotone: fewer fruits needed and a closer fruit both raise
    the estimate. A team without fruit on the board, or already at the win
    threshold, gets 0.
    """
    if team.closest_fruit is None:
        return 0.0
    fruits_needed = state.fruits_to_win - team.score
    dist = team.closest_fruit.distance

    if fruits_needed <= 0:
        return 0.0
    if fruits_needed == 1:
        if dist <= 1:
            return 0.9
        if dist <= 2:
            return 0.7
        return 0.5
    if fruits_needed == 2:
        return 0.4 if dist <= 2 else 0.25
    if fruits_needed == 3:
        return 0.15
    return 0.1


def estimate_team_votes(team: TeamInfo, state: ParsedGameState) -> float:
    """
    Approximate vote count behind a team.

    The backend reports pools (amount wagered), not per-voter counts. With
    everyone bidding the floor, pool / initialMinBid approximates the vote
    count. This is a heuristic, not an exact tally.
    """
    return max(team.pool / (state.initial_min_bid or 1), 1)


def calculate_expected_value(team: TeamInfo, state: ParsedGameState,
                             is_current_team: bool = False) -> float:
    """P(win) * prizePool * our estimated share of the team's votes"""
    win_prob = estimate_win_prob(team, state)
    team_votes = estimate_team_votes(team, state)
    # Joining adds our vote to the team; staying doesn't change the count
    our_share = 1 / (team_votes + (0 if is_current_team else 1))
    return win_prob * state.prize_pool * our_share


class ExpectedValueStrategy(Strategy):
    """Maximizes expected value per vote. Timing-aware with counter-bid analysis."""

    name = "expected-value"
    description = "Maximizes expected value per vote. Timing-aware with counter-bid analysis."

    def compute_vote(self, state: ParsedGameState, balance: float,
                     agent: AgentState) -> Decision:
        if not self.should_play(state, balance, agent):
            return None

        analysis = self.analyze_teams(state, agent.current_team)
        if not analysis.should_play:
            return SkipAction(reason=analysis.reason)

        team = analysis.team
        target = team.closest_fruit.position if team.closest_fruit else None

        ranked = sorted(
            state.valid_directions,
            key=lambda d: self.score_direction(d, state, target),
            reverse=True,
        )
        direction = ranked[0]

        amount = self.calculate_bid(state, balance, direction, team)

        old_dist = team.closest_fruit.distance if team.closest_fruit else '?'
        new_dist = hex_distance(self.landing_cell(state, direction), target) if target else '?'
        return VoteAction(
            direction=direction,
            team=team,
            amount=amount,
            reason=f"{analysis.reason} d:{old_dist}->{new_dist} cost:{amount}",
        )

    def should_counter_bid(self, state: ParsedGameState, balance: float,
                           agent: AgentState, previous_vote: VoteAction) -> Optional[VoteAction]:
        """
        Re-vote when overridden, but only if it still pays.

        Each counter costs the current minBid (which doubles per extension)
        while adding just one vote to our payout share, so tolerance for
        extensions and for expensive minBids is deliberately low.
        """
        if state.extensions > self.get_option('max_counter_extensions', 1):
            return None

        if state.min_bid > balance * self.get_option('max_counter_bid_pct', 0.1):
            return None

        if not self.within_round_budget(state, balance, agent):
            return None

        # Voting inside the window triggers another doubling
        effective_cost = state.min_bid * 2 if state.in_extension_window else state.min_bid

        # Assume roughly half of the team's votes this round are ours
        team_votes = agent.round_vote_count + 1
        payout_per_vote = state.prize_pool / max(team_votes * 2, 1)

        team = state.team(previous_vote.team_id) or previous_vote.team
        expected_return = estimate_win_prob(team, state) * payout_per_vote
        if expected_return < effective_cost * 0.5:
            logger.debug(f"Counter not worth it: ev={expected_return:.2f} cost={effective_cost}")
            return None

        return VoteAction(
            direction=previous_vote.direction,
            team=team,
            amount=state.min_bid,
            reason=f"counter (ext:{state.extensions}, cost:{state.min_bid}, ev:{expected_return:.1f})",
        )

    def analyze_teams(self, state: ParsedGameState, current_team_id: Optional[str]) -> TeamAnalysis:
        candidates = self.teams_with_fruit(state)
        if not candidates:
            return TeamAnalysis(should_play=False, reason='no_teams_with_fruits')

        evs = {
            team.id: calculate_expected_value(team, state, team.id == current_team_id)
            for team in candidates
        }
        by_ev: List[TeamInfo] = sorted(candidates, key=lambda t: evs[t.id], reverse=True)
        best = by_ev[0]

        # Not aligned yet: join the team closest to winning
        # Score outranks EV here; a pool-size preference only applies between equal scores
        if not current_team_id:
            def join_key(team: TeamInfo):
                return (
                    -team.score,
                    -estimate_win_prob(team, state),
                    -evs[team.id],
                    team.closest_fruit.distance,
                )
            chosen = sorted(candidates, key=join_key)[0]
            return TeamAnalysis(
                should_play=True,
                team=chosen,
                reason=f"joining (score:{chosen.score}, dist:{chosen.closest_fruit.distance})",
                expected_value=evs[chosen.id],
            )

        # Aligned: stay unless our team can no longer win (switching forfeits our votes)
        current = next((t for t in candidates if t.id == current_team_id), None)
        if current is not None:
            needed = state.fruits_to_win - current.score
            if needed > 0:
                return TeamAnalysis(
                    should_play=True,
                    team=current,
                    reason=f"loyal (need:{needed}, dist:{current.closest_fruit.distance}, pool:{current.pool:.0f})",
                    expected_value=evs[current.id],
                )
            alternatives = [t for t in by_ev if t.id != current.id] or by_ev
            return TeamAnalysis(
                should_play=True,
                team=alternatives[0],
                reason="switching (current team blocked)",
                expected_value=evs[alternatives[0].id],
            )

        return TeamAnalysis(
            should_play=True,
            team=best,
            reason="switching (current team has no fruit)",
            expected_value=evs[best.id],
        )

    def score_direction(self, direction: str, state: ParsedGameState, target) -> float:
        """
        Higher is better.

        Landing on the target fruit outweighs everything else; otherwise a
        squared closeness term, a safety term per free exit and a small pull
        toward the centre of the grid.
        """
        cell = self.landing_cell(state, direction)
        score = 0.0

        if target is not None:
            dist = hex_distance(cell, target)
            if dist == 0:
                score += FRUIT_LANDING_BONUS
            else:
                score += (10 - dist) ** 2 * 3

        score += self.score_direction_safety(direction, state) * 5
        score += state.grid_radius - hex_distance(cell, CENTER)
        return score

    def calculate_bid(self, state: ParsedGameState, balance: float,
                      direction: str, team: TeamInfo) -> float:
        """
        Bid the floor. Amount never buys payout share.

        With simple_bid off, outbid an opposing vote already sitting on our
        direction, but only with plenty of balance headroom.
        """
        if self.get_option('simple_bid', True):
            return state.min_bid

        existing = state.votes.get(direction)
        if existing is None or existing.team in (None, team.id):
            return state.min_bid

        outbid = existing.amount + 1
        if balance >= outbid * self.get_option('outbid_headroom', 10):
            return max(outbid, state.min_bid)
        return state.min_bid
