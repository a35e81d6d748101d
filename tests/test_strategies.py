#!/usr/bin/env python3
"""
Tests for the voting strategies.

Tests:
- Shared gate (should_play) for every registered strategy
- Expected-value: joining, loyalty, switching, pool preference, bids
- Counter-bid budget ceiling
- Aggressive, underdog, conservative and random policies
- Registry names and aliases
"""

import random
import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from engine.game_state import parse_game_state
from engine.models import AgentState
from strategies import (
    STRATEGIES,
    AggressiveStrategy,
    ConservativeStrategy,
    ExpectedValueStrategy,
    RandomStrategy,
    UnderdogStrategy,
    VoteAction,
    get_strategy,
    list_strategies_with_info,
    resolve_strategy_name,
)
from strategies.expected_value import (
    calculate_expected_value,
    estimate_team_votes,
    estimate_win_prob,
)
from factories import make_raw


def leader_scenario(**overrides):
    """Team A is one fruit from winning with its fruit right ahead; B is far behind"""
    kwargs = dict(
        scores={'A': 2, 'B': 0},
        pools={'A': 4, 'B': 10},
        apples={'A': [(0, -1)], 'B': [(3, 0)]},
    )
    kwargs.update(overrides)
    return parse_game_state(make_raw(**kwargs))


class TestShouldPlay:
    """Every strategy returns None when there is nothing to play"""

    @pytest.mark.parametrize('name', sorted(STRATEGIES))
    def test_inactive_game(self, name):
        state = parse_game_state(make_raw(active=False, apples={'A': [(0, -1)]}))
        assert get_strategy(name).compute_vote(state, 100, AgentState()) is None

    @pytest.mark.parametrize('name', sorted(STRATEGIES))
    def test_balance_below_min_bid(self, name):
        state = leader_scenario(min_bid=4)
        assert get_strategy(name).compute_vote(state, 3, AgentState()) is None

    @pytest.mark.parametrize('name', sorted(STRATEGIES))
    def test_no_valid_directions(self, name):
        # Head in the north corner, boxed in by its own body
        body = [(0, -3), (0, -2), (1, -3), (-1, -2), (1, -2)]
        state = parse_game_state(make_raw(body=body, apples={'A': [(2, 0)]}))
        assert state.valid_directions == ()
        assert get_strategy(name).compute_vote(state, 100, AgentState()) is None

    def test_none_state(self):
        assert not ExpectedValueStrategy().should_play(None, 100, AgentState())


class TestExpectedValueHelpers:
    def test_win_prob_monotone_in_distance(self):
        state = leader_scenario()
        near = estimate_win_prob(state.team('A'), state)
        far_state = leader_scenario(apples={'A': [(0, -3)], 'B': [(3, 0)]})
        far = estimate_win_prob(far_state.team('A'), far_state)
        assert near == 0.9
        assert far == 0.5
        assert near > far

    def test_win_prob_floor_and_zero(self):
        state = leader_scenario(fruits_to_win=6)
        assert estimate_win_prob(state.team('B'), state) == 0.1
        done = leader_scenario(scores={'A': 3})
        assert estimate_win_prob(done.team('A'), done) == 0.0
        no_fruit = leader_scenario(apples={'B': [(3, 0)]})
        assert estimate_win_prob(no_fruit.team('A'), no_fruit) == 0.0

    def test_team_votes_from_pool(self):
        state = leader_scenario(initial_min_bid=2)
        assert estimate_team_votes(state.team('B'), state) == 5
        assert estimate_team_votes(state.team('A'), state) == 2

    def test_empty_pool_counts_as_one_vote(self):
        state = leader_scenario(pools={})
        assert estimate_team_votes(state.team('A'), state) == 1

    def test_joining_dilutes_share(self):
        state = leader_scenario()
        team = state.team('A')
        staying = calculate_expected_value(team, state, is_current_team=True)
        joining = calculate_expected_value(team, state, is_current_team=False)
        assert staying == pytest.approx(0.9 * 10 / 4)
        assert joining == pytest.approx(0.9 * 10 / 5)


class TestExpectedValueStrategy:
    def test_joins_leader_and_lands_on_fruit(self):
        state = leader_scenario()
        vote = ExpectedValueStrategy().compute_vote(state, 20, AgentState())

        assert isinstance(vote, VoteAction)
        assert vote.team.id == 'A'
        assert vote.direction == 'n'
        assert vote.amount == 1
        assert 'joining' in vote.reason

    def test_prefers_smaller_pool_when_win_prob_equal(self):
        state = parse_game_state(make_raw(
            scores={'A': 0, 'B': 0},
            pools={'A': 10, 'B': 2},
            apples={'A': [(2, 0)], 'B': [(-2, 0)]},
        ))
        a, b = state.team('A'), state.team('B')
        assert estimate_win_prob(a, state) == estimate_win_prob(b, state)

        vote = ExpectedValueStrategy().compute_vote(state, 20, AgentState())
        assert vote.team.id == 'B'

    def test_score_leader_joined_over_smaller_pool(self):
        state = parse_game_state(make_raw(
            fruits_to_win=5,
            scores={'A': 1, 'B': 0},
            pools={'A': 100, 'B': 1},
            apples={'A': [(2, 0)], 'B': [(-2, 0)]},
        ))
        a, b = state.team('A'), state.team('B')
        assert estimate_win_prob(a, state) == estimate_win_prob(b, state)

        vote = ExpectedValueStrategy().compute_vote(state, 20, AgentState())
        assert vote.team.id == 'A'
        assert vote.reason.startswith('joining (score:1')

    def test_smaller_pool_preferred_when_current_team_blocked(self):
        state = parse_game_state(make_raw(
            teams=['A', 'B', 'C'],
            scores={'A': 0, 'B': 0, 'C': 3},
            pools={'A': 10, 'B': 2},
            apples={'A': [(2, 0)], 'B': [(-2, 0)], 'C': [(0, -2)]},
        ))
        vote = ExpectedValueStrategy().compute_vote(state, 20, AgentState(current_team='C'))
        assert vote.team.id == 'B'

    def test_loyal_to_current_team(self):
        state = leader_scenario()
        vote = ExpectedValueStrategy().compute_vote(state, 20, AgentState(current_team='B'))
        assert vote.team.id == 'B'
        assert 'loyal' in vote.reason

    def test_switches_when_current_team_has_no_fruit(self):
        state = leader_scenario(apples={'A': [(0, -1)]})
        vote = ExpectedValueStrategy().compute_vote(state, 20, AgentState(current_team='B'))
        assert vote.team.id == 'A'
        assert 'switching' in vote.reason

    def test_skip_when_no_team_has_fruit(self):
        state = leader_scenario(apples={})
        decision = ExpectedValueStrategy().compute_vote(state, 20, AgentState())
        assert decision.skip
        assert decision.reason == 'no_teams_with_fruits'

    def test_fruit_landing_dominates(self):
        strategy = ExpectedValueStrategy()
        # Fruit in a corner-adjacent cell, reachable by 'se'
        state = parse_game_state(make_raw(body=[(2, -2), (1, -2)], apples={'A': [(3, -2)]}))
        target = state.team('A').closest_fruit.position
        scores = {d: strategy.score_direction(d, state, target) for d in state.valid_directions}
        best = max(scores, key=scores.get)
        assert best == 'se'
        others = [s for d, s in scores.items() if d != 'se']
        assert scores['se'] > max(others) + 500

    def test_moves_closer_when_fruit_not_adjacent(self):
        state = parse_game_state(make_raw(apples={'A': [(0, -3)]}))
        vote = ExpectedValueStrategy().compute_vote(state, 20, AgentState())
        assert vote.direction == 'n'

    def test_simple_bid_is_floor(self):
        state = leader_scenario(min_bid=3, votes={'n': {'amount': 5, 'team': 'B', 'count': 1}})
        vote = ExpectedValueStrategy().compute_vote(state, 1000, AgentState())
        assert vote.amount == 3

    def test_outbid_with_headroom(self):
        strategy = ExpectedValueStrategy({'simple_bid': False})
        state = leader_scenario(votes={'n': {'amount': 3, 'team': 'B', 'count': 1}})
        assert strategy.compute_vote(state, 100, AgentState()).amount == 4
        assert strategy.compute_vote(state, 30, AgentState()).amount == 1

    def test_no_outbid_against_own_team(self):
        strategy = ExpectedValueStrategy({'simple_bid': False})
        state = leader_scenario(votes={'n': {'amount': 3, 'team': 'A', 'count': 1}})
        assert strategy.compute_vote(state, 100, AgentState()).amount == 1


class TestCounterBid:
    def previous_vote(self, state):
        return VoteAction(direction='n', team=state.team('A'), amount=1, reason='test')

    def agent(self, budget, **kwargs):
        return AgentState(current_team='A', round_spend=1, round_vote_count=1,
                          round_budget_remaining=budget, **kwargs)

    def test_counters_when_worth_it(self):
        state = leader_scenario(current_direction='ne')
        counter = ExpectedValueStrategy().should_counter_bid(
            state, 100, self.agent(budget=19), self.previous_vote(state))
        assert counter is not None
        assert counter.direction == 'n'
        assert counter.team.id == 'A'
        assert counter.amount == 1

    def test_declines_after_too_many_extensions(self):
        state = leader_scenario(extensions=2)
        assert ExpectedValueStrategy().should_counter_bid(
            state, 100, self.agent(budget=19), self.previous_vote(state)) is None

    def test_declines_expensive_min_bid(self):
        state = leader_scenario(min_bid=4)
        # 4 > 30 * 0.1
        assert ExpectedValueStrategy().should_counter_bid(
            state, 30, self.agent(budget=19), self.previous_vote(state)) is None

    def test_declines_low_value(self):
        state = leader_scenario(scores={'A': 0}, apples={'A': [(0, -3)], 'B': [(3, 0)]})
        assert ExpectedValueStrategy().should_counter_bid(
            state, 100, self.agent(budget=19), self.previous_vote(state)) is None

    @pytest.mark.parametrize('strategy_cls', [ExpectedValueStrategy, AggressiveStrategy])
    @pytest.mark.parametrize('balance,round_spend,min_bid', [
        (100, 19.5, 1),
        (100, 20, 1),
        (10, 1.5, 1),
        (50, 8, 4),
        (20, 0, 5),
    ])
    def test_budget_ceiling(self, strategy_cls, balance, round_spend, min_bid):
        pct = 0.2
        assert round_spend + min_bid > balance * pct
        state = leader_scenario(min_bid=min_bid, current_direction='ne')
        agent = AgentState(current_team='A', round_spend=round_spend, round_vote_count=1,
                           round_budget_remaining=balance * pct - round_spend)
        counter = strategy_cls().should_counter_bid(state, balance, agent, self.previous_vote(state))
        assert counter is None

    @pytest.mark.parametrize('name', ['underdog', 'conservative', 'random'])
    def test_other_strategies_never_counter(self, name):
        state = leader_scenario(current_direction='ne')
        assert get_strategy(name).should_counter_bid(
            state, 100, self.agent(budget=19), self.previous_vote(state)) is None


class TestAggressiveStrategy:
    def test_backs_leader_with_multiplied_bid(self):
        state = leader_scenario()
        vote = AggressiveStrategy().compute_vote(state, 100, AgentState(current_team='B'))
        assert vote.team.id == 'A'
        assert vote.direction == 'n'
        assert vote.amount == 2

    def test_leader_tie_broken_by_closer_fruit(self):
        state = leader_scenario(scores={'A': 1, 'B': 1}, apples={'A': [(0, -3)], 'B': [(1, 0)]})
        assert AggressiveStrategy().compute_vote(state, 100, AgentState()).team.id == 'B'

    def test_outbids_existing_vote(self):
        state = leader_scenario(votes={'n': {'amount': 5, 'team': 'B', 'count': 1}})
        assert AggressiveStrategy().compute_vote(state, 100, AgentState()).amount == 6

    def test_capped_at_half_balance(self):
        state = leader_scenario(votes={'n': {'amount': 5, 'team': 'B', 'count': 1}})
        assert AggressiveStrategy().compute_vote(state, 6, AgentState()).amount == 3

    def test_never_below_min_bid(self):
        state = leader_scenario()
        assert AggressiveStrategy().compute_vote(state, 1, AgentState()).amount == 1

    def test_counter_capped_by_round_budget(self):
        state = leader_scenario(current_direction='ne')
        previous = VoteAction(direction='n', team=state.team('A'), amount=2)
        agent = AgentState(current_team='A', round_spend=2, round_budget_remaining=1.5)
        counter = AggressiveStrategy().should_counter_bid(state, 100, agent, previous)
        assert counter.direction == 'n'
        assert counter.amount == 1

    def test_counter_budget_rounded_down_to_whole_balls(self):
        state = leader_scenario(current_direction='ne')
        previous = VoteAction(direction='n', team=state.team('A'), amount=2)
        agent = AgentState(current_team='A', round_spend=0.3, round_budget_remaining=3.7)
        strategy = AggressiveStrategy({'bid_multiplier': 5})
        counter = strategy.should_counter_bid(state, 100, agent, previous)
        assert counter.amount == 3
        assert isinstance(counter.amount, int)


class TestUnderdogStrategy:
    def test_picks_small_pool(self):
        state = leader_scenario(pools={'A': 20, 'B': 4})
        vote = UnderdogStrategy().compute_vote(state, 100, AgentState())
        assert vote.team.id == 'B'
        assert vote.amount == 1

    def test_moves_toward_target_fruit(self):
        state = leader_scenario(pools={'A': 20, 'B': 4})
        vote = UnderdogStrategy().compute_vote(state, 100, AgentState())
        assert vote.direction == 'se'

    def test_stays_with_small_current_team(self):
        state = leader_scenario(pools={'A': 3, 'B': 2})
        vote = UnderdogStrategy().compute_vote(state, 100, AgentState(current_team='A'))
        assert vote.team.id == 'A'

    def test_skips_when_all_pools_large(self):
        state = leader_scenario(pools={'A': 20, 'B': 30})
        decision = UnderdogStrategy().compute_vote(state, 100, AgentState())
        assert decision.skip
        assert 'no_small_pools' in decision.reason

    def test_skips_when_payout_too_low(self):
        state = leader_scenario(pools={'A': 20, 'B': 9})
        decision = UnderdogStrategy().compute_vote(state, 100, AgentState())
        assert decision.skip
        assert 'payout_too_low' in decision.reason


class TestConservativeStrategy:
    def test_skips_expensive_rounds(self):
        decision = ConservativeStrategy().compute_vote(leader_scenario(min_bid=2), 100, AgentState())
        assert decision.skip

    def test_joins_leader_at_floor(self):
        vote = ConservativeStrategy().compute_vote(leader_scenario(), 100, AgentState())
        assert vote.team.id == 'A'
        assert vote.amount == 1

    def test_skips_when_behind(self):
        decision = ConservativeStrategy().compute_vote(leader_scenario(), 100, AgentState(current_team='B'))
        assert decision.skip
        assert 'behind' in decision.reason

    def test_plays_when_behind_if_allowed(self):
        strategy = ConservativeStrategy({'skip_if_behind': False})
        vote = strategy.compute_vote(leader_scenario(), 100, AgentState(current_team='B'))
        assert vote.team.id == 'B'

    def test_prefers_safe_direction(self):
        state = leader_scenario()
        vote = ConservativeStrategy().compute_vote(state, 100, AgentState())
        safety = {d: ConservativeStrategy().score_direction_safety(d, state) for d in state.valid_directions}
        assert safety[vote.direction] == max(safety.values())

    def test_find_safest_direction_matches_safety_scores(self):
        state = leader_scenario()
        strategy = ConservativeStrategy()
        safest = strategy.find_safest_direction(state)
        scores = [strategy.score_direction_safety(d, state) for d in state.valid_directions]
        assert strategy.score_direction_safety(safest, state) == max(scores)


class TestRandomStrategy:
    def test_valid_direction_and_floor_bid(self):
        strategy = RandomStrategy(rng=random.Random(7))
        state = leader_scenario()
        for _ in range(20):
            vote = strategy.compute_vote(state, 100, AgentState())
            assert vote.direction in state.valid_directions
            assert vote.amount == state.min_bid
            assert vote.team.id in ('A', 'B')

    def test_keeps_current_team(self):
        strategy = RandomStrategy({'seed': 3})
        vote = strategy.compute_vote(leader_scenario(), 100, AgentState(current_team='B'))
        assert vote.team.id == 'B'

    def test_seed_is_reproducible(self):
        state = leader_scenario()
        a = [RandomStrategy({'seed': 42}).compute_vote(state, 100, AgentState()).direction for _ in range(5)]
        b = [RandomStrategy({'seed': 42}).compute_vote(state, 100, AgentState()).direction for _ in range(5)]
        assert a == b


class TestRegistry:
    def test_aliases(self):
        assert resolve_strategy_name('ev') == 'expected-value'
        assert resolve_strategy_name('aggro') == 'aggressive'
        assert resolve_strategy_name('safe') == 'conservative'
        assert resolve_strategy_name('rand') == 'random'
        assert resolve_strategy_name('dog') == 'underdog'
        assert resolve_strategy_name(' Aggressive ') == 'aggressive'

    def test_default_name(self):
        assert resolve_strategy_name(None) == 'expected-value'

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            resolve_strategy_name('yolo')

    def test_options_passed_through(self):
        strategy = get_strategy('aggro', {'bid_multiplier': 5})
        assert isinstance(strategy, AggressiveStrategy)
        assert strategy.get_option('bid_multiplier') == 5
        assert strategy.get_option('missing', 'fallback') == 'fallback'

    def test_list_with_info(self):
        info = {entry['name']: entry for entry in list_strategies_with_info()}
        assert set(info) == set(STRATEGIES)
        assert 'ev' in info['expected-value']['aliases']
        assert all(entry['description'] for entry in info.values())

    def test_hooks_are_noops(self):
        state = leader_scenario()
        for name in STRATEGIES:
            strategy = get_strategy(name)
            strategy.on_game_start(state, AgentState())
            strategy.on_round_end(state, AgentState())
            strategy.on_game_end(state, AgentState(), did_win=True)
