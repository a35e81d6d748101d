"""
Autoplay Daemon

The round/auction-aware decision loop. Each tick polls the backend, parses
the snapshot, and depending on the round either asks the strategy for a
fresh vote or watches our last vote for an override and maybe counter-bids.

Game mechanics the loop relies on:
- The last accepted vote in a round decides the direction, not the biggest
- Voting inside the extension window extends the round and doubles minBid
- Payout is per vote count, not amount spent
- All-pay: every vote costs, win or lose

The loop is written as tick() -> seconds-to-sleep so tests can single-step
it without a clock. run() is the only place that sleeps.
"""

import dataclasses
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import requests

from config import config
from strategies.interface import Strategy, VoteAction

from .client import AUTH_ERRORS, GameServerError, RateLimitedError, VoteConflictError
from .game_state import ParsedGameState, get_team_by_id, parse_game_state
from .models import AgentState
from .notifications import (
    NullNotifier,
    format_error,
    format_game_end,
    format_team_switch,
    format_vote,
    format_warning,
)
from .state import DaemonPhase

logger = logging.getLogger(__name__)


class AutoplayDaemon:
    """
    Single-threaded decision loop for one agent identity.

    Collaborators are injected: the backend client (TrifleClient or
    SimulatedGameServer), the strategy, an AgentStateRepository, an optional
    notifier and an optional StatsRepository ledger.
    """

    def __init__(self, client, strategy: Strategy, agent_store,
                 settings: Optional[Dict[str, Any]] = None,
                 notifier=None,
                 stats_repo=None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.time,
                 is_paused: Optional[Callable[[], bool]] = None,
                 auth_retry_delay: float = config.AUTH_RETRY_DELAY,
                 monitor_poll_interval: float = config.MONITOR_POLL_INTERVAL,
                 extension_window: int = config.EXTENSION_WINDOW_SECONDS):
        self.client = client
        self.strategy = strategy
        self.agent_store = agent_store
        self.settings = dict(settings or {})
        self.notifier = notifier or NullNotifier()
        self.stats_repo = stats_repo
        self.sleep = sleep
        self.clock = clock
        self.is_paused = is_paused or (lambda: False)
        self.auth_retry_delay = auth_retry_delay
        self.monitor_poll_interval = monitor_poll_interval
        self.extension_window = extension_window

        self.agent: AgentState = agent_store.load()
        self.phase = DaemonPhase.STOPPED
        self.running = False
        self.in_game = False

        # Our last accepted vote this round; None means nothing to monitor
        self.round_vote: Optional[VoteAction] = None
        self.rate_limited_until = 0.0

        # Per-game ledger figures
        self.game_votes = 0
        self.game_spend = 0.0
        self.game_rounds = 0
        self.game_started_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Settings shortcuts
    # ------------------------------------------------------------------

    @property
    def poll_interval(self) -> float:
        return float(self.settings.get('poll_interval', 1.0))

    @property
    def max_round_budget_pct(self) -> float:
        return float(self.settings.get('max_round_budget_pct', 0.2))

    @property
    def min_balance(self) -> float:
        return float(self.settings.get('min_balance', 0) or 0)

    def next_interval(self) -> float:
        """Poll interval; while one of our votes is watched it is max(poll, monitor interval)"""
        if self.round_vote is not None:
            return max(self.poll_interval, self.monitor_poll_interval)
        return self.poll_interval

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        self.running = True
        self.agent.started_at = self.clock()
        self.agent_store.save(self.agent)
        logger.info(f"🐍 Snake daemon started: strategy={self.strategy.name}, "
                    f"server={self.settings.get('server')}, poll={self.poll_interval}s")
        self._set_phase(DaemonPhase.WAITING_FOR_GAME)

    def stop(self):
        """Request a stop; honored at the next tick boundary"""
        if self.running:
            logger.info("🛑 Stop requested")
        self.running = False

    def run(self):
        """Tick until stop() is called"""
        self.start()
        try:
            while self.running:
                interval = self.tick()
                if not self.running:
                    break
                self.sleep(interval)
        finally:
            self._set_phase(DaemonPhase.STOPPED)
            logger.info("👋 Snake daemon stopped")

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> float:
        """One poll. Never raises; returns how long to sleep before the next one."""
        try:
            return self._tick()
        except requests.RequestException as e:
            logger.warning(f"🌐 Network error: {e}")
            self._set_phase(self.phase, error=f"Network error: {e}")
        except Exception as e:
            logger.exception(f"💥 Unexpected error in tick: {e}")
            self._set_phase(self.phase, error=str(e))
        return self.next_interval()

    def _tick(self) -> float:
        if self.is_paused():
            self._set_phase(DaemonPhase.PAUSED)
            return self.poll_interval

        if not self.client.is_authenticated():
            logger.debug("Not authenticated, waiting...")
            self._set_phase(DaemonPhase.NOT_AUTHENTICATED, error='AUTH_MISSING')
            return self.auth_retry_delay

        raw = self.client.get_game_state()
        error = raw.get('error') if isinstance(raw, dict) else None
        if error in AUTH_ERRORS:
            logger.warning(f"🔑 Auth error: {error}")
            self._set_phase(DaemonPhase.NOT_AUTHENTICATED, error=error)
            return self.auth_retry_delay

        state = parse_game_state(raw, self.extension_window)

        if state is None:
            if self.in_game:
                logger.info("🏁 Game ended (no state)")
                self._end_game_bookkeeping()
            self._set_phase(DaemonPhase.WAITING_FOR_GAME)
            return self.poll_interval

        if not state.active:
            if self.in_game and state.winner:
                self._finish_game(state)
                return self.poll_interval
            if not self.in_game:
                self._set_phase(DaemonPhase.WAITING_FOR_GAME)
            return self.poll_interval

        if not self.in_game:
            self._begin_game(state)

        if state.round != self.agent.last_round:
            self._play_new_round(state)
        elif self.round_vote is not None:
            self._check_override(state)
        else:
            logger.debug(f"Round {state.round}: idle")

        return self.next_interval()

    # ------------------------------------------------------------------
    # Game transitions
    # ------------------------------------------------------------------

    def _begin_game(self, state: ParsedGameState):
        self.in_game = True
        self.round_vote = None
        if self._resumable(state):
            logger.info(f"♻️ Resuming game as team {self.agent.current_team} "
                        f"(last voted round {self.agent.last_round})")
        else:
            self.agent.reset_game()
        self.game_votes = 0
        self.game_spend = 0.0
        self.game_rounds = 0
        self.game_started_at = datetime.utcnow()
        self.agent_store.save(self.agent)
        self.strategy.on_game_start(state, self.agent)
        logger.info(f"🎮 New game started (round {state.round}, {len(state.teams)} teams, "
                    f"radius {state.grid_radius})")

    def _resumable(self, state: ParsedGameState) -> bool:
        """Stored team and round still fit this game (daemon restarted mid-game)"""
        agent = self.agent
        if agent.current_team is None or state.team(agent.current_team) is None:
            return False
        return 0 <= agent.last_round <= state.round

    def _finish_game(self, state: ParsedGameState):
        winner = get_team_by_id(state, state.winner)
        our_team = self.agent.current_team
        did_win = our_team is not None and our_team == state.winner

        self.agent.games_played += 1
        if did_win:
            self.agent.wins += 1

        self._notify(format_game_end(winner, did_win, winner_id=state.winner))
        self.strategy.on_game_end(state, self.agent, did_win)
        self._record_game(state.winner, our_team, did_win)

        self._end_game_bookkeeping()
        self._set_phase(DaemonPhase.GAME_ENDED)

    def _end_game_bookkeeping(self):
        self.in_game = False
        self.round_vote = None
        self.agent.reset_game()
        self.agent_store.save(self.agent)

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    def _play_new_round(self, state: ParsedGameState):
        if self.agent.last_round >= 0:
            self.strategy.on_round_end(state, self.agent)

        self.round_vote = None
        self.agent.reset_round()
        self.agent.last_round = state.round
        self.game_rounds += 1
        self._set_phase(DaemonPhase.NEW_ROUND)

        balance = self.client.get_balance()
        if balance < self.min_balance:
            logger.info(f"⏭️ Round {state.round}: skipped (low_balance {balance} < {self.min_balance})")
            return

        decision = self.strategy.compute_vote(state, balance, self.agent)
        if decision is None or decision.skip:
            if decision is not None:
                logger.info(f"⏭️ Round {state.round}: skipped ({decision.reason})")
            else:
                logger.debug(f"Round {state.round}: strategy declined to play")
            return

        if self._submit(decision, state, balance):
            self._set_phase(DaemonPhase.MONITORING)

    def _check_override(self, state: ParsedGameState):
        if state.current_direction == self.round_vote.direction:
            logger.debug(f"Round {state.round}: still winning with {self.round_vote.direction}")
            return

        balance = self.client.get_balance()
        budget_remaining = balance * self.max_round_budget_pct - self.agent.round_spend

        if balance < state.min_bid or budget_remaining < state.min_bid:
            logger.info(f"💸 Round {state.round}: overridden → {state.current_direction}, "
                        f"round budget exhausted ({budget_remaining:.2f} left)")
            self.round_vote = None
            return

        view = dataclasses.replace(self.agent, round_budget_remaining=budget_remaining)
        counter = self.strategy.should_counter_bid(state, balance, view, self.round_vote)

        if counter is None:
            logger.info(f"Round {state.round}: overridden → {state.current_direction}, not countering")
            self.round_vote = None
            return

        if counter.amount > budget_remaining:
            logger.warning(f"Round {state.round}: counter of {counter.amount} exceeds round budget "
                           f"{budget_remaining:.2f}, not countering")
            self.round_vote = None
            return

        logger.info(f"⚔️ Round {state.round}: overridden → {state.current_direction}, "
                    f"countering with {counter.direction}")
        self._submit(counter, state, balance, is_counter=True)

    def _submit(self, vote: VoteAction, state: ParsedGameState, balance: float,
                is_counter: bool = False) -> bool:
        """Submit a vote and update every counter on success"""
        now = self.clock()
        if now < self.rate_limited_until:
            wait = self.rate_limited_until - now
            logger.info(f"⏳ Round {state.round}: rate limited, holding vote for {wait:.0f}s")
            return False

        try:
            self.client.submit_vote(vote.direction, vote.team.id, vote.amount)
        except VoteConflictError:
            logger.info(f"Round {state.round}: direction {vote.direction} already active")
            return False
        except RateLimitedError as e:
            self.rate_limited_until = now + e.retry_after
            logger.warning(f"⏳ Rate limited, no votes for {e.retry_after:.0f}s")
            self._notify(format_warning(f"Rate limited for {e.retry_after:.0f}s"), level=logging.WARNING)
            return False
        except (GameServerError, requests.RequestException) as e:
            self._notify(format_error(f"Vote failed: {e}"), level=logging.ERROR)
            self._set_phase(self.phase, error=f"Vote failed: {e}")
            if is_counter:
                # Stop watching this round after a rejected counter
                self.round_vote = None
            return False

        if vote.team.id != self.agent.current_team:
            self._notify(format_team_switch(self.agent.current_team, vote.team, vote.reason))
            self.agent.current_team = vote.team.id

        self.round_vote = vote
        self.agent.round_spend += vote.amount
        self.agent.round_vote_count += 1
        self.agent.votes_placed += 1
        self.agent.last_round = state.round
        self.agent.last_error = None
        self.agent_store.save(self.agent)

        self.game_votes += 1
        self.game_spend += vote.amount
        self._record_vote(vote, state, balance, is_counter)

        self._notify(format_vote(state.round, vote.direction, vote.team, vote.amount,
                                 balance - vote.amount, state.teams, vote.reason))
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_phase(self, phase: DaemonPhase, error: Optional[str] = None):
        """Track the state-machine state; persisted so `snake status` can show it"""
        changed = phase != self.phase or error is not None
        if phase != self.phase:
            logger.debug(f"Phase: {self.phase.value} -> {phase.value}")
        self.phase = phase
        if not changed:
            return
        self.agent.phase = phase.value
        if error is not None:
            self.agent.last_error = error
        self.agent_store.save(self.agent)

    def _notify(self, message: str, level: int = logging.INFO):
        logger.log(level, message)
        self.notifier.send(message)

    def _record_vote(self, vote: VoteAction, state: ParsedGameState, balance: float, is_counter: bool):
        if self.stats_repo is None:
            return
        try:
            self.stats_repo.record_vote(
                state.round, vote.direction, vote.team.id, vote.amount,
                reason=vote.reason, is_counter=is_counter,
                balance_before=balance, strategy=self.strategy.name,
            )
        except Exception as e:
            logger.warning(f"Could not record vote: {e}")

    def _record_game(self, winner: Optional[str], our_team: Optional[str], did_win: bool):
        if self.stats_repo is None:
            return
        try:
            self.stats_repo.record_game_result(
                winner, our_team, did_win,
                votes_placed=self.game_votes, amount_spent=self.game_spend,
                rounds_played=self.game_rounds, strategy=self.strategy.name,
                started_at=self.game_started_at,
            )
        except Exception as e:
            logger.warning(f"Could not record game result: {e}")

    def get_status(self) -> Dict[str, Any]:
        status = self.agent.to_dict()
        status.update({
            'phase': self.phase.value,
            'running': self.running,
            'in_game': self.in_game,
            'strategy': self.strategy.name,
            'server': self.settings.get('server'),
            'monitoring': self.round_vote.to_dict() if self.round_vote else None,
        })
        return status
