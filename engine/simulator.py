"""
Simulated Game Server

In-memory stand-in for TrifleClient that plays the snake rodeo auction:

- The last accepted vote in a round sets the direction, regardless of amount
- Every vote is paid immediately (all-pay) and goes into the prize pool
- A vote inside the extension window resets the countdown, doubles minBid
  and counts an extension
- Voting for the direction that is already winning is a conflict
- The winning team's prize pool is split by vote count

Used by the test suite and by `snake simulate`. Time only moves when
advance() is called.
"""

import logging
import random
from collections import defaultdict
from typing import Any, Dict, List, Optional

from .client import GameServerError, VoteConflictError
from .hex_grid import CENTER, Hex, is_in_bounds, valid_directions
from .models import AgentState

logger = logging.getLogger(__name__)

AGENT = 'agent'

DEFAULT_RODEO = {
    'name': 'Classic',
    'teams': [
        {'id': 'red', 'name': 'Red', 'emoji': '🔴'},
        {'id': 'blue', 'name': 'Blue', 'emoji': '🔵'},
        {'id': 'green', 'name': 'Green', 'emoji': '🟢'},
    ],
    'gridRadius': 3,
    'fruitsPerTeam': 1,
    'fruitsToWin': 3,
    'prizePool': 10,
    'minBid': 1,
    'roundSeconds': 15,
    'extensionWindow': 5,
}


class MemoryAgentStore:
    """AgentStateRepository lookalike that never touches disk"""

    def __init__(self, state: Optional[AgentState] = None):
        self.state = state or AgentState()
        self.saves = 0

    def load(self) -> AgentState:
        return self.state

    def save(self, state: AgentState):
        self.state = state
        self.saves += 1


class SimulatedGameServer:
    """Backend with the client interface: get_game_state/get_balance/submit_vote"""

    def __init__(self, rodeo: Optional[Dict[str, Any]] = None, balance: float = 100.0,
                 seed: Optional[int] = None, authenticated: bool = True):
        self.rodeo = dict(DEFAULT_RODEO, **(rodeo or {}))
        self.balances: Dict[str, float] = {AGENT: balance}
        self.rng = random.Random(seed)
        self.authenticated = authenticated
        self.vote_log: List[Dict[str, Any]] = []
        self.payouts: Dict[str, float] = {}
        self.games_completed = 0
        self.new_game()

    # ------------------------------------------------------------------
    # Game setup
    # ------------------------------------------------------------------

    def new_game(self, body: Optional[List[Hex]] = None, apples: Optional[Dict[str, List[Hex]]] = None):
        rodeo = self.rodeo
        self.radius = rodeo['gridRadius']
        self.teams = [dict(t) for t in rodeo['teams']]
        self.fruits_to_win = rodeo['fruitsToWin']
        self.initial_min_bid = rodeo['minBid']
        self.round_seconds = rodeo['roundSeconds']
        self.extension_window = rodeo['extensionWindow']

        self.active = True
        self.winner: Optional[str] = None
        self.round = 0
        self.body: List[Hex] = list(body) if body else [CENTER, Hex(0, 1)]
        self.scores = {t['id']: 0 for t in self.teams}
        self.pools = {t['id']: 0.0 for t in self.teams}
        self.prize_pool = float(rodeo['prizePool'])
        # (team, voter) -> number of votes; payout shares are per vote
        self.vote_counts: Dict[tuple, int] = defaultdict(int)

        if apples is not None:
            self.apples = {t['id']: list(apples.get(t['id'], [])) for t in self.teams}
        else:
            self.apples = {t['id']: [] for t in self.teams}
            for team in self.teams:
                for _ in range(rodeo['fruitsPerTeam']):
                    self._spawn_fruit(team['id'])

        self.current_direction: Optional[str] = None
        self._start_round()
        logger.info(f"🎲 Simulated game started: {len(self.teams)} teams, radius {self.radius}")

    def _start_round(self):
        self.round += 1
        self.countdown = float(self.round_seconds)
        self.min_bid = self.initial_min_bid
        self.extensions = 0
        self.round_votes: Dict[str, Dict[str, Any]] = {}
        self.current_winning_team: Optional[str] = None
        self.round_winner_direction: Optional[str] = None

    def _free_cells(self) -> List[Hex]:
        taken = set(self.body)
        for fruits in self.apples.values():
            taken.update(fruits)
        return [
            Hex(q, r)
            for q in range(-self.radius, self.radius + 1)
            for r in range(-self.radius, self.radius + 1)
            if is_in_bounds(Hex(q, r), self.radius) and Hex(q, r) not in taken
        ]

    def _spawn_fruit(self, team_id: str):
        cells = self._free_cells()
        if cells:
            self.apples[team_id].append(self.rng.choice(cells))

    # ------------------------------------------------------------------
    # Client interface
    # ------------------------------------------------------------------

    def is_authenticated(self) -> bool:
        return self.authenticated

    def get_game_state(self) -> Dict[str, Any]:
        if not self.authenticated:
            return {'error': 'AUTH_MISSING', 'message': 'Not authenticated'}
        return self.snapshot()

    def get_balance(self, voter: str = AGENT) -> float:
        return self.balances.get(voter, 0)

    def submit_vote(self, direction: str, team: str, amount: float, voter: str = AGENT) -> Dict[str, Any]:
        if voter == AGENT and not self.authenticated:
            raise GameServerError("Not authenticated", status=401)
        if not self.active:
            raise GameServerError("No active game", status=400)
        if direction not in valid_directions(self.body, self.radius):
            raise GameServerError(f"Invalid direction: {direction}", status=400)
        if team not in self.scores:
            raise GameServerError(f"Unknown team: {team}", status=400)
        if amount < self.min_bid:
            raise GameServerError(f"Bid {amount} below minimum {self.min_bid}", status=400)
        if direction == self.round_winner_direction:
            raise VoteConflictError("Direction already active", status=409)
        if voter in self.balances and self.balances[voter] < amount:
            raise GameServerError("Insufficient balance", status=402)

        if voter in self.balances:
            self.balances[voter] -= amount
        self.pools[team] += amount
        self.prize_pool += amount
        self.vote_counts[(team, voter)] += 1

        tally = self.round_votes.setdefault(direction, {'amount': 0, 'team': team, 'count': 0})
        tally['amount'] += amount
        tally['team'] = team
        tally['count'] += 1

        self.round_winner_direction = direction
        self.current_winning_team = team
        self.vote_log.append({'round': self.round, 'direction': direction, 'team': team,
                              'amount': amount, 'voter': voter})

        if self.countdown <= self.extension_window:
            self.extensions += 1
            self.countdown = float(self.extension_window)
            self.min_bid *= 2

        return {'ok': True, 'round': self.round, 'direction': direction}

    def get_rodeos(self) -> List[Dict[str, Any]]:
        return [dict(self.rodeo)]

    def close(self):
        pass

    # ------------------------------------------------------------------
    # Simulation controls
    # ------------------------------------------------------------------

    def add_voter(self, voter: str, balance: float):
        self.balances[voter] = balance

    def advance(self, seconds: float):
        """Let the clock run; resolves the round when the countdown hits zero"""
        if not self.active:
            return
        self.countdown -= seconds
        if self.countdown <= 0:
            self.resolve_round()

    def resolve_round(self):
        """Move the snake in the winning direction (or keep going) and score fruit"""
        if not self.active:
            return

        legal = valid_directions(self.body, self.radius)
        direction = self.round_winner_direction
        if direction not in legal:
            direction = self.current_direction if self.current_direction in legal else None
        if direction is None and legal:
            direction = legal[0]

        if direction is None:
            logger.info("🧱 Snake is boxed in, ending game")
            self._end_game(self._leader())
            return

        new_head = self.body[0].neighbor(direction)
        eaten_by = None
        for team_id, fruits in self.apples.items():
            if new_head in fruits:
                fruits.remove(new_head)
                eaten_by = team_id
                break

        if eaten_by:
            self.body = [new_head] + self.body
            self.scores[eaten_by] += 1
            if self.scores[eaten_by] >= self.fruits_to_win:
                self.current_direction = direction
                self._end_game(eaten_by)
                return
            self._spawn_fruit(eaten_by)
        else:
            self.body = [new_head] + self.body[:-1]

        self.current_direction = direction
        self._start_round()

    def _leader(self) -> Optional[str]:
        if not self.scores:
            return None
        return max(self.scores, key=lambda t: self.scores[t])

    def _end_game(self, winner: Optional[str]):
        self.active = False
        self.winner = winner
        self.games_completed += 1
        self.payouts = self._pay_out(winner)
        logger.info(f"🏁 Simulated game over, winner: {winner}")

    def _pay_out(self, winner: Optional[str]) -> Dict[str, float]:
        """Split the prize pool among the winner's voters by vote count"""
        if winner is None:
            return {}
        counts = {voter: n for (team, voter), n in self.vote_counts.items() if team == winner and n > 0}
        total = sum(counts.values())
        if not total:
            return {}
        payouts = {voter: self.prize_pool * n / total for voter, n in counts.items()}
        for voter, amount in payouts.items():
            if voter in self.balances:
                self.balances[voter] += amount
        return payouts

    def snapshot(self) -> Dict[str, Any]:
        """Raw state in the backend's shape"""
        return {
            'gameActive': self.active,
            'round': self.round,
            'prizePool': self.prize_pool,
            'minBid': self.min_bid,
            'initialMinBid': self.initial_min_bid,
            'countdown': max(self.countdown, 0),
            'extensions': self.extensions,
            'winner': self.winner,
            'config': {'fruitsToWin': self.fruits_to_win, 'initialMinBid': self.initial_min_bid},
            'gridSize': {'radius': self.radius},
            'snake': {
                'body': [cell.to_dict() for cell in self.body],
                'currentDirection': self.round_winner_direction or self.current_direction,
                'currentWinningTeam': self.current_winning_team,
            },
            'teams': [dict(t) for t in self.teams],
            'fruitScores': dict(self.scores),
            'teamPools': dict(self.pools),
            'apples': {team: [cell.to_dict() for cell in fruits] for team, fruits in self.apples.items()},
            'votes': {d: dict(v) for d, v in self.round_votes.items()},
        }


def run_simulation(strategy, rounds: int = 50, balance: float = 100.0, seed: Optional[int] = None,
                   settings: Optional[Dict[str, Any]] = None, rival_rate: float = 0.3,
                   rodeo: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Play the daemon against the simulator for a number of rounds.

    A rival voter overrides the current direction with probability
    rival_rate each round, so counter-bid logic gets exercised.
    """
    # Imported here to avoid an import cycle (autoplay imports this package)
    from .autoplay import AutoplayDaemon

    server = SimulatedGameServer(rodeo=rodeo, balance=balance, seed=seed)
    server.add_voter('rival', float('inf'))
    rng = random.Random(seed)
    store = MemoryAgentStore()
    daemon = AutoplayDaemon(server, strategy, store, settings=settings or {},
                            sleep=lambda _: None, clock=lambda: 0.0)
    daemon.start()

    played = 0
    while played < rounds:
        daemon.tick()
        if not server.active:
            daemon.tick()
            server.new_game()
            continue

        # Mid-round: a rival might take the round away
        server.advance(server.round_seconds - server.extension_window)
        if rng.random() < rival_rate:
            options = [d for d in valid_directions(server.body, server.radius)
                       if d != server.round_winner_direction]
            if options:
                team = rng.choice(server.teams)['id']
                server.submit_vote(rng.choice(options), team, server.min_bid, voter='rival')
        daemon.tick()

        server.advance(server.countdown)
        played += 1

    daemon.stop()
    agent = store.state
    return {
        'strategy': strategy.name,
        'rounds': played,
        'games_completed': server.games_completed,
        'games_played': agent.games_played,
        'wins': agent.wins,
        'votes_placed': agent.votes_placed,
        'starting_balance': balance,
        'final_balance': server.get_balance(),
    }


__all__ = ['SimulatedGameServer', 'MemoryAgentStore', 'run_simulation', 'AGENT', 'DEFAULT_RODEO']
