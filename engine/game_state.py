"""
Game State Parser

Normalizes a raw backend snapshot into a ParsedGameState. A parsed state is
built once per poll and never mutated.

Raw snapshot fields consumed:
    gameActive, round, prizePool, minBid, initialMinBid, countdown,
    extensions, inExtensionWindow, winner,
    config.fruitsToWin, config.initialMinBid, gridSize.radius,
    snake.body[{q, r}], snake.currentDirection, snake.currentWinningTeam,
    teams[{id, name, emoji}], fruitScores{team: n}, teamPools{team: n},
    apples{team: [{q, r}]}, votes{direction: {amount, team, count}}
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .hex_grid import Hex, hex_distance, valid_directions

logger = logging.getLogger(__name__)

DEFAULT_GRID_RADIUS = 3
DEFAULT_FRUITS_TO_WIN = 3
DEFAULT_PRIZE_POOL = 10
DEFAULT_MIN_BID = 1
DEFAULT_EXTENSION_WINDOW = 5


@dataclass(frozen=True)
class ClosestFruit:
    """Nearest fruit of one team, measured from the snake head"""
    position: Hex
    distance: int


@dataclass(frozen=True)
class TeamInfo:
    """Per-team scoring and pool data"""
    id: str
    name: str = ""
    emoji: str = ""
    score: int = 0
    pool: float = 0.0
    closest_fruit: Optional[ClosestFruit] = None

    @property
    def label(self) -> str:
        return f"{self.emoji}{self.id}" if self.emoji else self.id


@dataclass(frozen=True)
class DirectionVote:
    """The backend's tally for one direction this round"""
    direction: str
    amount: float = 0.0
    team: Optional[str] = None
    count: int = 0


@dataclass(frozen=True)
class ParsedGameState:
    """Structured view of one game snapshot"""
    active: bool
    round: int
    head: Hex
    grid_radius: int
    valid_directions: Tuple[str, ...]
    teams: Tuple[TeamInfo, ...]
    min_bid: float
    prize_pool: float
    fruits_to_win: int
    extensions: int = 0
    in_extension_window: bool = False
    current_direction: Optional[str] = None
    winner: Optional[str] = None
    countdown: Optional[float] = None
    initial_min_bid: float = DEFAULT_MIN_BID
    current_winning_team: Optional[str] = None
    snake_body: Tuple[Hex, ...] = ()
    votes: Dict[str, DirectionVote] = field(default_factory=dict, compare=False)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def snake_length(self) -> int:
        return len(self.snake_body)

    def team(self, team_id: Optional[str]) -> Optional[TeamInfo]:
        return get_team_by_id(self, team_id)


def find_closest_fruit(head: Hex, fruits: List[Hex]) -> Optional[ClosestFruit]:
    """
    Linear scan for the nearest fruit.

    Ties keep the first fruit in backend order.
    """
    closest = None
    for fruit in fruits:
        dist = hex_distance(head, fruit)
        if closest is None or dist < closest.distance:
            closest = ClosestFruit(position=fruit, distance=dist)
    return closest


def _parse_cells(cells: Any) -> List[Hex]:
    return [Hex.from_dict(cell) for cell in (cells or [])]


def _parse_votes(raw_votes: Any) -> Dict[str, DirectionVote]:
    votes = {}
    for direction, entry in (raw_votes or {}).items():
        if isinstance(entry, dict):
            amount = entry.get('amount', entry.get('totalAmount', 0)) or 0
            votes[direction] = DirectionVote(
                direction=direction,
                amount=amount,
                team=entry.get('team'),
                count=int(entry.get('count', entry.get('voteCount', 0)) or 0),
            )
        else:
            votes[direction] = DirectionVote(direction=direction, amount=entry or 0)
    return votes


def parse_game_state(raw: Optional[Dict[str, Any]],
                     extension_window: int = DEFAULT_EXTENSION_WINDOW) -> Optional[ParsedGameState]:
    """
    Parse a raw snapshot.

    Returns None when there is nothing to act on: no payload, an error
    payload, or no snake head (pre-game). An ended game still parses, with
    active=False and winner set.
    """
    if not raw or raw.get('error'):
        return None

    snake = raw.get('snake') or {}
    body = _parse_cells(snake.get('body'))
    if not body:
        return None
    head = body[0]

    game_config = raw.get('config') or {}
    radius = int((raw.get('gridSize') or {}).get('radius') or DEFAULT_GRID_RADIUS)
    scores = raw.get('fruitScores') or {}
    pools = raw.get('teamPools') or {}
    apples = raw.get('apples') or {}

    teams = tuple(
        TeamInfo(
            id=team['id'],
            name=team.get('name', ''),
            emoji=team.get('emoji', ''),
            score=int(scores.get(team['id'], 0) or 0),
            pool=pools.get(team['id'], 0) or 0,
            closest_fruit=find_closest_fruit(head, _parse_cells(apples.get(team['id']))),
        )
        for team in (raw.get('teams') or [])
    )

    countdown = raw.get('countdown')
    in_window = raw.get('inExtensionWindow')
    if in_window is None:
        in_window = countdown is not None and countdown <= extension_window

    return ParsedGameState(
        active=bool(raw.get('gameActive')),
        round=int(raw.get('round') or 0),
        head=head,
        grid_radius=radius,
        valid_directions=tuple(valid_directions(body, radius)),
        teams=teams,
        min_bid=raw.get('minBid') or DEFAULT_MIN_BID,
        prize_pool=raw.get('prizePool') or DEFAULT_PRIZE_POOL,
        fruits_to_win=int(game_config.get('fruitsToWin') or DEFAULT_FRUITS_TO_WIN),
        extensions=int(raw.get('extensions') or 0),
        in_extension_window=bool(in_window),
        current_direction=snake.get('currentDirection'),
        winner=raw.get('winner'),
        countdown=countdown,
        initial_min_bid=raw.get('initialMinBid') or game_config.get('initialMinBid') or DEFAULT_MIN_BID,
        current_winning_team=snake.get('currentWinningTeam'),
        snake_body=tuple(body),
        votes=_parse_votes(raw.get('votes')),
        raw=raw,
    )


def get_team_by_id(state: Optional[ParsedGameState], team_id: Optional[str]) -> Optional[TeamInfo]:
    if state is None or team_id is None:
        return None
    for team in state.teams:
        if team.id == team_id:
            return team
    return None
