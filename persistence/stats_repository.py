"""
Stats Repository - Data Access Layer

High-level methods for the vote/game ledger.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from .models import VoteRecord, GameRecord
from .database import session_scope

logger = logging.getLogger(__name__)


class StatsRepository:
    """
    Repository for ledger operations.

    Provides methods for:
    - Recording submitted votes
    - Recording finished games
    - Summaries for `snake history` and the status app
    """

    # =========================================================================
    # Votes
    # =========================================================================

    def record_vote(self, round_number: int, direction: str, team: str, amount: float,
                    reason: str = "", is_counter: bool = False,
                    balance_before: Optional[float] = None,
                    strategy: Optional[str] = None) -> VoteRecord:
        with session_scope() as session:
            vote = VoteRecord(
                round=round_number,
                direction=direction,
                team=team,
                amount=amount,
                reason=(reason or "")[:300],
                is_counter=is_counter,
                balance_before=balance_before,
                strategy=strategy,
            )
            session.add(vote)
            session.flush()
            session.expunge(vote)
            logger.debug(f"Recorded vote: {vote}")
            return vote

    def get_recent_votes(self, limit: int = 20) -> List[VoteRecord]:
        with session_scope() as session:
            votes = (session.query(VoteRecord)
                     .order_by(VoteRecord.created_at.desc(), VoteRecord.id.desc())
                     .limit(limit)
                     .all())
            for vote in votes:
                session.expunge(vote)
            return votes

    # =========================================================================
    # Games
    # =========================================================================

    def record_game_result(self, winner_team: Optional[str], our_team: Optional[str],
                           won: bool, votes_placed: int = 0, amount_spent: float = 0.0,
                           rounds_played: int = 0, strategy: Optional[str] = None,
                           started_at: Optional[datetime] = None) -> GameRecord:
        """
        Record a finished game.

        Args:
            winner_team: Team id that won
            our_team: Team we were aligned with at the end (None if we never voted)
            won: Whether our team won
            votes_placed: Votes we submitted during the game
            amount_spent: Total cost of those votes
        """
        with session_scope() as session:
            game = GameRecord(
                winner_team=winner_team,
                our_team=our_team,
                won=won,
                votes_placed=votes_placed,
                amount_spent=amount_spent,
                rounds_played=rounds_played,
                strategy=strategy,
                started_at=started_at,
            )
            session.add(game)
            session.flush()
            session.expunge(game)
            logger.info(f"Recorded game result: {game}")
            return game

    def get_recent_games(self, limit: int = 10) -> List[GameRecord]:
        with session_scope() as session:
            games = (session.query(GameRecord)
                     .order_by(GameRecord.ended_at.desc(), GameRecord.id.desc())
                     .limit(limit)
                     .all())
            for game in games:
                session.expunge(game)
            return games

    # =========================================================================
    # Summary
    # =========================================================================

    def get_overall_stats(self) -> Dict[str, Any]:
        with session_scope() as session:
            total_games = session.query(func.count(GameRecord.id)).scalar() or 0
            total_wins = session.query(func.count(GameRecord.id)).filter(GameRecord.won.is_(True)).scalar() or 0
            total_votes = session.query(func.count(VoteRecord.id)).scalar() or 0
            total_spent = session.query(func.coalesce(func.sum(VoteRecord.amount), 0.0)).scalar() or 0.0
            counter_votes = (session.query(func.count(VoteRecord.id))
                             .filter(VoteRecord.is_counter.is_(True)).scalar() or 0)

        return {
            'total_games': total_games,
            'total_wins': total_wins,
            'total_losses': total_games - total_wins,
            'win_rate': (total_wins / total_games * 100) if total_games else 0.0,
            'total_votes': total_votes,
            'counter_votes': counter_votes,
            'total_spent': float(total_spent),
        }
