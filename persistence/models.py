"""
Database Models for the snake-rodeo daemon

Tracks:
- Every vote we submitted (round, direction, team, cost)
- Every game we saw finish (winner, our team, result, spend)
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class VoteRecord(Base):
    """
    One submitted vote.

    All-pay auction: the amount is spent whether or not the team wins.
    """
    __tablename__ = 'vote_records'

    id = Column(Integer, primary_key=True)
    round = Column(Integer, nullable=False)
    direction = Column(String(4), nullable=False)
    team = Column(String(20), nullable=False)
    amount = Column(Float, default=0.0)
    reason = Column(String(300))
    is_counter = Column(Boolean, default=False)  # re-vote after being overridden
    balance_before = Column(Float)
    strategy = Column(String(50))
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_vote_created', 'created_at'),
    )

    def __repr__(self):
        return f"<VoteRecord(R{self.round} {self.direction} {self.team} x{self.amount})>"

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'round': self.round,
            'direction': self.direction,
            'team': self.team,
            'amount': self.amount,
            'reason': self.reason,
            'is_counter': self.is_counter,
            'balance_before': self.balance_before,
            'strategy': self.strategy,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class GameRecord(Base):
    """
    A finished game as seen by the daemon.
    """
    __tablename__ = 'game_records'

    id = Column(Integer, primary_key=True)
    winner_team = Column(String(20))
    our_team = Column(String(20))
    won = Column(Boolean, default=False)
    votes_placed = Column(Integer, default=0)
    amount_spent = Column(Float, default=0.0)
    rounds_played = Column(Integer, default=0)
    strategy = Column(String(50))
    started_at = Column(DateTime)
    ended_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_game_ended', 'ended_at'),
    )

    def __repr__(self):
        result = 'W' if self.won else 'L'
        return f"<GameRecord(winner={self.winner_team} ours={self.our_team} {result})>"

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'winner_team': self.winner_team,
            'our_team': self.our_team,
            'won': self.won,
            'votes_placed': self.votes_placed,
            'amount_spent': self.amount_spent,
            'rounds_played': self.rounds_played,
            'strategy': self.strategy,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'ended_at': self.ended_at.isoformat() if self.ended_at else None,
        }
