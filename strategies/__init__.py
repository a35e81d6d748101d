"""
Strategies Package

Voting policies are separate from the daemon so they can be swapped by
name at startup and tested without a server.
"""

from typing import Any, Callable, Dict, List, Optional

from .interface import Strategy, VoteAction, SkipAction, Decision
from .expected_value import ExpectedValueStrategy
from .aggressive import AggressiveStrategy
from .underdog import UnderdogStrategy
from .conservative import ConservativeStrategy
from .random_strategy import RandomStrategy

# name -> factory taking an options dict
STRATEGIES: Dict[str, Callable[[Optional[Dict[str, Any]]], Strategy]] = {
    'expected-value': ExpectedValueStrategy,
    'aggressive': AggressiveStrategy,
    'underdog': UnderdogStrategy,
    'conservative': ConservativeStrategy,
    'random': RandomStrategy,
}

ALIASES: Dict[str, str] = {
    'ev': 'expected-value',
    'expected_value': 'expected-value',
    'aggro': 'aggressive',
    'dog': 'underdog',
    'safe': 'conservative',
    'rand': 'random',
}


def resolve_strategy_name(name: Optional[str]) -> str:
    """Canonical strategy name; raises ValueError for unknown names"""
    key = (name or 'expected-value').strip().lower()
    key = ALIASES.get(key, key)
    if key not in STRATEGIES:
        available = ', '.join(sorted(STRATEGIES))
        raise ValueError(f"Unknown strategy '{name}' (available: {available})")
    return key


def get_strategy(name: Optional[str], options: Optional[Dict[str, Any]] = None) -> Strategy:
    """Build a strategy by name or alias"""
    return STRATEGIES[resolve_strategy_name(name)](options)


def list_strategies_with_info() -> List[Dict[str, Any]]:
    return [
        {
            'name': name,
            'description': factory.description,
            'aliases': sorted(alias for alias, target in ALIASES.items() if target == name),
        }
        for name, factory in STRATEGIES.items()
    ]


__all__ = [
    'Strategy',
    'VoteAction',
    'SkipAction',
    'Decision',
    'ExpectedValueStrategy',
    'AggressiveStrategy',
    'UnderdogStrategy',
    'ConservativeStrategy',
    'RandomStrategy',
    'STRATEGIES',
    'ALIASES',
    'resolve_strategy_name',
    'get_strategy',
    'list_strategies_with_info',
]
