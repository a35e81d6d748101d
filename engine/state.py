from enum import Enum

class DaemonPhase(Enum):
    """States the autoplay daemon can be in"""
    STOPPED = "stopped"
    PAUSED = "paused"
    NOT_AUTHENTICATED = "not_authenticated"
    WAITING_FOR_GAME = "waiting_for_game"
    NEW_ROUND = "new_round"
    MONITORING = "monitoring"
    GAME_ENDED = "game_ended"

    @property
    def in_game(self) -> bool:
        return self in (DaemonPhase.NEW_ROUND, DaemonPhase.MONITORING)
