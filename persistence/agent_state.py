"""
Agent State Repository

Round-trips the daemon's AgentState through a JSON file. Writes go to a
temporary file first and then replace the target, so a reader never sees
a half-written document. Only the daemon writes this file.
"""

import json
import logging
import os
import tempfile
from typing import Optional

from engine.models import AgentState

logger = logging.getLogger(__name__)


class AgentStateRepository:
    """Load/save AgentState as JSON"""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> AgentState:
        """Stored state, or a fresh AgentState when missing or unreadable"""
        if not os.path.exists(self.path):
            return AgentState()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return AgentState.from_dict(json.load(f))
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Could not load agent state from {self.path}: {e}")
            return AgentState()

    def save(self, state: AgentState):
        directory = os.path.dirname(self.path) or '.'
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix='.daemon-state-', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def reset(self) -> AgentState:
        """Replace stored state with a fresh one"""
        state = AgentState()
        self.save(state)
        logger.info("Agent state reset")
        return state

    def exists(self) -> Optional[bool]:
        return os.path.exists(self.path)
