"""
Intel Resolver

Determines what an agent knows about upcoming events, with a confidence.
Resolution order:
    1. head locked this round     -> LOCK (the locked head, confidence 1.0)
    2. peek allowed               -> PEEK (next `lookahead` events, confidence 1.0),
                                     refreshing the agent's IntelMemory
    3. peek blocked               -> MEMORY_VALID if the cache matches the track version,
                                     else KNOWN from scouted events,
                                     else MEMORY_STALE at a discount,
                                     else UNKNOWN

Refreshing the cache in PEEK mode is the only mutation the engine performs.
"""

import logging
from typing import Optional

from .models import Agent, Intel, IntelMemory, IntelMode, SharedState
from .strategy_config import StrategyConfig, get_config
from . import track_state

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD = 4
DEFAULT_KNOWN_CONFIDENCE = 0.9
DEFAULT_STALE_CONFIDENCE_MULT = 0.5


class IntelResolver:
    """Resolves an agent's view of the upcoming events"""

    def __init__(self, config: Optional[StrategyConfig] = None):
        self.config = config or get_config()

    def _cfg(self, key: str, default):
        return self.config.get('intel', key, default)

    def resolve(self, agent: Agent, state: SharedState, round_no: Optional[int] = None,
                lookahead: Optional[int] = None) -> Intel:
        """Never raises; missing data degrades to UNKNOWN."""
        if round_no is None:
            round_no = state.round
        if lookahead is None:
            lookahead = int(self._cfg('lookahead', DEFAULT_LOOKAHEAD))
        lookahead = max(1, lookahead)
        version = state.track_version

        if track_state.is_head_locked(state, round_no):
            return Intel(IntelMode.LOCK, 1.0, [track_state.effective_head(state, round_no)], version)

        if not state.flags.peek_blocked and state.event_sequence:
            events = list(state.event_sequence[:lookahead])
            agent.intel_memory = IntelMemory(events=list(events), track_version=version, confidence=1.0)
            return Intel(IntelMode.PEEK, 1.0, events, version)

        memory = agent.intel_memory
        usable_memory = memory is not None and bool(memory.events) and memory.confidence > 0

        if usable_memory and memory.track_version == version:
            return Intel(IntelMode.MEMORY_VALID, min(1.0, memory.confidence),
                         list(memory.events[:lookahead]), version)

        if agent.known_upcoming:
            confidence = float(self._cfg('known_confidence', DEFAULT_KNOWN_CONFIDENCE))
            return Intel(IntelMode.KNOWN, confidence, list(agent.known_upcoming[:lookahead]), version)

        if usable_memory:
            mult = float(self._cfg('stale_confidence_mult', DEFAULT_STALE_CONFIDENCE_MULT))
            # Stale must rank strictly below a valid cache of the same content
            mult = min(max(mult, 0.0), 0.99)
            return Intel(IntelMode.MEMORY_STALE, min(1.0, memory.confidence) * mult,
                         list(memory.events[:lookahead]), version)

        logger.debug(f"No intel for {agent.id} (peek blocked, no memory)")
        return Intel(IntelMode.UNKNOWN, 0.0, [], version)
