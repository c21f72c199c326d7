"""
Data models for the fox raid game state.

These are the typed structures the evaluators work on. Raw caller snapshots
are turned into these by foxbot.state_view.normalize_state, so every field
here is always populated.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

DEN_COLORS = ("RED", "BLUE", "GREEN", "YELLOW")


class Choice(Enum):
    """End-of-round decision"""
    DASH = "DASH"
    LURK = "LURK"
    BURROW = "BURROW"


class MoveOption(Enum):
    """MOVE phase options"""
    SNATCH = "SNATCH"
    FORAGE = "FORAGE"
    SCOUT = "SCOUT"
    SHIFT = "SHIFT"


class Phase(Enum):
    MOVE = "MOVE"
    OPS = "OPS"
    ACTIONS = "ACTIONS"   # alias for OPS used by some hosts
    DECISION = "DECISION"

    @classmethod
    def parse(cls, value) -> Optional['Phase']:
        if isinstance(value, Phase):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


class IntelMode(Enum):
    """How the next event's identity was obtained"""
    LOCK = "LOCK"
    PEEK = "PEEK"
    MEMORY_VALID = "MEMORY_VALID"
    KNOWN = "KNOWN"
    MEMORY_STALE = "MEMORY_STALE"
    UNKNOWN = "UNKNOWN"


class DecisionReason(Enum):
    FORCED = "FORCED"
    FOLLOW = "FOLLOW"
    NO_INTEL = "NO_INTEL"
    PRESSURE_BURROW = "PRESSURE_BURROW"
    PRESSURE_DASH = "PRESSURE_DASH"
    TERMINAL_ESCALATION = "TERMINAL_ESCALATION"
    SAFE = "SAFE"
    DANGER_PREFER_BURROW = "DANGER_PREFER_BURROW"
    DANGER_FORCED_DASH = "DANGER_FORCED_DASH"


@dataclass
class IntelMemory:
    """Events an agent saw, stamped with the track version they were seen at"""
    events: List[str] = field(default_factory=list)
    track_version: int = 0
    confidence: float = 1.0

    def to_dict(self) -> dict:
        return {
            'events': list(self.events),
            'track_version': self.track_version,
            'confidence': self.confidence,
        }


@dataclass
class Intel:
    """Result of resolving what an agent knows about upcoming events"""
    mode: IntelMode
    confidence: float
    events: List[str] = field(default_factory=list)
    track_version: int = 0

    @property
    def next_event(self) -> Optional[str]:
        return self.events[0] if self.events else None

    @property
    def is_known(self) -> bool:
        return bool(self.events) and self.confidence > 0

    def to_dict(self) -> dict:
        return {
            'mode': self.mode.value,
            'confidence': round(self.confidence, 3),
            'events': list(self.events),
            'track_version': self.track_version,
        }


@dataclass
class Agent:
    """A fox in the raid"""
    id: str
    name: str = ""
    den_color: str = ""
    loot: List[float] = field(default_factory=list)
    hand: List[str] = field(default_factory=list)     # action ids, in hand order
    burrow_available: bool = True
    decision: Optional[Choice] = None
    in_yard: bool = True
    dashed: bool = False
    join_order: int = 0
    dash_pressure: float = 0.0
    known_upcoming: List[str] = field(default_factory=list)
    intel_memory: Optional[IntelMemory] = None
    last_shift_round: Optional[int] = None

    @property
    def carried_value(self) -> float:
        return float(sum(self.loot))

    @property
    def highest_loot_value(self) -> float:
        return float(max(self.loot)) if self.loot else 0.0

    def __repr__(self):
        return f"Agent(id={self.id}, den={self.den_color}, carry={self.carried_value:.0f}, hand={len(self.hand)})"


@dataclass
class RoundFlags:
    """Per-round rule flags (reset by the host between rounds, except the head lock)"""
    den_immune: Dict[str, bool] = field(default_factory=dict)
    lock_events: bool = False
    lock_head: bool = False
    head_locked_id: Optional[str] = None
    head_locked_until_round: Optional[int] = None
    hold_still: Dict[str, bool] = field(default_factory=dict)
    peek_blocked: bool = False
    scatter: bool = False
    ops_locked: bool = False
    predictions: Dict[str, str] = field(default_factory=dict)
    follow_tail: Dict[str, str] = field(default_factory=dict)
    scent_checks: List[str] = field(default_factory=list)

    def is_immune(self, color: str) -> bool:
        return bool(color) and bool(self.den_immune.get(color))

    def is_forced_stay(self, agent_id: str) -> bool:
        return bool(self.hold_still.get(agent_id))


@dataclass
class CardPlay:
    """One action card play with its chosen target"""
    action_id: str
    target_id: Optional[str] = None
    payload: Optional[str] = None    # e.g. the predicted event for NOSE_FOR_TROUBLE

    def label(self) -> str:
        if self.target_id:
            return f"{self.action_id}->{self.target_id}"
        if self.payload:
            return f"{self.action_id}({self.payload})"
        return self.action_id


@dataclass
class SharedState:
    """Full snapshot of one raid at the time of an evaluation"""
    round: int = 1
    phase: Optional[Phase] = None
    event_sequence: List[str] = field(default_factory=list)     # head = index 0
    remaining_bag: List[str] = field(default_factory=list)
    track_version: int = 0
    escalation_seen: int = 0
    lead_index: int = 0
    loot_deck: List[float] = field(default_factory=list)
    action_deck: List[str] = field(default_factory=list)
    action_discard: List[str] = field(default_factory=list)
    discard_this_round: List[str] = field(default_factory=list)  # ids played this round
    discard_recent: List[str] = field(default_factory=list)      # last plays, oldest first
    flags: RoundFlags = field(default_factory=RoundFlags)
    agents: List[Agent] = field(default_factory=list)
    ops_turn_order: List[str] = field(default_factory=list)
    game_id: str = ""

    def agent(self, agent_id: str) -> Optional[Agent]:
        for a in self.agents:
            if a.id == agent_id:
                return a
        return None

    def in_yard_agents(self) -> List[Agent]:
        """Agents still in the yard, ordered by join order"""
        return sorted((a for a in self.agents if a.in_yard), key=lambda a: a.join_order)

    def lead_agent(self) -> Optional[Agent]:
        ordered = self.in_yard_agents()
        if not ordered:
            return None
        return ordered[self.lead_index % len(ordered)]

    def is_lead(self, agent: Agent) -> bool:
        lead = self.lead_agent()
        return lead is not None and lead.id == agent.id

    def opponents_of(self, agent: Agent) -> List[Agent]:
        """In-yard foxes of another den"""
        return [a for a in self.in_yard_agents() if a.id != agent.id and a.den_color != agent.den_color]

    def allies_of(self, agent: Agent) -> List[Agent]:
        """In-yard foxes sharing the agent's den (excluding the agent)"""
        return [a for a in self.in_yard_agents() if a.id != agent.id and a.den_color == agent.den_color]

    def clone(self) -> 'SharedState':
        """Deep copy for counterfactual simulation"""
        return copy.deepcopy(self)
