"""
Danger Model

Maps (event, choice, agent context) to a danger score in [0, 10], and
computes expected danger over the unrevealed event bag.

Rule order for a single event:
    1. lead-only events are 0 for non-lead agents
    2. color-specific events are 0 for other den colors
    3. an active immunity for the agent's color zeroes DEN and CHARGE events
    4. BURROW is always safe, except on the terminal escalation event,
       where every non-DASH choice is 10 (DASH is 0)
    5. a forced stay makes DASH near-maximal
    6. otherwise the catalog base value, with one category adjustment
       (PATROL catches dashers, so LURK is lowered)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np

from .models import Agent, Choice, SharedState
from .rules_catalog import (
    APPLIES_COLOR, APPLIES_LEAD, CATEGORY_PATROL, IMMUNITY_CATEGORIES,
    EventFacts, RulesCatalog, get_catalog,
)
from .strategy_config import StrategyConfig, get_config

logger = logging.getLogger(__name__)

MAX_DANGER = 10.0
DEFAULT_HIGH_DANGER_MIN = 6.5
DEFAULT_PATROL_LURK_DANGER = 1.0
DEFAULT_FORCED_STAY_DASH_DANGER = 9.5
DEFAULT_ESCALATION_TERMINAL_COUNT = 3   # the third rooster ends the raid


@dataclass
class AgentContext:
    """The parts of an agent's situation the danger model looks at"""
    agent_id: str
    den_color: str = ""
    is_lead: bool = False
    immune: bool = False
    carried_value: float = 0.0
    forced_stay: bool = False
    escalation_seen: int = 0
    burrow_available: bool = True

    @classmethod
    def for_agent(cls, agent: Agent, state: SharedState) -> 'AgentContext':
        return cls(
            agent_id=agent.id,
            den_color=agent.den_color,
            is_lead=state.is_lead(agent),
            immune=state.flags.is_immune(agent.den_color),
            carried_value=agent.carried_value,
            forced_stay=state.flags.is_forced_stay(agent.id),
            escalation_seen=state.escalation_seen,
            burrow_available=agent.burrow_available,
        )


@dataclass(frozen=True)
class DangerVector:
    dash: float = 0.0
    lurk: float = 0.0
    burrow: float = 0.0

    def get(self, choice: Choice) -> float:
        if choice == Choice.DASH:
            return self.dash
        if choice == Choice.LURK:
            return self.lurk
        return self.burrow

    @property
    def peak(self) -> float:
        return max(self.dash, self.lurk, self.burrow)

    @property
    def stay(self) -> float:
        """Danger of staying in the yard (LURK or BURROW, whichever is safer)"""
        return min(self.lurk, self.burrow)

    def as_array(self) -> np.ndarray:
        return np.array([self.dash, self.lurk, self.burrow], dtype=float)

    @classmethod
    def from_array(cls, values) -> 'DangerVector':
        return cls(float(values[0]), float(values[1]), float(values[2]))

    def blend(self, other: 'DangerVector', weight: float) -> 'DangerVector':
        """weight * self + (1 - weight) * other"""
        w = max(0.0, min(1.0, weight))
        return DangerVector.from_array(w * self.as_array() + (1.0 - w) * other.as_array())

    def as_dict(self) -> dict:
        return {'DASH': self.dash, 'LURK': self.lurk, 'BURROW': self.burrow}


@dataclass
class BagDanger:
    """Expected danger over the remaining bag"""
    expected: Union[float, DangerVector]
    high_fraction: float
    size: int


class DangerModel:
    """Event danger lookups for one catalog + config"""

    def __init__(self, catalog: Optional[RulesCatalog] = None, config: Optional[StrategyConfig] = None):
        self.catalog = catalog or get_catalog()
        self.config = config or get_config()

    def _cfg(self, key: str, default):
        return self.config.get('danger', key, default)

    @property
    def high_danger_min(self) -> float:
        return float(self._cfg('high_danger_min', DEFAULT_HIGH_DANGER_MIN))

    def is_terminal_escalation(self, event_id: Optional[str], ctx: AgentContext) -> bool:
        """
        True if revealing this event ends the raid.

        Decided only from the public escalation counter, never from
        hidden track positions.
        """
        facts = self.catalog.facts_for_event(event_id)
        if facts is None or not facts.is_escalation:
            return False
        terminal_count = int(self._cfg('escalation_terminal_count', DEFAULT_ESCALATION_TERMINAL_COUNT))
        return ctx.escalation_seen >= terminal_count - 1

    def is_neutralized_by_immunity(self, event_id: Optional[str], ctx: AgentContext) -> bool:
        facts = self.catalog.facts_for_event(event_id)
        return facts is not None and ctx.immune and self._in_scope(facts, ctx) \
            and facts.category in IMMUNITY_CATEGORIES

    def _in_scope(self, facts: EventFacts, ctx: AgentContext) -> bool:
        if facts.applies_to == APPLIES_LEAD and not ctx.is_lead:
            return False
        if facts.applies_to == APPLIES_COLOR and facts.den_color and facts.den_color != ctx.den_color:
            return False
        return True

    def danger_for(self, event_id: Optional[str], choice: Choice, ctx: AgentContext) -> float:
        """Danger of `choice` if `event_id` resolves next. Unknown events are 0."""
        facts = self.catalog.facts_for_event(event_id)
        if facts is None:
            return 0.0

        if not self._in_scope(facts, ctx):
            return 0.0

        if ctx.immune and facts.category in IMMUNITY_CATEGORIES:
            return 0.0

        if facts.is_escalation and self.is_terminal_escalation(event_id, ctx):
            return 0.0 if choice == Choice.DASH else MAX_DANGER

        if choice == Choice.BURROW:
            return 0.0

        if ctx.forced_stay and choice == Choice.DASH:
            return float(self._cfg('forced_stay_dash_danger', DEFAULT_FORCED_STAY_DASH_DANGER))

        danger = facts.base_danger(choice)
        if facts.category == CATEGORY_PATROL and choice == Choice.LURK:
            danger = min(danger, float(self._cfg('patrol_lurk_danger', DEFAULT_PATROL_LURK_DANGER)))

        return max(0.0, min(MAX_DANGER, danger))

    def danger_vector(self, event_id: Optional[str], ctx: AgentContext) -> DangerVector:
        return DangerVector(
            dash=self.danger_for(event_id, Choice.DASH, ctx),
            lurk=self.danger_for(event_id, Choice.LURK, ctx),
            burrow=self.danger_for(event_id, Choice.BURROW, ctx),
        )

    def peak_danger(self, event_id: Optional[str], ctx: AgentContext) -> float:
        return self.danger_vector(event_id, ctx).peak

    def danger_matrix(self, events: Sequence[str], ctx: AgentContext) -> np.ndarray:
        """Rows of (dash, lurk, burrow) per event"""
        if not events:
            return np.zeros((0, 3), dtype=float)
        return np.array([self.danger_vector(e, ctx).as_array() for e in events], dtype=float)

    def expected_danger_over_bag(self, choice: Optional[Choice], bag: Sequence[str],
                                 ctx: AgentContext) -> BagDanger:
        """
        Uniform expectation over the bag.

        With a choice, `expected` is that choice's mean danger; with None it is
        the full mean DangerVector. `high_fraction` is the share of bag events
        whose peak danger reaches high_danger_min.
        """
        matrix = self.danger_matrix(list(bag), ctx)
        if matrix.shape[0] == 0:
            expected = 0.0 if choice is not None else DangerVector()
            return BagDanger(expected=expected, high_fraction=0.0, size=0)

        means = matrix.mean(axis=0)
        high_fraction = float((matrix.max(axis=1) >= self.high_danger_min).mean())

        if choice is None:
            expected = DangerVector.from_array(means)
        else:
            expected = float(means[_CHOICE_COLUMN[choice]])
        return BagDanger(expected=expected, high_fraction=high_fraction, size=int(matrix.shape[0]))

    def escalation_probability(self, bag: Sequence[str]) -> float:
        """Share of the bag that is an escalation event"""
        if not bag:
            return 0.0
        hits = []
        for event_id in bag:
            facts = self.catalog.facts_for_event(event_id)
            hits.append(1.0 if facts is not None and facts.is_escalation else 0.0)
        return float(np.mean(hits))


_CHOICE_COLUMN = {Choice.DASH: 0, Choice.LURK: 1, Choice.BURROW: 2}


def events_in_bag(state: SharedState) -> List[str]:
    """Bag for expectations: the remaining bag, or the sequence itself when the bag is empty"""
    return list(state.remaining_bag) if state.remaining_bag else sorted(state.event_sequence)
