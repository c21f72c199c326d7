"""
Move Evaluator

Handles the MOVE phase: one of SNATCH, FORAGE, SCOUT or SHIFT.

Decision factors:
- Expected value of the next loot card (SNATCH)
- Expected value of the action cards a FORAGE would draw
- Value of information when peeking is blocked (SCOUT)
- Team safety vs opponent exposure over the visible event window (SHIFT)
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .base import ActionType, EvaluatedAction, EvaluationResult, PhaseEvaluator, rank
from .decision_evaluator import DecisionEvaluator
from ..danger import AgentContext, events_in_bag
from ..intel import IntelResolver
from ..models import Agent, Choice, Intel, IntelMode, MoveOption, SharedState
from ..rules_catalog import ActionFacts, RulesCatalog
from ..strategy_config import StrategyConfig
from .. import track_state

logger = logging.getLogger(__name__)

# Utility weights (fallbacks for the 'utility' config section)
W_LOOT = 6.0
W_TEAM = 0.6
W_DENY = 0.8
W_RESOURCE = 1.0

# SNATCH
SNATCH_TOLL_BOOST = 4.0

# FORAGE
ACTION_DECK_SAMPLE_N = 30
FORAGE_DRAW_COUNT = 2
UNKNOWN_CARD_VALUE = 0.4
EMPTY_SAMPLE_VALUE = 0.8
INFO_PEEK_MULT = 0.6
COUNTER_DANGER_MULT = 1.25
DEFAULT_TAG_VALUES = {
    "DEN_IMMUNITY": 4.0,
    "TRACK_MANIP": 3.0,
    "PREDICT_EVENT": 2.2,
    "LOCK_EVENTS": 1.5,
    "INFO": 1.1,
    "PEEK_DECISION": 1.1,
}
INFO_TAGS = ("INFO", "PEEK_DECISION", "PREDICT_EVENT")
COUNTER_TAGS = ("DEN_IMMUNITY", "TRACK_MANIP", "LOCK_EVENTS")

# SCOUT
SCOUT_BASE_VALUE = 1.0
SCOUT_BLOCKED_VALUE = 3.0
SCOUT_VOI_WEIGHT = 1.0

# SHIFT
SHIFT_LOOKAHEAD = 4
SHIFT_SLOT_WEIGHTS = [1.0, 0.65, 0.42, 0.28, 0.18]
SHIFT_DISTANCE_PENALTY = 0.25
SHIFT_BENEFIT_MIN = 3.0
SHIFT_COOLDOWN_ROUNDS = 1
SHIFT_OVERRIDE_BENEFIT = 3.0
SHIFT_MIN_GAIN = 3.0
ENEMY_CARRY_WEIGHT_CAP = 2.0
ENEMY_CARRY_DIVISOR = 6.0


@dataclass
class ShiftPlan:
    """Best swap found in the visible window (offsets from the head)"""
    i: int
    j: int
    gain: float
    team_improve: float
    enemy_worsen: float
    events_before: List[str]
    events_after: List[str]


def action_tag_value(facts: Optional[ActionFacts], intel: Optional[Intel], danger_next: float,
                     tag_values=None, info_peek_mult: float = INFO_PEEK_MULT,
                     counter_danger_mult: float = COUNTER_DANGER_MULT,
                     high_danger_min: float = 6.0) -> float:
    """
    Rough worth of holding an action card, from its tags.

    Info cards are worth less while peeking is open; defensive and
    track-control cards are worth more when the next event is dangerous.
    """
    if facts is None:
        return UNKNOWN_CARD_VALUE
    values = tag_values or DEFAULT_TAG_VALUES
    v = sum(float(values.get(tag, 0.0)) for tag in facts.tags)

    if intel is not None and intel.mode == IntelMode.PEEK and any(facts.has_tag(t) for t in INFO_TAGS):
        v *= info_peek_mult
    if danger_next >= high_danger_min and any(facts.has_tag(t) for t in COUNTER_TAGS):
        v *= counter_danger_mult
    return v


class MoveEvaluator(PhaseEvaluator):
    """
    Evaluates MOVE options.

    Considers:
    - Loot gain (SNATCH), boosted before a toll when we hold nothing
    - Card gain (FORAGE)
    - Intel gain (SCOUT)
    - Reordering upcoming events (SHIFT), which costs our best loot card
    """

    section = 'move'

    def __init__(self, catalog: Optional[RulesCatalog] = None, config: Optional[StrategyConfig] = None,
                 decision: Optional[DecisionEvaluator] = None):
        super().__init__("Move", catalog, config)
        self.decision = decision or DecisionEvaluator(self.catalog, self.config)
        self.resolver: IntelResolver = self.decision.resolver
        self.danger = self.decision.danger

    def evaluate(self, agent: Agent, state: SharedState) -> EvaluationResult:
        intel = self.resolver.resolve(agent, state)
        ctx = AgentContext.for_agent(agent, state)
        danger_next = self.danger.peak_danger(intel.next_event, ctx) if intel.next_event else 0.0

        options = [
            self._score_snatch(agent, state, intel),
            self._score_forage(state, intel, danger_next),
            self._score_scout(agent, state, intel, ctx),
            self._score_shift(agent, state, intel),
        ]
        for option in options:
            self.log_evaluation(option)

        ranked = rank(options)
        available = [o for o in ranked if o.available]

        if not available:
            fallback = EvaluatedAction(
                action_id=MoveOption.SNATCH.value,
                action_type=ActionType.MOVE,
                score=0.0,
                display_text="SNATCH (fallback)",
            )
            fallback.add_reasoning("No legal move option")
            self.logger.warning(f"⚠️  {agent.id}: no available move options, falling back to SNATCH")
            return EvaluationResult(phase="MOVE", best=fallback, ranked=ranked, no_candidates=True,
                                    meta={'intel': intel, 'reason': 'NO_LEGAL_MOVE'})

        best = available[0]
        if best.action_id == MoveOption.SHIFT.value and len(available) > 1:
            second = available[1]
            min_gain = float(self.cfg('shift_min_gain', SHIFT_MIN_GAIN))
            if best.score - second.score < min_gain:
                self.logger.debug(f"SHIFT margin {best.score - second.score:.2f} < {min_gain}, "
                                  f"taking {second.action_id}")
                best = second

        self.logger.info(f"🦊 {agent.id} MOVE: {best.action_id} ({best.score:.2f})")
        return EvaluationResult(phase="MOVE", best=best, ranked=ranked,
                                meta={'intel': intel, 'intel_memory': agent.intel_memory})

    # ------------------------------------------------------------------
    # SNATCH
    # ------------------------------------------------------------------

    def _score_snatch(self, agent: Agent, state: SharedState, intel: Intel) -> EvaluatedAction:
        action = EvaluatedAction(
            action_id=MoveOption.SNATCH.value,
            action_type=ActionType.MOVE,
            score=0.0,
            display_text="SNATCH: draw 1 loot",
        )
        if not state.loot_deck:
            action.available = False
            action.add_reasoning("Loot deck empty")
            return action

        expected = float(np.mean(state.loot_deck))
        action.add_reasoning(f"Expected loot {expected:.2f}", self.weight('w_loot', W_LOOT) * expected)

        facts = self.catalog.facts_for_event(intel.next_event)
        if facts is not None and facts.requires_loot and not agent.loot:
            action.add_reasoning(f"{facts.event_id} next and no loot to pay",
                                 float(self.cfg('snatch_toll_boost', SNATCH_TOLL_BOOST)))
        return action

    # ------------------------------------------------------------------
    # FORAGE
    # ------------------------------------------------------------------

    def _score_forage(self, state: SharedState, intel: Intel, danger_next: float) -> EvaluatedAction:
        action = EvaluatedAction(
            action_id=MoveOption.FORAGE.value,
            action_type=ActionType.MOVE,
            score=0.0,
            display_text="FORAGE: draw action cards",
        )
        if not state.action_deck:
            action.available = False
            action.add_reasoning("Action deck empty")
            return action

        drawn = min(int(self.cfg('forage_draw_count', FORAGE_DRAW_COUNT)), len(state.action_deck))
        sample_n = max(1, int(self.cfg('action_deck_sample_n', ACTION_DECK_SAMPLE_N)))
        sample = state.action_deck[-sample_n:]   # top of the deck is the end of the list

        tag_values = self.cfg('tag_values', DEFAULT_TAG_VALUES)
        values = [
            action_tag_value(
                self.catalog.facts_for_action(aid), intel, danger_next,
                tag_values=tag_values,
                info_peek_mult=float(self.cfg('info_peek_mult', INFO_PEEK_MULT)),
                counter_danger_mult=float(self.cfg('counter_danger_mult', COUNTER_DANGER_MULT)),
                high_danger_min=self.danger.high_danger_min,
            )
            for aid in sample
        ]
        per_card = float(np.mean(values)) if values else EMPTY_SAMPLE_VALUE
        action.add_reasoning(f"{drawn} card(s) at {per_card:.2f} each", per_card * drawn)
        action.meta['sampled'] = len(sample)
        return action

    # ------------------------------------------------------------------
    # SCOUT
    # ------------------------------------------------------------------

    def _score_scout(self, agent: Agent, state: SharedState, intel: Intel,
                     ctx: AgentContext) -> EvaluatedAction:
        action = EvaluatedAction(
            action_id=MoveOption.SCOUT.value,
            action_type=ActionType.MOVE,
            score=0.0,
            display_text="SCOUT: look at upcoming events",
        )
        if state.flags.scatter:
            action.available = False
            action.add_reasoning("Scouting denied (SCATTER)")
            return action
        if not state.event_sequence:
            action.available = False
            action.add_reasoning("No events left to scout")
            return action

        if not state.flags.peek_blocked:
            action.add_reasoning("Peek open, little to learn", float(self.cfg('scout_base_value', SCOUT_BASE_VALUE)))
            return action

        voi = self.value_of_information(agent, state, ctx) * float(self.cfg('scout_voi_weight', SCOUT_VOI_WEIGHT))
        floor = float(self.cfg('scout_blocked_value', SCOUT_BLOCKED_VALUE))
        if voi > floor:
            action.add_reasoning("Value of information over bag", voi)
        else:
            action.add_reasoning("Peek blocked", floor)
        action.meta['voi'] = voi
        return action

    def value_of_information(self, agent: Agent, state: SharedState, ctx: AgentContext) -> float:
        """
        Expected decision utility if the next event were known, minus the
        utility of deciding on the bag expectation alone.
        """
        bag = events_in_bag(state)
        if not bag:
            return 0.0
        choices = self._available_choices(agent, ctx)

        bag_mean = self.danger.expected_danger_over_bag(None, bag, ctx).expected
        blind = max(self.decision.choice_utility(c, bag_mean.get(c), agent, state).score for c in choices)

        counts = Counter(bag)
        total = float(len(bag))
        informed = 0.0
        for event_id, count in counts.items():
            vector = self.danger.danger_vector(event_id, ctx)
            best = max(self.decision.choice_utility(c, vector.get(c), agent, state).score for c in choices)
            informed += (count / total) * best
        return max(0.0, informed - blind)

    @staticmethod
    def _available_choices(agent: Agent, ctx: AgentContext) -> List[Choice]:
        choices = [Choice.LURK]
        if not ctx.forced_stay:
            choices.append(Choice.DASH)
        if agent.burrow_available:
            choices.append(Choice.BURROW)
        return choices

    # ------------------------------------------------------------------
    # SHIFT
    # ------------------------------------------------------------------

    def _score_shift(self, agent: Agent, state: SharedState, intel: Intel) -> EvaluatedAction:
        action = EvaluatedAction(
            action_id=MoveOption.SHIFT.value,
            action_type=ActionType.MOVE,
            score=0.0,
            display_text="SHIFT: swap two upcoming events",
        )
        if state.flags.lock_events:
            action.available = False
            action.add_reasoning("Events locked")
            return action
        if not agent.loot:
            action.available = False
            action.add_reasoning("No loot to pay with")
            return action

        plan = self.plan_shift(agent, state, intel)
        if plan is None:
            action.available = False
            action.add_reasoning("No worthwhile swap in view")
            return action

        action.add_reasoning(f"Swap +{plan.i}/+{plan.j} (team {plan.team_improve:+.1f}, "
                             f"deny {plan.enemy_worsen:+.1f})", plan.gain)
        cost = self.weight('w_resource', W_RESOURCE) * agent.highest_loot_value
        action.add_reasoning("Pay highest loot card", -cost)
        action.display_text = f"SHIFT: swap +{plan.i} and +{plan.j}"
        action.meta['plan'] = plan
        return action

    def _shift_window(self, state: SharedState, intel: Intel) -> List[str]:
        lookahead = int(self.cfg('shift_lookahead', SHIFT_LOOKAHEAD))
        if intel.mode == IntelMode.LOCK and not state.flags.peek_blocked:
            # The locked head hides nothing; the tail is still in view
            return list(state.event_sequence[:lookahead])
        return list(intel.events[:lookahead])

    def _slot_weight(self, k: int) -> float:
        weights = self.cfg('shift_slot_weights', SHIFT_SLOT_WEIGHTS)
        if k < len(weights):
            return float(weights[k])
        return max(0.12, 0.18 * (0.7 ** k))

    def _weighted_peak(self, ctx: AgentContext, events: List[str]) -> float:
        return sum(self.danger.peak_danger(e, ctx) * self._slot_weight(k) for k, e in enumerate(events))

    def plan_shift(self, agent: Agent, state: SharedState, intel: Intel) -> Optional[ShiftPlan]:
        """
        Search every pair in the visible window for the swap that lowers
        weighted danger for our den while raising it for carrying opponents.
        """
        events = self._shift_window(state, intel)
        if len(events) < 2:
            return None

        w_team = self.weight('w_team', W_TEAM)
        w_deny = self.weight('w_deny', W_DENY)
        distance_penalty = float(self.cfg('shift_distance_penalty', SHIFT_DISTANCE_PENALTY))
        head_locked = track_state.is_head_locked(state)

        team = [AgentContext.for_agent(agent, state)] + \
               [AgentContext.for_agent(a, state) for a in state.allies_of(agent)]
        enemies: List[Tuple[AgentContext, float]] = []
        for opp in state.opponents_of(agent):
            carry_w = 1.0 + min(ENEMY_CARRY_WEIGHT_CAP, opp.carried_value / ENEMY_CARRY_DIVISOR)
            enemies.append((AgentContext.for_agent(opp, state), carry_w))

        def score(evs: List[str]) -> Tuple[float, float]:
            t = sum(self._weighted_peak(c, evs) for c in team)
            e = sum(self._weighted_peak(c, evs) * w for c, w in enemies)
            return t, e

        base_team, base_enemy = score(events)
        best: Optional[ShiftPlan] = None
        for i in range(len(events) - 1):
            if head_locked and i == 0:
                continue
            for j in range(i + 1, len(events)):
                if events[i] == events[j]:
                    continue
                swapped = list(events)
                swapped[i], swapped[j] = swapped[j], swapped[i]
                t, e = score(swapped)
                team_improve = base_team - t
                enemy_worsen = e - base_enemy
                gain = w_team * team_improve + w_deny * enemy_worsen - distance_penalty * (j - i)
                if best is None or gain > best.gain:
                    best = ShiftPlan(i, j, gain, team_improve, enemy_worsen, events, swapped)

        if best is None:
            return None

        benefit_min = float(self.cfg('shift_benefit_min', SHIFT_BENEFIT_MIN))
        if best.gain < benefit_min:
            self.logger.debug(f"Best swap gain {best.gain:.2f} below {benefit_min}")
            return None

        cooldown = int(self.cfg('shift_cooldown_rounds', SHIFT_COOLDOWN_ROUNDS))
        if agent.last_shift_round is not None and state.round - agent.last_shift_round <= cooldown:
            override = float(self.cfg('shift_override_benefit', SHIFT_OVERRIDE_BENEFIT))
            if best.gain < override:
                self.logger.debug(f"SHIFT on cooldown (last round {agent.last_shift_round})")
                return None
        return best
