"""
Decision Evaluator

Picks DASH / LURK / BURROW for the end of the round.

Rules (first match wins):
    1. forced stay (HOLD_STILL)            -> LURK     FORCED
    2. next event is the terminal rooster  -> DASH     TERMINAL_ESCALATION
    3. follow binding (FOLLOW_THE_TAIL)    -> copy target's decision   FOLLOW
    4. next event unknown                  -> dash-pressure fallback   PRESSURE_* / NO_INTEL
    5. staying is safe (or immunity covers the event) -> LURK  SAFE
    6. otherwise BURROW if the token is left, else DASH

Each choice also gets a utility score so the OPS evaluator can measure how
much a card play changes an agent's outlook.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .base import ActionType, EvaluatedAction, PhaseEvaluator, rank
from ..danger import AgentContext, DangerModel, DangerVector, events_in_bag
from ..intel import IntelResolver
from ..models import Agent, Choice, DecisionReason, Intel, SharedState
from ..rules_catalog import RulesCatalog
from ..strategy_config import StrategyConfig

# Utility weights (fallbacks for the 'utility' config section)
W_LOOT = 6.0
W_RISK = 1.15

# Decision thresholds
SAFE_DANGER_MAX = 3.0
DASH_PRESSURE_BASE = 7.0
DASHERS_BONUS_CAP = 3
DASH_PRESSURE_SAFE_DECAY = 1.0
DASH_PRESSURE_UNSAFE_GAIN_MAX = 2.0
DASH_PRESSURE_END_BOOST = 2.0
END_PRESSURE_PROBABILITY = 0.75

# Choice costs
BURROW_TOKEN_COST = 0.75
DASH_OPPORTUNITY_ROUNDS = 0.5
DASH_REWARD_BONUS = 1.0
DEFAULT_LOOT_VALUE = 1.5

MAX_PRESSURE = 10.0


@dataclass
class DecisionOutcome:
    """Chosen decision with its utility and the full ranking"""
    decision: Choice
    reason: DecisionReason
    utility: float
    ranked: List[EvaluatedAction] = field(default_factory=list)
    intel: Optional[Intel] = None
    event_id: Optional[str] = None
    danger: Optional[DangerVector] = None
    danger_stay: float = 0.0
    dash_pressure_next: float = 0.0
    follow_target: Optional[str] = None

    def utility_of(self, choice: Choice) -> float:
        for action in self.ranked:
            if action.action_id == choice.value:
                return action.score
        return self.utility


def update_dash_pressure(pressure: float, safe_now: bool, danger_stay: float, end_pressure: bool,
                         safe_decay: float = DASH_PRESSURE_SAFE_DECAY,
                         unsafe_gain_max: float = DASH_PRESSURE_UNSAFE_GAIN_MAX,
                         end_boost: float = DASH_PRESSURE_END_BOOST) -> float:
    """
    Next round's dash pressure.

    Safe rounds bleed pressure off; unsafe rounds add up to unsafe_gain_max
    depending on how dangerous staying was, plus end_boost when the raid is
    about to end. Clamped to [0, 10].
    """
    p = max(0.0, min(MAX_PRESSURE, float(pressure)))
    if safe_now:
        p = max(0.0, p - safe_decay)
    else:
        gain = max(0.0, min(unsafe_gain_max, (float(danger_stay) - 5.0) / 2.0))
        p += gain
        if end_pressure:
            p += end_boost
    return max(0.0, min(MAX_PRESSURE, p))


class DecisionEvaluator(PhaseEvaluator):
    """
    Scores DASH / LURK / BURROW for one agent.
    """

    section = 'decision'

    def __init__(self, catalog: Optional[RulesCatalog] = None, config: Optional[StrategyConfig] = None,
                 resolver: Optional[IntelResolver] = None, danger: Optional[DangerModel] = None):
        super().__init__("Decision", catalog, config)
        self.resolver = resolver or IntelResolver(self.config)
        self.danger = danger or DangerModel(self.catalog, self.config)

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    def avg_loot_value(self, state: SharedState) -> float:
        if not state.loot_deck:
            return float(self.cfg('default_loot_value', DEFAULT_LOOT_VALUE))
        return float(np.mean(state.loot_deck))

    def expected_danger(self, intel: Intel, ctx: AgentContext, state: SharedState) -> DangerVector:
        """
        Danger vector the agent should plan with.

        A known event is blended with the bag expectation by intel confidence;
        with no intel the bag expectation is used on its own.
        """
        bag = events_in_bag(state)
        bag_mean = self.danger.expected_danger_over_bag(None, bag, ctx).expected if bag else DangerVector()
        event_id = intel.next_event
        if event_id is None or intel.confidence <= 0:
            return bag_mean
        known = self.danger.danger_vector(event_id, ctx)
        if not bag or intel.confidence >= 1.0:
            return known
        return known.blend(bag_mean, intel.confidence)

    def choice_utility(self, choice: Choice, danger: float, agent: Agent, state: SharedState,
                       intel: Optional[Intel] = None) -> EvaluatedAction:
        """utility = w_loot * carry * (1 - d/10) - w_risk * d - choice cost (+ bonuses)"""
        w_loot = self.weight('w_loot', W_LOOT)
        w_risk = self.weight('w_risk', W_RISK)
        carry = agent.carried_value

        action = EvaluatedAction(
            action_id=choice.value,
            action_type=ActionType.DECISION,
            score=0.0,
            display_text=choice.value,
            meta={'danger': danger},
        )
        action.add_reasoning(f"Keep loot {carry:.0f} at danger {danger:.1f}", w_loot * carry * (1.0 - danger / 10.0))
        action.add_reasoning("Risk", -w_risk * danger)

        if choice == Choice.BURROW:
            action.add_reasoning("Spend burrow token", -float(self.cfg('burrow_token_cost', BURROW_TOKEN_COST)))
        elif choice == Choice.DASH:
            rounds = float(self.cfg('dash_opportunity_rounds', DASH_OPPORTUNITY_ROUNDS))
            action.add_reasoning("Forfeit future loot", -w_loot * self.avg_loot_value(state) * rounds)

        if intel is not None and intel.next_event:
            facts = self.catalog.facts_for_event(intel.next_event)
            if choice == Choice.DASH and facts is not None and facts.has_tag("DASH_REWARD"):
                bonus = float(self.cfg('dash_reward_bonus', DASH_REWARD_BONUS))
                action.add_reasoning("Dash reward event", w_loot * bonus * intel.confidence)
            predicted = state.flags.predictions.get(agent.id)
            if predicted and predicted == intel.next_event and choice != Choice.DASH:
                action.add_reasoning("Correct prediction pays out",
                                     w_loot * self.avg_loot_value(state) * intel.confidence)
        return action

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def observed_dashers(self, agent: Agent, state: SharedState) -> int:
        return sum(1 for a in state.agents
                   if a.id != agent.id and (a.dashed or a.decision == Choice.DASH))

    def evaluate(self, agent: Agent, state: SharedState, intel: Optional[Intel] = None,
                 follow: bool = True) -> DecisionOutcome:
        if intel is None:
            intel = self.resolver.resolve(agent, state)
        ctx = AgentContext.for_agent(agent, state)
        event_id = intel.next_event

        vector = self.expected_danger(intel, ctx, state)
        ranked = []
        for choice in Choice:
            action = self.choice_utility(choice, vector.get(choice), agent, state, intel)
            if choice == Choice.BURROW and not agent.burrow_available:
                action.available = False
                action.add_reasoning("Burrow already used this raid")
            if choice == Choice.DASH and ctx.forced_stay:
                action.available = False
                action.add_reasoning("Held still: cannot leave")
            ranked.append(action)
        ranked = rank(ranked)

        stay_options = [vector.lurk] + ([vector.burrow] if agent.burrow_available else [])
        danger_stay = min(stay_options)
        immune_safe = event_id is not None and self.danger.is_neutralized_by_immunity(event_id, ctx)
        terminal = event_id is not None and self.danger.is_terminal_escalation(event_id, ctx)
        safe_max = float(self.cfg('safe_danger_max', SAFE_DANGER_MAX))
        safe_now = immune_safe or vector.lurk <= safe_max

        end_pressure = terminal or self._end_pressure(state, ctx)
        pressure_next = update_dash_pressure(
            agent.dash_pressure, safe_now, vector.lurk, end_pressure,
            safe_decay=float(self.cfg('dash_pressure_safe_decay', DASH_PRESSURE_SAFE_DECAY)),
            unsafe_gain_max=float(self.cfg('dash_pressure_unsafe_gain_max', DASH_PRESSURE_UNSAFE_GAIN_MAX)),
            end_boost=float(self.cfg('dash_pressure_end_boost', DASH_PRESSURE_END_BOOST)),
        )

        def outcome(choice: Choice, reason: DecisionReason, follow_target: Optional[str] = None) -> DecisionOutcome:
            result = DecisionOutcome(
                decision=choice,
                reason=reason,
                utility=0.0,
                ranked=ranked,
                intel=intel,
                event_id=event_id,
                danger=vector,
                danger_stay=danger_stay,
                dash_pressure_next=pressure_next,
                follow_target=follow_target,
            )
            result.utility = result.utility_of(choice)
            self.logger.debug(f"🦊 {agent.id}: {choice.value} ({reason.value}) event={event_id} "
                              f"mode={intel.mode.value} conf={intel.confidence:.2f} "
                              f"stay={danger_stay:.1f} u={result.utility:.2f}")
            return result

        # 1. Forced stay
        if ctx.forced_stay:
            return outcome(Choice.LURK, DecisionReason.FORCED)

        # 2. Terminal escalation: everyone still in the yard is caught
        if terminal:
            return outcome(Choice.DASH, DecisionReason.TERMINAL_ESCALATION)

        # 3. Follow binding
        target_id = state.flags.follow_tail.get(agent.id)
        if follow and target_id and target_id != agent.id:
            target = state.agent(target_id)
            if target is not None and target.in_yard:
                copied = self.evaluate(target, state, follow=False).decision
                if copied == Choice.BURROW and not agent.burrow_available:
                    copied = Choice.DASH
                return outcome(copied, DecisionReason.FOLLOW, follow_target=target_id)

        # 4. No identity for the next event
        if event_id is None:
            threshold = float(self.cfg('dash_pressure_base', DASH_PRESSURE_BASE)) + min(
                int(self.cfg('dashers_bonus_cap', DASHERS_BONUS_CAP)), self.observed_dashers(agent, state))
            if agent.dash_pressure >= threshold:
                if agent.burrow_available:
                    return outcome(Choice.BURROW, DecisionReason.PRESSURE_BURROW)
                return outcome(Choice.DASH, DecisionReason.PRESSURE_DASH)
            return outcome(Choice.LURK, DecisionReason.NO_INTEL)

        # 5. Safe to stay
        if safe_now:
            return outcome(Choice.LURK, DecisionReason.SAFE)

        # 6. Unsafe
        if agent.burrow_available:
            return outcome(Choice.BURROW, DecisionReason.DANGER_PREFER_BURROW)
        return outcome(Choice.DASH, DecisionReason.DANGER_FORCED_DASH)

    def _end_pressure(self, state: SharedState, ctx: AgentContext) -> bool:
        """Peek blocked and the terminal rooster is likely next"""
        if not state.flags.peek_blocked:
            return False
        terminal_count = int(self.config.get('danger', 'escalation_terminal_count', 3))
        if ctx.escalation_seen < terminal_count - 1:
            return False
        p_terminal = self.danger.escalation_probability(events_in_bag(state))
        return p_terminal >= float(self.cfg('end_pressure_probability', END_PRESSURE_PROBABILITY))

    def baseline_utilities(self, state: SharedState) -> Dict[str, float]:
        """Decision utility for every in-yard agent"""
        return {a.id: self.evaluate(a, state).utility for a in state.in_yard_agents()}
