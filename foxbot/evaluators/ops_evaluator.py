"""
Ops Evaluator

Handles the OPS phase: PASS, play one action card, or play two in sequence.

Every candidate play is applied to a deep copy of the state and the
Decision Evaluator is re-run for us, our den mates and the opponents:

    delta = d_self + w_team * d_allies - w_deny * d_opponents

Randomized effects are averaged over seeded samples and discounted.
Two-card sequences score the second card against the state the first card
left behind, plus the combo matrix synergy for the ordered pair. After a
randomized first card the second is averaged over the sampled outcomes.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .base import ActionType, EvaluatedAction, EvaluationResult, PhaseEvaluator, rank
from .decision_evaluator import DecisionEvaluator, DecisionOutcome
from .move_evaluator import action_tag_value
from ..card_effects import EffectKind, EffectRegistry, TargetRule
from ..combo_matrix import ComboContext, ComboMatrix, get_combo_matrix
from ..danger import AgentContext, events_in_bag
from ..models import Agent, CardPlay, Choice, Intel, SharedState
from ..rules_catalog import APPLIES_LEAD, CATEGORY_CHARGE, CATEGORY_DEN, RulesCatalog
from ..sampling import EffectSampler
from ..strategy_config import StrategyConfig

logger = logging.getLogger(__name__)

# Utility weights (fallbacks for the 'utility' config section)
W_TEAM = 0.6
W_DENY = 0.8
W_COMBO = 1.0

# Sampling
RANDOM_EFFECT_SAMPLES = 6
RANDOM_EFFECT_OPTIMISM = 0.55
UNIMPLEMENTED_MULT = 0.15

# Spend cost and combo setup, per game stage
SPEND_COST_BASE = 0.4
SPEND_COST_STAGE_MULT = {"early": 1.05, "mid": 1.0, "late": 0.8}
COMBO_SETUP_BONUS_SCALE = 0.1
COMBO_SETUP_STAGE_MULT = {"early": 0.55, "mid": 0.8, "late": 1.0}
EARLY_ROUNDS = 2
LATE_REMAINING_EVENTS = 3
MIN_FUTURE_CARD_VALUE = 0.4

# Interaction cards
MULTIPLAYER_BONUS_BASE = 0.55
MULTIPLAYER_SOLO_PENALTY = 0.75
MULTIPLAYER_ACTIONS = ["HOLD_STILL", "SCATTER", "MASK_SWAP", "ALPHA_CALL", "NO_GO_ZONE"]

# Play thresholds
THREAT_DANGER_TRIGGER = 5.0
THREAT_PLAY_BOOST = 0.6
MIN_ADVANTAGE = 1.0

# Combo search bounds
COMBO_TOP_K = 6
COMBO_MAX_PAIRS = 20
COMBO_MIN_GAIN = 0.0              # floor on top of the 2-card spend cost

# Repeat plays: same card earlier this round, twice in the recent window,
# or the last two plays already this card
DUP_ROUND_PENALTY = 0.75
DUP_WINDOW_PENALTY = 0.5
DUP_TRIPLE_PENALTY = 2.0
DUP_PRIMED_FACTOR = 0.5
COMBO_PRIMED_THRESHOLD = 8.0

# Play style per den colour: weights around 1.0 on the action tag dimensions
STYLE_SCALE = 0.1
DEFAULT_STYLE = "BLUE"
STYLE_PRESETS = {
    "RED": {"risk": 0.9, "loot": 1.0, "info": 0.8, "control": 0.9, "tempo": 1.0},
    "BLUE": {"risk": 1.1, "loot": 0.9, "info": 1.0, "control": 1.0, "tempo": 0.9},
    "GREEN": {"risk": 1.2, "loot": 0.9, "info": 0.9, "control": 1.0, "tempo": 0.8},
    "YELLOW": {"risk": 1.0, "loot": 1.0, "info": 1.1, "control": 0.9, "tempo": 1.0},
}
STYLE_TAG_DIMS = {
    "INFO": {"info": 6},
    "PEEK_DECISION": {"info": 5},
    "PREDICT_EVENT": {"info": 4},
    "TRACK_MANIP": {"control": 6},
    "SWAP_MANUAL": {"control": 7},
    "SWAP_RANDOM": {"control": 4},
    "LOCK_EVENTS": {"control": 4},
    "BLOCK_SCOUT": {"control": 5},
    "BLOCK_SCOUT_POS": {"control": 4},
    "DEN_IMMUNITY": {"risk": -6, "control": 2},
    "LOCK_OPS": {"control": 5, "tempo": 2},
    "COPY_DECISION_LATER": {"info": 2, "control": 2, "risk": 2},
    "SET_LEAD": {"control": 4},
    "DISCARD_SWAP": {"control": 3, "info": 2, "tempo": 1},
}

FOLLOW_CARRY_WEIGHT = 0.25

PASS_ID = "PASS"


@dataclass
class ScoredPlay:
    """One legal single play with its simulated value"""
    play: CardPlay
    delta: float                    # utility change vs. passing
    adjusted: float                 # delta + setup bonus + style - repeat penalty - spend cost
    setup_bonus: float = 0.0
    spend_cost: float = 0.0
    style: float = 0.0
    repeat_penalty: float = 0.0
    action: Optional[EvaluatedAction] = None


@dataclass
class OpsStage:
    name: str                       # early / mid / late
    spend_mult: float
    setup_mult: float


@dataclass
class OpsContext:
    """Per-call values shared by every candidate"""
    agent: Agent
    state: SharedState
    intel: Intel
    stage: OpsStage
    allies: List[str] = field(default_factory=list)
    opponents: List[str] = field(default_factory=list)
    future_card_value: float = MIN_FUTURE_CARD_VALUE
    combo: ComboContext = field(default_factory=ComboContext)
    primed_pair: Tuple[str, ...] = ()   # best hand pair when it reaches the primed threshold


class OpsEvaluator(PhaseEvaluator):
    """
    Evaluates OPS options.

    Considers:
    - Urgent defense (own den immunity before a hit we would take)
    - Simulated utility change of each legal single play
    - Two-card sequences ranked by simulation plus combo synergy
    - Opportunity cost of spending cards, scaled by game stage
    - Den play style and repeat plays of the same card
    """

    section = 'ops'

    def __init__(self, catalog: Optional[RulesCatalog] = None, config: Optional[StrategyConfig] = None,
                 decision: Optional[DecisionEvaluator] = None, combos: Optional[ComboMatrix] = None):
        super().__init__("Ops", catalog, config)
        self.decision = decision or DecisionEvaluator(self.catalog, self.config)
        self.resolver = self.decision.resolver
        self.danger = self.decision.danger
        self.effects = EffectRegistry(self.catalog)
        self.combos = combos or get_combo_matrix(self.config.get_section('combo'))
        self.sampler = EffectSampler(
            n_samples=int(self.cfg('random_effect_samples', RANDOM_EFFECT_SAMPLES)),
            optimism=float(self.cfg('random_effect_optimism', RANDOM_EFFECT_OPTIMISM)),
        )

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    def evaluate(self, agent: Agent, state: SharedState) -> EvaluationResult:
        if state.flags.ops_locked:
            self.logger.debug(f"{agent.id}: ops locked this round")
            return self._pass_result(reason="OPS_LOCKED", no_candidates=True)
        if not agent.hand:
            return self._pass_result(reason="EMPTY_HAND", no_candidates=True)

        intel = self.resolver.resolve(agent, state)

        urgent = self._urgent_defense(agent, state, intel)
        if urgent is not None:
            self.logger.info(f"🛡️  {agent.id} OPS: {urgent.action_id} (urgent defense vs {intel.next_event})")
            return EvaluationResult(phase="OPS", best=urgent, ranked=[urgent],
                                    meta={'reason': 'URGENT_DEFENSE', 'intel': intel})

        ctx = self._build_context(agent, state, intel)
        candidates = self.candidate_plays(agent, state, intel)
        if not candidates:
            self.logger.debug(f"{agent.id}: no legal action plays")
            return self._pass_result(reason="NO_LEGAL_PLAYS", no_candidates=True, intel=intel)

        baseline = self._outcomes(state)
        scored = [self._score_single(ctx, play, baseline) for play in candidates]
        scored.sort(key=lambda s: s.adjusted, reverse=True)
        for s in scored:
            self.log_evaluation(s.action)

        combos = self._search_combos(ctx, scored)

        pass_action = self._pass_action()
        threat = self._threat_mode(agent, state, intel)
        required = float(self.cfg('min_advantage', MIN_ADVANTAGE))
        if threat:
            required = max(0.0, required - float(self.cfg('threat_play_boost', THREAT_PLAY_BOOST)))
            pass_action.add_reasoning("Threat mode: lower bar to play")

        best = pass_action
        reason = "PASS"
        best_single = scored[0]
        if best_single.adjusted >= pass_action.score + required:
            best = best_single.action
            reason = "BEST_SINGLE"

        if combos:
            top_combo = combos[0]
            if (self.prefers_combo(ctx, top_combo.score, best_single.adjusted)
                    and top_combo.score >= pass_action.score + required):
                best = top_combo
                reason = "BEST_COMBO"

        if best is pass_action and bool(self.cfg('never_pass', False)):
            best = best_single.action
            reason = "NEVER_PASS"

        ranked = rank([pass_action] + [s.action for s in scored] + combos)
        self.logger.info(f"🃏 {agent.id} OPS: {best.display_text or best.action_id} ({best.score:.2f}, {reason})")
        return EvaluationResult(
            phase="OPS",
            best=best,
            ranked=ranked,
            meta={'reason': reason, 'stage': ctx.stage.name, 'threat_mode': threat,
                  'required_gain': required, 'intel': intel},
        )

    # ------------------------------------------------------------------
    # PASS / urgent defense
    # ------------------------------------------------------------------

    @staticmethod
    def _pass_action() -> EvaluatedAction:
        return EvaluatedAction(action_id=PASS_ID, action_type=ActionType.PASS, score=0.0, display_text="PASS")

    def _pass_result(self, reason: str, no_candidates: bool = False,
                     intel: Optional[Intel] = None) -> EvaluationResult:
        action = self._pass_action()
        action.add_reasoning(reason)
        meta = {'reason': reason}
        if intel is not None:
            meta['intel'] = intel
        return EvaluationResult(phase="OPS", best=action, ranked=[action],
                                no_candidates=no_candidates, meta=meta)

    def _urgent_defense(self, agent: Agent, state: SharedState, intel: Intel) -> Optional[EvaluatedAction]:
        """Immunity card in hand and the next event would hit our den"""
        if state.flags.is_immune(agent.den_color):
            return None
        facts = self.catalog.facts_for_event(intel.next_event)
        if facts is None:
            return None
        hits_us = facts.category == CATEGORY_CHARGE or (
            facts.category == CATEGORY_DEN and facts.den_color == agent.den_color)
        if not hits_us:
            return None

        for action_id in self.catalog.actions_with_effect(EffectKind.GRANT_IMMUNITY.value):
            if action_id not in agent.hand:
                continue
            play = CardPlay(action_id)
            if not self.effects.is_legal(state, agent.id, play):
                continue
            action = EvaluatedAction(
                action_id=action_id,
                action_type=ActionType.PLAY_CARD,
                score=0.0,
                display_text=play.label(),
                plays=[play],
            )
            action.add_reasoning(f"Urgent defense: {facts.event_id} would catch {agent.den_color or 'us'}")
            return action
        return None

    def _threat_mode(self, agent: Agent, state: SharedState, intel: Intel) -> bool:
        if not intel.next_event:
            return False
        ctx = AgentContext.for_agent(agent, state)
        lurk = self.danger.danger_for(intel.next_event, Choice.LURK, ctx)
        if lurk >= float(self.cfg('threat_danger_trigger', THREAT_DANGER_TRIGGER)):
            return True
        facts = self.catalog.facts_for_event(intel.next_event)
        return facts is not None and facts.applies_to == APPLIES_LEAD and ctx.is_lead

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def stage_of(self, state: SharedState) -> OpsStage:
        """early in the first rounds, late when few events remain, mid otherwise"""
        if state.round <= int(self.cfg('early_rounds', EARLY_ROUNDS)):
            name = "early"
        elif len(state.event_sequence) <= int(self.cfg('late_remaining_events', LATE_REMAINING_EVENTS)):
            name = "late"
        else:
            name = "mid"
        spend = self.cfg('spend_cost_stage_mult', SPEND_COST_STAGE_MULT)
        setup = self.cfg('combo_setup_stage_mult', COMBO_SETUP_STAGE_MULT)
        return OpsStage(name, float(spend.get(name, 1.0)), float(setup.get(name, 1.0)))

    def _build_context(self, agent: Agent, state: SharedState, intel: Intel) -> OpsContext:
        actx = AgentContext.for_agent(agent, state)
        next_peak = self.danger.peak_danger(intel.next_event, actx) if intel.next_event else 0.0
        opponents = state.opponents_of(agent)
        richest = max((o.carried_value for o in opponents), default=0.0)
        order = state.ops_turn_order

        combo_ctx = ComboContext(
            next_known=intel.is_known,
            known_upcoming=list(agent.known_upcoming),
            next_peak_danger=next_peak,
            lock_events_active=state.flags.lock_events,
            ops_locked_active=state.flags.ops_locked,
            discard_action_ids=list(state.action_discard),
            is_last=bool(order) and order[-1] == agent.id,
            score_behind=max(0.0, richest - agent.carried_value),
        )
        return OpsContext(
            agent=agent,
            state=state,
            intel=intel,
            stage=self.stage_of(state),
            allies=[a.id for a in state.allies_of(agent)],
            opponents=[o.id for o in opponents],
            future_card_value=self._future_card_value(state, intel, next_peak),
            combo=combo_ctx,
            primed_pair=self._primed_pair(agent.hand, combo_ctx),
        )

    def _primed_pair(self, hand: List[str], combo_ctx: ComboContext) -> Tuple[str, ...]:
        ids = list(dict.fromkeys(hand))
        best_pair: Tuple[str, ...] = ()
        best_score = None
        for a in ids:
            for b in ids:
                if a == b:
                    continue
                s = self.combos.score(a, b, combo_ctx)
                if best_score is None or s > best_score:
                    best_pair, best_score = (a, b), s
        if best_score is None or best_score < float(self.cfg('combo_primed_threshold', COMBO_PRIMED_THRESHOLD)):
            return ()
        return best_pair

    def _future_card_value(self, state: SharedState, intel: Intel, danger_next: float) -> float:
        """Average worth of a card we could draw later, for the spend cost"""
        move_cfg = self.config.get_section('move')
        sample_n = max(1, int(move_cfg.get('action_deck_sample_n', 30)))
        sample = state.action_deck[-sample_n:]
        if not sample:
            return MIN_FUTURE_CARD_VALUE
        values = [action_tag_value(self.catalog.facts_for_action(a), intel, danger_next,
                                   tag_values=move_cfg.get('tag_values'),
                                   high_danger_min=self.danger.high_danger_min)
                  for a in sample]
        return max(MIN_FUTURE_CARD_VALUE, float(np.mean(values)))

    def spend_cost(self, ctx: OpsContext, n_cards: int) -> float:
        base = float(self.cfg('spend_cost_base', SPEND_COST_BASE))
        return base * ctx.future_card_value * ctx.stage.spend_mult * n_cards

    def combo_margin(self, ctx: OpsContext) -> float:
        """How far a two-card play must beat the best single: the 2-card spend cost plus a floor"""
        return self.spend_cost(ctx, 2) + float(self.cfg('combo_min_gain', COMBO_MIN_GAIN))

    def prefers_combo(self, ctx: OpsContext, combo_score: float, single_score: float) -> bool:
        return combo_score >= single_score + self.combo_margin(ctx)

    def style_adjustment(self, agent: Agent, action_id: str) -> float:
        """
        Den play style: each action tag carries weights on risk / loot / info /
        control / tempo, and the preset for the agent's den tilts them around 1.0.
        Risk counts against the card, every other dimension for it.
        """
        presets = self.cfg('style_presets', STYLE_PRESETS)
        preset = presets.get(agent.den_color) or presets.get(self.cfg('default_style', DEFAULT_STYLE), {})
        facts = self.catalog.facts_for_action(action_id)
        if facts is None or not preset:
            return 0.0
        tag_dims = self.cfg('style_tag_dims', STYLE_TAG_DIMS)
        total = 0.0
        for tag in facts.tags:
            for dim, value in tag_dims.get(tag, {}).items():
                sign = -1.0 if dim == "risk" else 1.0
                total += sign * float(value) * (float(preset.get(dim, 1.0)) - 1.0)
        return float(self.cfg('style_scale', STYLE_SCALE)) * total

    def duplicate_penalty(self, ctx: OpsContext, action_id: str) -> float:
        """Cost of playing a card again soon after it was last played"""
        state = ctx.state
        penalty = 0.0
        if action_id in state.discard_this_round:
            penalty += abs(float(self.cfg('dup_round_penalty', DUP_ROUND_PENALTY)))
        recent = state.discard_recent
        if recent.count(action_id) >= 2:
            penalty += abs(float(self.cfg('dup_window_penalty', DUP_WINDOW_PENALTY)))
        if recent[-2:] == [action_id, action_id]:
            penalty += abs(float(self.cfg('dup_triple_penalty', DUP_TRIPLE_PENALTY)))
        if penalty and action_id in ctx.primed_pair:
            factor = min(1.0, max(0.0, float(self.cfg('dup_primed_factor', DUP_PRIMED_FACTOR))))
            penalty *= factor
        return penalty

    # ------------------------------------------------------------------
    # Candidates and targets
    # ------------------------------------------------------------------

    def candidate_plays(self, agent: Agent, state: SharedState, intel: Intel) -> List[CardPlay]:
        """One legal play per distinct card in hand, with its chosen target"""
        plays = []
        seen = set()
        for action_id in agent.hand:
            if action_id in seen:
                continue
            seen.add(action_id)
            play = self.choose_play(agent, state, intel, action_id)
            if play is None:
                self.logger.debug(f"  {action_id}: no legal play")
                continue
            plays.append(play)
        return plays

    def choose_play(self, agent: Agent, state: SharedState, intel: Intel, action_id: str) -> Optional[CardPlay]:
        effect = self.effects.effect_for(action_id)

        if effect.kind == EffectKind.PREDICT:
            guess = intel.next_event or self._likeliest_event(state)
            play = CardPlay(action_id, payload=guess)
            return play if self.effects.is_legal(state, agent.id, play) else None

        if effect.target == TargetRule.NONE:
            play = CardPlay(action_id)
            return play if self.effects.is_legal(state, agent.id, play) else None

        for target in self.target_preference(agent, state, effect.kind):
            play = CardPlay(action_id, target_id=target.id)
            if self.effects.is_legal(state, agent.id, play):
                return play
        return None

    def target_preference(self, agent: Agent, state: SharedState, kind: EffectKind) -> List[Agent]:
        """Targets in order of preference for an effect kind"""
        others = [a for a in state.in_yard_agents() if a.id != agent.id]
        opponents = sorted(state.opponents_of(agent), key=lambda a: a.carried_value, reverse=True)
        richest_others = sorted(others, key=lambda a: a.carried_value, reverse=True)

        if kind in (EffectKind.SWAP_COLORS, EffectKind.HOLD_STILL):
            return opponents
        if kind == EffectKind.SCENT_CHECK:
            return sorted(others, key=lambda a: (len(a.known_upcoming), a.carried_value), reverse=True)
        if kind == EffectKind.FOLLOW:
            return self._safest_targets(state, others)
        if kind == EffectKind.SET_LEAD:
            rest = [a for a in richest_others if a not in opponents]
            return opponents + rest
        return richest_others

    def _safest_targets(self, state: SharedState, others: List[Agent]) -> List[Agent]:
        def safety(target: Agent) -> float:
            outcome = self.decision.evaluate(target, state, follow=False)
            danger = outcome.danger.get(outcome.decision) if outcome.danger else 0.0
            return -danger + FOLLOW_CARRY_WEIGHT * target.carried_value

        return sorted(others, key=safety, reverse=True)

    @staticmethod
    def _likeliest_event(state: SharedState) -> Optional[str]:
        bag = events_in_bag(state)
        if not bag:
            return None
        return Counter(bag).most_common(1)[0][0]

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def _outcomes(self, state: SharedState) -> Dict[str, DecisionOutcome]:
        return {a.id: self.decision.evaluate(a, state) for a in state.in_yard_agents()}

    def _team_delta(self, ctx: OpsContext, before: Dict[str, DecisionOutcome], after: SharedState) -> float:
        after_outcomes = self._outcomes(after)

        def delta(agent_id: str) -> float:
            if agent_id not in before or agent_id not in after_outcomes:
                return 0.0
            return after_outcomes[agent_id].utility - before[agent_id].utility

        d_self = delta(ctx.agent.id)
        d_allies = sum(delta(a) for a in ctx.allies)
        d_opps = sum(delta(o) for o in ctx.opponents)
        w_team = self.weight('w_team', W_TEAM)
        w_deny = self.weight('w_deny', W_DENY)
        return d_self + w_team * d_allies - w_deny * d_opps

    def play_delta(self, ctx: OpsContext, state: SharedState, play: CardPlay,
                   baseline: Optional[Dict[str, DecisionOutcome]] = None) -> Tuple[float, List[str]]:
        """
        Utility change from making `play` on `state`, before costs.

        Returns the delta and the reasoning notes that shaped it.
        """
        notes = []
        baseline = baseline if baseline is not None else self._outcomes(state)
        effect = self.effects.effect_for(play.action_id)

        if effect.randomized:
            tag = f"{state.game_id}|{state.round}|{ctx.agent.id}|{play.label()}"
            result = self.sampler.expectation(
                lambda rng: self._team_delta(ctx, baseline, self.effects.simulate(state, ctx.agent.id, play, rng)),
                tag,
            )
            value = result.discounted
            notes.append(f"Random effect: mean {result.mean:+.2f} over {len(result.samples)} x {result.optimism:.2f}")
        else:
            sim = self.effects.simulate(state, ctx.agent.id, play)
            value = self._team_delta(ctx, baseline, sim)

        facts = self.catalog.facts_for_action(play.action_id)
        if facts is None or not facts.implemented:
            mult = float(self.cfg('unimplemented_mult', UNIMPLEMENTED_MULT))
            value *= mult
            notes.append(f"Effect not implemented (x{mult:.2f})")

        if play.action_id in self.cfg('multiplayer_actions', MULTIPLAYER_ACTIONS):
            bonus = self._multiplayer_bonus(ctx.agent, state)
            value += bonus
            notes.append(f"Interaction value {bonus:+.2f}")
        return value, notes

    def _multiplayer_bonus(self, agent: Agent, state: SharedState) -> float:
        """More foxes in the yard and more of them still to act make interaction cards worth more"""
        n = len(state.in_yard_agents())
        order = state.ops_turn_order
        remaining = len(order) - order.index(agent.id) - 1 if agent.id in order else 0
        presence = max(0.0, min(1.0, (n - 1) / 3.0))
        rem = max(0.0, min(1.0, remaining / 3.0))
        bonus = float(self.cfg('multiplayer_bonus_base', MULTIPLAYER_BONUS_BASE)) * presence * (0.5 + 0.5 * rem)
        if n <= 1:
            bonus -= float(self.cfg('multiplayer_solo_penalty', MULTIPLAYER_SOLO_PENALTY))
        return bonus

    def _setup_bonus(self, ctx: OpsContext, play: CardPlay) -> float:
        hand = ctx.agent.hand
        if len(hand) < 2:
            return 0.0
        partners = [a for a in hand if a != play.action_id]
        out = self.combos.best_outgoing(play.action_id, partners, ctx.combo)
        if out <= 0:
            return 0.0
        return float(self.cfg('combo_setup_bonus_scale', COMBO_SETUP_BONUS_SCALE)) * out * ctx.stage.setup_mult

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def _score_single(self, ctx: OpsContext, play: CardPlay,
                      baseline: Dict[str, DecisionOutcome]) -> ScoredPlay:
        delta, notes = self.play_delta(ctx, ctx.state, play, baseline)
        setup = self._setup_bonus(ctx, play)
        cost = self.spend_cost(ctx, 1)

        action = EvaluatedAction(
            action_id=play.action_id,
            action_type=ActionType.PLAY_CARD,
            score=0.0,
            display_text=play.label(),
            plays=[play],
        )
        action.add_reasoning("Simulated utility change", delta)
        for note in notes:
            action.add_reasoning(note)
        if setup:
            action.add_reasoning("Sets up a combo", setup)
        style = self.style_adjustment(ctx.agent, play.action_id)
        if style:
            action.add_reasoning(f"Play style ({ctx.agent.den_color or 'default'})", style)
        repeat = self.duplicate_penalty(ctx, play.action_id)
        if repeat:
            action.add_reasoning("Played again too soon", -repeat)
        action.add_reasoning(f"Spend cost ({ctx.stage.name})", -cost)
        return ScoredPlay(play=play, delta=delta, adjusted=action.score, setup_bonus=setup,
                          spend_cost=cost, style=style, repeat_penalty=repeat, action=action)

    def _search_combos(self, ctx: OpsContext, scored: List[ScoredPlay]) -> List[EvaluatedAction]:
        """
        Bounded 2-card search: the top-K singles as openers, any other single
        as follow-up, at most combo_max_pairs pairs.
        """
        if len(scored) < 2:
            return []
        top_k = min(int(self.cfg('combo_top_k', COMBO_TOP_K)), len(scored))
        max_pairs = max(1, int(self.cfg('combo_max_pairs', COMBO_MAX_PAIRS)))

        pairs: List[Tuple[ScoredPlay, ScoredPlay]] = []
        for i in range(top_k):
            for j in range(len(scored)):
                if i == j or scored[i].play.action_id == scored[j].play.action_id:
                    continue
                pairs.append((scored[i], scored[j]))
                if len(pairs) >= max_pairs:
                    break
            if len(pairs) >= max_pairs:
                break

        w_combo = self.weight('w_combo', W_COMBO)
        results = []
        for first, second in pairs:
            follow_up = self._follow_up_delta(ctx, first.play, second.play)
            if follow_up is None:
                continue
            second_delta, notes = follow_up
            synergy = self.combos.score(first.play.action_id, second.play.action_id, ctx.combo)

            action = EvaluatedAction(
                action_id=f"{first.play.action_id}+{second.play.action_id}",
                action_type=ActionType.COMBO,
                score=0.0,
                display_text=f"{first.play.label()} then {second.play.label()}",
                plays=[first.play, second.play],
            )
            action.add_reasoning(f"{first.play.action_id} alone", first.delta)
            action.add_reasoning(f"{second.play.action_id} after it", second_delta)
            for note in notes:
                action.add_reasoning(note)
            if synergy:
                action.add_reasoning("Combo synergy", w_combo * synergy)
            adjust = first.style + second.style - first.repeat_penalty - second.repeat_penalty
            if adjust:
                action.add_reasoning("Play style and repeat plays", adjust)
            action.add_reasoning("Spend cost (2 cards)", -self.spend_cost(ctx, 2))
            self.log_evaluation(action)
            results.append(action)

        return rank(results)

    def _follow_up_delta(self, ctx: OpsContext, first: CardPlay,
                         second: CardPlay) -> Optional[Tuple[float, List[str]]]:
        """
        Value of `second` played right after `first`.

        A randomized opener is averaged over the sampled states it can leave
        behind; a sample where `second` is illegal counts as 0. Returns None
        when `second` cannot be played after `first` at all.
        """
        if not self.effects.effect_for(first.action_id).randomized:
            after_first = self.effects.simulate(ctx.state, ctx.agent.id, first)
            if not self.effects.is_legal(after_first, ctx.agent.id, second):
                return None
            return self.play_delta(ctx, after_first, second)

        legal = []

        def sampled(rng) -> float:
            after_first = self.effects.simulate(ctx.state, ctx.agent.id, first, rng)
            if not self.effects.is_legal(after_first, ctx.agent.id, second):
                return 0.0
            legal.append(True)
            value, _ = self.play_delta(ctx, after_first, second)
            return value

        tag = f"{ctx.state.game_id}|{ctx.state.round}|{ctx.agent.id}|combo|{first.label()}|{second.label()}"
        result = self.sampler.expectation(sampled, tag)
        if not legal:
            return None
        return result.discounted, [f"Follow-up over {len(result.samples)} outcomes of "
                                   f"{first.action_id}: mean {result.mean:+.2f}"]
