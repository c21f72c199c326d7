"""
Policy entry points.

Four calls a host makes for a bot: evaluate_move, evaluate_ops,
evaluate_decision and evaluate_phase (dispatch on the phase name).

Each call normalizes the raw snapshot once, runs one evaluator and returns
an EvaluationResult. The engine never hangs a game: an unknown agent, an
unknown phase or an unexpected error comes back as a result with
no_candidates=True, and the host applies its own safe default (PASS).
"""

import logging
from typing import Callable, Optional

from .evaluators.base import EvaluationResult
from .evaluators.decision_evaluator import DecisionEvaluator
from .evaluators.move_evaluator import MoveEvaluator
from .evaluators.ops_evaluator import OpsEvaluator
from .models import Agent, Phase, SharedState
from .rules_catalog import RulesCatalog, get_catalog
from .state_view import RawState, normalize_state
from .strategy_config import StrategyConfig, get_config

logger = logging.getLogger(__name__)


def _run(phase: str, raw: RawState, agent_id: str, catalog: Optional[RulesCatalog],
         config: Optional[StrategyConfig],
         body: Callable[[Agent, SharedState, RulesCatalog, StrategyConfig], EvaluationResult]) -> EvaluationResult:
    catalog = catalog or get_catalog()
    config = config or get_config()
    try:
        state = normalize_state(raw, catalog)
        agent = state.agent(str(agent_id)) if agent_id is not None else None
        if agent is None:
            logger.warning(f"⚠️  {phase}: agent {agent_id!r} not in snapshot")
            return EvaluationResult.empty(phase, "UNKNOWN_AGENT")
        if not agent.in_yard:
            logger.debug(f"{phase}: {agent.id} is no longer in the yard")
            return EvaluationResult.empty(phase, "NOT_IN_YARD")
        return body(agent, state, catalog, config)
    except Exception as e:
        logger.error(f"❌ Exception evaluating {phase} for {agent_id}: {e}", exc_info=True)
        return EvaluationResult.empty(phase, "ERROR")


def evaluate_move(state: RawState, agent_id: str, catalog: Optional[RulesCatalog] = None,
                  config: Optional[StrategyConfig] = None) -> EvaluationResult:
    """Best MOVE option (SNATCH / FORAGE / SCOUT / SHIFT) for one agent."""
    def body(agent, snapshot, cat, cfg):
        return MoveEvaluator(cat, cfg).evaluate(agent, snapshot)

    return _run("MOVE", state, agent_id, catalog, config, body)


def evaluate_ops(state: RawState, agent_id: str, catalog: Optional[RulesCatalog] = None,
                 config: Optional[StrategyConfig] = None) -> EvaluationResult:
    """PASS, one card or a two-card sequence for one agent."""
    def body(agent, snapshot, cat, cfg):
        return OpsEvaluator(cat, cfg).evaluate(agent, snapshot)

    return _run("OPS", state, agent_id, catalog, config, body)


def evaluate_decision(state: RawState, agent_id: str, catalog: Optional[RulesCatalog] = None,
                      config: Optional[StrategyConfig] = None) -> EvaluationResult:
    """
    DASH / LURK / BURROW for one agent.

    meta carries the rule that fired (`reason`), next round's dash pressure
    and the agent's refreshed intel memory so the host can store them.
    """
    def body(agent, snapshot, cat, cfg):
        outcome = DecisionEvaluator(cat, cfg).evaluate(agent, snapshot)
        best = next((a for a in outcome.ranked if a.action_id == outcome.decision.value), None)
        if best is not None:
            best.add_reasoning(f"Rule: {outcome.reason.value}")
        logger.info(f"🦊 {agent.id} DECISION: {outcome.decision.value} ({outcome.reason.value})")
        return EvaluationResult(
            phase="DECISION",
            best=best,
            ranked=outcome.ranked,
            meta={
                'decision': outcome.decision.value,
                'reason': outcome.reason.value,
                'event_id': outcome.event_id,
                'danger_stay': outcome.danger_stay,
                'dash_pressure_next': outcome.dash_pressure_next,
                'follow_target': outcome.follow_target,
                'intel': outcome.intel,
                'intel_memory': agent.intel_memory,
            },
        )

    return _run("DECISION", state, agent_id, catalog, config, body)


_DISPATCH = {
    Phase.MOVE: evaluate_move,
    Phase.OPS: evaluate_ops,
    Phase.ACTIONS: evaluate_ops,
    Phase.DECISION: evaluate_decision,
}


def evaluate_phase(phase, state: RawState, agent_id: str, catalog: Optional[RulesCatalog] = None,
                   config: Optional[StrategyConfig] = None) -> EvaluationResult:
    """Dispatch on the phase name (MOVE / OPS / ACTIONS / DECISION)."""
    parsed = Phase.parse(phase)
    if parsed is None:
        logger.warning(f"⚠️  Unknown phase {phase!r}")
        return EvaluationResult.empty(str(phase), "UNKNOWN_PHASE")
    return _DISPATCH[parsed](state, agent_id, catalog, config)
