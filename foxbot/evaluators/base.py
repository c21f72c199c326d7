"""
Base Classes for Evaluator System

Defines the core architecture for scoring options and making decisions.
Each phase evaluator turns (agent, state) into a ranked list of
EvaluatedAction objects, each carrying a utility score and the reasoning
that produced it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from enum import Enum
import logging

from ..models import Agent, CardPlay, SharedState
from ..rules_catalog import RulesCatalog, get_catalog
from ..strategy_config import StrategyConfig, get_config

logger = logging.getLogger(__name__)


class ActionType(Enum):
    """Kinds of options the bot can choose"""
    MOVE = "move"
    PASS = "pass"
    PLAY_CARD = "play_card"
    COMBO = "combo"
    DECISION = "decision"


@dataclass
class EvaluatedAction:
    """
    An option that has been scored by an evaluator.

    Represents a possible choice with:
    - The option to take (move name, action id, decision)
    - Score (higher = better)
    - Reasoning (for debugging/logging)
    """
    action_id: str
    action_type: ActionType
    score: float  # Higher = better
    reasoning: List[str] = field(default_factory=list)  # Why this score?

    # Optional metadata
    display_text: str = ""
    plays: List[CardPlay] = field(default_factory=list)   # OPS: the card(s) to play
    available: bool = True
    meta: Dict[str, Any] = field(default_factory=dict)

    def add_reasoning(self, reason: str, score_delta: float = 0.0):
        """Add reasoning with optional score adjustment"""
        if score_delta != 0:
            self.reasoning.append(f"{reason} ({score_delta:+.1f})")
            self.score += score_delta
        else:
            self.reasoning.append(reason)

    def __repr__(self):
        return f"EvaluatedAction(id={self.action_id}, score={self.score:.1f}, {self.display_text})"


@dataclass
class EvaluationResult:
    """
    What an entry point returns.

    `best` is None only together with no_candidates=True; the caller then
    applies its own safe default.
    """
    phase: str
    best: Optional[EvaluatedAction]
    ranked: List[EvaluatedAction] = field(default_factory=list)
    no_candidates: bool = False
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls, phase: str, reason: str) -> 'EvaluationResult':
        return cls(phase=phase, best=None, ranked=[], no_candidates=True, meta={'reason': reason})

    def to_dict(self) -> Dict[str, Any]:
        def _action(a: EvaluatedAction) -> Dict[str, Any]:
            return {
                'id': a.action_id,
                'type': a.action_type.value,
                'score': round(a.score, 3),
                'available': a.available,
                'plays': [{'action_id': p.action_id, 'target_id': p.target_id, 'payload': p.payload}
                          for p in a.plays],
                'reasoning': list(a.reasoning),
            }

        meta = {}
        for key, value in self.meta.items():
            meta[key] = value.to_dict() if hasattr(value, 'to_dict') else value
        return {
            'phase': self.phase,
            'best': _action(self.best) if self.best else None,
            'ranked': [_action(a) for a in self.ranked],
            'no_candidates': self.no_candidates,
            'meta': meta,
        }


class PhaseEvaluator(ABC):
    """
    Base class for phase evaluators.

    Each evaluator implements the scoring for one game phase. Thresholds
    come from its config section; the module-level constants are fallbacks.
    """

    section = ""

    def __init__(self, name: str, catalog: Optional[RulesCatalog] = None,
                 config: Optional[StrategyConfig] = None):
        self.name = name
        self.enabled = True
        self.catalog = catalog or get_catalog()
        self.config = config or get_config()
        self.logger = logging.getLogger(f"{__name__}.{name}")

    def cfg(self, key: str, default):
        """Value from this evaluator's config section"""
        return self.config.get(self.section, key, default)

    def weight(self, key: str, default: float) -> float:
        return self.config.get_weight(key, default)

    @abstractmethod
    def evaluate(self, agent: Agent, state: SharedState) -> Any:
        """
        Score the options available to `agent` in `state`.

        Args:
            agent: The agent being evaluated (an object inside `state`)
            state: Normalized snapshot
        """
        pass

    def log_evaluation(self, action: EvaluatedAction):
        """Log evaluation for debugging"""
        reasons = " | ".join(action.reasoning)
        self.logger.debug(f"  [{self.name}] {action.display_text or action.action_id}: "
                          f"{action.score:.2f} - {reasons}")


def rank(actions: List[EvaluatedAction]) -> List[EvaluatedAction]:
    """Sort by score, highest first (stable for ties)"""
    return sorted(actions, key=lambda a: a.score, reverse=True)
