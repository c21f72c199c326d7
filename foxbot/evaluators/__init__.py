"""
Evaluator System for Decision Making

One evaluator per game phase. Each scores the options open to an agent
against the current snapshot and returns them ranked, with reasoning.
"""

from .base import ActionType, EvaluatedAction, EvaluationResult, PhaseEvaluator
from .decision_evaluator import DecisionEvaluator, DecisionOutcome
from .move_evaluator import MoveEvaluator
from .ops_evaluator import OpsEvaluator

__all__ = [
    'ActionType',
    'EvaluatedAction',
    'EvaluationResult',
    'PhaseEvaluator',
    'DecisionEvaluator',
    'DecisionOutcome',
    'MoveEvaluator',
    'OpsEvaluator',
]
