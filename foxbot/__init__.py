"""
foxbot - utility-based bot policy for the Vossenjacht fox raid game.

The host calls one entry point per bot per phase with a state snapshot and
gets back the best option plus the ranked alternatives and their reasoning.
"""

from .policy import evaluate_decision, evaluate_move, evaluate_ops, evaluate_phase

__version__ = "1.0.0"

__all__ = [
    'evaluate_move',
    'evaluate_ops',
    'evaluate_decision',
    'evaluate_phase',
]
