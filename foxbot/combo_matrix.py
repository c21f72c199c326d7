"""
Action Combo Matrix

Directed, sparse synergy scores for playing action card A and then B in
the same OPS turn. Scores depend on how much the player knows about the
upcoming events (the knowledge tier).

This module:
1. Loads combo records and the hard anti-combo list from JSON
2. Resolves the knowledge tier from the OPS context
3. Scores an ordered pair (A -> B); untabulated pairs score 0
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MATRIX_PATH = Path(__file__).parent / "data" / "combo_matrix.json"

# Scoring constants (fallbacks for the 'combo' config section)
BLOCKER_SCORE = -10.0
MINIMAL_SCORE = 1.0
DANGER_BONUS_THRESHOLD = 7.0
DANGER_BONUS = 1.0
CHAOS_BEHIND_THRESHOLD = 6.0
CHAOS_BONUS = 1.0

# requires_not predicates
LOCK_EVENTS_ACTIVE = "LOCK_EVENTS_ACTIVE"
OPS_LOCKED_ACTIVE = "OPS_LOCKED_ACTIVE"


class KnowledgeTier(Enum):
    NO_INTEL = "NO_INTEL"
    PARTIAL_INTEL = "PARTIAL_INTEL"
    FULL_INTEL = "FULL_INTEL"


@dataclass(frozen=True)
class ComboRecord:
    """One forward entry A -> B"""
    a: str
    b: str
    scores: Dict[str, float]
    requires_not: Tuple[str, ...] = ()
    requires_discard_has: Tuple[str, ...] = ()
    notes: str = ""

    def score_for(self, tier: KnowledgeTier) -> float:
        if tier.value in self.scores:
            return float(self.scores[tier.value])
        return float(self.scores.get(KnowledgeTier.NO_INTEL.value, 0.0))


@dataclass
class ComboContext:
    """What the OPS evaluator knows when it asks for a combo score"""
    next_known: bool = False
    known_upcoming: List[str] = field(default_factory=list)
    next_peak_danger: float = 0.0
    lock_events_active: bool = False
    ops_locked_active: bool = False
    discard_action_ids: List[str] = field(default_factory=list)
    is_last: bool = False
    score_behind: float = 0.0

    @property
    def tier(self) -> KnowledgeTier:
        known_n = len(self.known_upcoming)
        if known_n >= 2:
            return KnowledgeTier.FULL_INTEL
        if self.next_known or known_n >= 1:
            return KnowledgeTier.PARTIAL_INTEL
        return KnowledgeTier.NO_INTEL

    def predicate(self, name: str) -> bool:
        if name == LOCK_EVENTS_ACTIVE:
            return self.lock_events_active
        if name == OPS_LOCKED_ACTIVE:
            return self.ops_locked_active
        return False


@dataclass
class AntiCombo:
    a: str
    b: str          # "*" matches any partner
    score: float
    notes: str = ""


class ComboMatrix:
    """
    Sparse A -> B combo table.
    """

    def __init__(self, records: Iterable[ComboRecord] = (), anti_combos: Iterable[AntiCombo] = (),
                 blockers: Iterable[str] = (), danger_partners: Iterable[str] = (),
                 chaos_openers: Iterable[str] = (), blocker_score: float = BLOCKER_SCORE,
                 settings: Optional[Dict] = None):
        self.records: Dict[Tuple[str, str], ComboRecord] = {(r.a, r.b): r for r in records}
        self.anti_combos: List[AntiCombo] = list(anti_combos)
        self.blockers: Set[str] = set(blockers)
        self.danger_partners: Set[str] = set(danger_partners)
        self.chaos_openers: Set[str] = set(chaos_openers)
        self.blocker_score = float(blocker_score)
        settings = settings or {}
        self.minimal_score = float(settings.get('minimal_score', MINIMAL_SCORE))
        self.danger_bonus_threshold = float(settings.get('danger_bonus_threshold', DANGER_BONUS_THRESHOLD))
        self.danger_bonus = float(settings.get('danger_bonus', DANGER_BONUS))
        self.chaos_behind_threshold = float(settings.get('chaos_behind_threshold', CHAOS_BEHIND_THRESHOLD))
        self.chaos_bonus = float(settings.get('chaos_bonus', CHAOS_BONUS))

    @classmethod
    def from_dict(cls, data: dict, settings: Optional[Dict] = None) -> 'ComboMatrix':
        records = []
        for entry in data.get('combos', []):
            a, b = entry.get('a'), entry.get('b')
            if not a or not b:
                logger.warning(f"Skipping combo entry without a/b: {entry}")
                continue
            records.append(ComboRecord(
                a=a,
                b=b,
                scores={k: float(v) for k, v in (entry.get('scores') or {}).items()},
                requires_not=tuple(entry.get('requires_not', [])),
                requires_discard_has=tuple(entry.get('requires_discard_has', [])),
                notes=entry.get('notes', ''),
            ))
        anti = [AntiCombo(e['a'], e.get('b', '*'), float(e.get('score', 0)), e.get('notes', ''))
                for e in data.get('anti_combos', []) if e.get('a')]
        return cls(
            records=records,
            anti_combos=anti,
            blockers=data.get('blockers', []),
            danger_partners=data.get('danger_partners', []),
            chaos_openers=data.get('chaos_openers', []),
            blocker_score=data.get('blocker_score', BLOCKER_SCORE),
            settings=settings,
        )

    @classmethod
    def load(cls, path: Optional[Path] = None, settings: Optional[Dict] = None) -> 'ComboMatrix':
        """Load from JSON; a missing or broken file yields an empty matrix (all scores 0)."""
        path = Path(path) if path else DEFAULT_MATRIX_PATH
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in combo matrix {path}: {e}")
            return cls(settings=settings)
        except OSError as e:
            logger.error(f"Failed to load combo matrix {path}: {e}")
            return cls(settings=settings)

        matrix = cls.from_dict(data, settings)
        logger.info(f"🔗 Loaded combo matrix: {len(matrix.records)} combos, "
                    f"{len(matrix.anti_combos)} anti-combos")
        return matrix

    def has_entry(self, a: str, b: str) -> bool:
        return (a, b) in self.records

    def score(self, a: Optional[str], b: Optional[str], ctx: Optional[ComboContext] = None) -> float:
        """
        Score playing `a` then `b`.

        Order: blocker opener, anti-combo list, forward entry (absent -> 0),
        requires_not (violated -> 0), requires_discard_has (unmet -> minimal
        score), then the tier score plus situational bonuses.
        """
        if not a or not b:
            return 0.0
        ctx = ctx or ComboContext()

        if a in self.blockers:
            return self.blocker_score

        for anti in self.anti_combos:
            if anti.a == a and (anti.b == b or anti.b == "*"):
                return anti.score

        rec = self.records.get((a, b))
        if rec is None:
            return 0.0

        if any(ctx.predicate(p) for p in rec.requires_not):
            return 0.0

        if rec.requires_discard_has and not any(need in ctx.discard_action_ids
                                                for need in rec.requires_discard_has):
            return self.minimal_score

        score = rec.score_for(ctx.tier)

        if ctx.next_peak_danger >= self.danger_bonus_threshold and b in self.danger_partners:
            score += self.danger_bonus

        if (ctx.is_last or ctx.score_behind >= self.chaos_behind_threshold) and a in self.chaos_openers:
            score += self.chaos_bonus

        return score

    def best_outgoing(self, a: str, partners: Iterable[str], ctx: Optional[ComboContext] = None) -> float:
        """Best A -> B score over the given partners (0 if none is positive)"""
        best = 0.0
        for b in partners:
            if b == a:
                continue
            best = max(best, self.score(a, b, ctx))
        return best

    def describe(self, a: str, b: str) -> str:
        rec = self.records.get((a, b))
        return rec.notes if rec else ""


# Loaded matrices, one per distinct 'combo' settings section
_combo_matrices: Dict[str, ComboMatrix] = {}


def _settings_key(settings: Optional[Dict]) -> str:
    return json.dumps(settings or {}, sort_keys=True, default=str)


def get_combo_matrix(settings: Optional[Dict] = None) -> ComboMatrix:
    """Get the shared combo matrix for these settings, loading it on first use"""
    key = _settings_key(settings)
    matrix = _combo_matrices.get(key)
    if matrix is None:
        matrix = ComboMatrix.load(settings=settings)
        _combo_matrices[key] = matrix
    return matrix


def log_combo_stats(matrix: Optional[ComboMatrix] = None):
    """Log statistics about the loaded combo matrix"""
    matrix = matrix or get_combo_matrix()

    logger.info("=== COMBO MATRIX STATISTICS ===")
    logger.info(f"Forward combos: {len(matrix.records)}")
    logger.info(f"Anti-combos: {len(matrix.anti_combos)}")

    openers: Dict[str, int] = {}
    for a, _ in matrix.records:
        openers[a] = openers.get(a, 0) + 1
    if openers:
        top = sorted(openers.items(), key=lambda x: x[1], reverse=True)[:5]
        logger.info("Top 5 openers:")
        for action_id, count in top:
            logger.info(f"  {action_id}: {count} follow-ups")
