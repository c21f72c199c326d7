"""
Rules Catalog

Loads the static event and action-card facts from JSON.
Provides lookup by event id and action id for the danger model and the
evaluators. The catalog is read-only; callers with their own rules source
can inject a RulesCatalog built from dicts via set_catalog().
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .models import Choice

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "rules_catalog.json"

# applies_to values
APPLIES_ANY = "ANY"
APPLIES_LEAD = "LEAD"
APPLIES_COLOR = "COLOR"

# Event categories the danger model treats specially
CATEGORY_DEN = "DEN"
CATEGORY_CHARGE = "CHARGE"
CATEGORY_PATROL = "PATROL"
CATEGORY_ESCALATION = "ESCALATION"

# Categories a den immunity neutralizes
IMMUNITY_CATEGORIES = frozenset({CATEGORY_DEN, CATEGORY_CHARGE})


def _clamp_danger(value) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(10.0, v))


@dataclass(frozen=True)
class EventFacts:
    """
    Static facts about one event card.
    """
    event_id: str
    title: str = ""
    category: str = ""
    applies_to: str = APPLIES_ANY       # ANY / LEAD / COLOR
    den_color: Optional[str] = None     # only for COLOR-scoped events
    danger_dash: float = 0.0
    danger_lurk: float = 0.0
    danger_burrow: float = 0.0
    tags: Tuple[str, ...] = ()
    implemented: bool = True
    requires_loot: bool = False

    def base_danger(self, choice: Choice) -> float:
        """Catalog danger for a choice, before any context rules."""
        if choice == Choice.DASH:
            return self.danger_dash
        if choice == Choice.LURK:
            return self.danger_lurk
        return self.danger_burrow

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    @property
    def is_escalation(self) -> bool:
        return self.category == CATEGORY_ESCALATION

    @property
    def peak_danger(self) -> float:
        return max(self.danger_dash, self.danger_lurk, self.danger_burrow)


@dataclass(frozen=True)
class ActionFacts:
    """
    Static facts about one action card.

    `effect` names the effect kind handled by foxbot.card_effects.
    """
    action_id: str
    name: str = ""
    role: str = ""
    effect: str = "NONE"
    tags: Tuple[str, ...] = ()
    implemented: bool = True

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


class RulesCatalog:
    """
    Read-only lookup of event and action facts.
    """

    def __init__(self, events: Optional[Dict[str, EventFacts]] = None,
                 actions: Optional[Dict[str, ActionFacts]] = None):
        self.events: Dict[str, EventFacts] = dict(events or {})
        self.actions: Dict[str, ActionFacts] = dict(actions or {})
        self._action_by_name: Dict[str, str] = {
            facts.name.lower(): action_id for action_id, facts in self.actions.items() if facts.name
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RulesCatalog':
        """Build a catalog from the JSON document layout."""
        events: Dict[str, EventFacts] = {}
        for entry in data.get('events', []):
            facts = _parse_event(entry)
            if facts:
                events[facts.event_id] = facts

        actions: Dict[str, ActionFacts] = {}
        for entry in data.get('actions', []):
            facts = _parse_action(entry)
            if facts:
                actions[facts.action_id] = facts

        return cls(events, actions)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> 'RulesCatalog':
        """Load a catalog from a JSON file. Errors yield an empty catalog."""
        path = Path(path) if path else DEFAULT_CATALOG_PATH
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in rules catalog {path}: {e}")
            return cls()
        except OSError as e:
            logger.error(f"Error loading rules catalog {path}: {e}")
            return cls()

        catalog = cls.from_dict(data)
        logger.info(f"✅ Loaded rules catalog: {len(catalog.events)} events, {len(catalog.actions)} actions")
        return catalog

    def facts_for_event(self, event_id: Optional[str]) -> Optional[EventFacts]:
        if not event_id:
            return None
        return self.events.get(event_id)

    def facts_for_action(self, action_id: Optional[str]) -> Optional[ActionFacts]:
        if not action_id:
            return None
        return self.actions.get(action_id)

    def resolve_action_id(self, ref: Optional[str]) -> Optional[str]:
        """
        Map a hand entry to an action id.

        Accepts the id itself ("DEN_SIGNAL") or the printed card name
        ("Den Signal"). Returns None for unknown cards.
        """
        if not ref:
            return None
        if ref in self.actions:
            return ref
        upper = ref.strip().upper().replace(' ', '_').replace('-', '_')
        if upper in self.actions:
            return upper
        return self._action_by_name.get(ref.strip().lower())

    def action_ids(self) -> List[str]:
        return list(self.actions.keys())

    def event_ids(self) -> List[str]:
        return list(self.events.keys())

    def actions_with_effect(self, effect: str) -> List[str]:
        return [aid for aid, facts in self.actions.items() if facts.effect == effect]


def _parse_event(entry: dict) -> Optional[EventFacts]:
    event_id = entry.get('id')
    if not event_id:
        logger.warning(f"Skipping event entry without id: {entry}")
        return None
    danger = entry.get('danger', {}) or {}
    return EventFacts(
        event_id=event_id,
        title=entry.get('title', event_id),
        category=entry.get('category', ''),
        applies_to=entry.get('applies_to', APPLIES_ANY),
        den_color=entry.get('den_color'),
        danger_dash=_clamp_danger(danger.get('dash', 0)),
        danger_lurk=_clamp_danger(danger.get('lurk', 0)),
        danger_burrow=_clamp_danger(danger.get('burrow', 0)),
        tags=tuple(entry.get('tags', [])),
        implemented=bool(entry.get('implemented', True)),
        requires_loot=bool(entry.get('requires_loot', False)),
    )


def _parse_action(entry: dict) -> Optional[ActionFacts]:
    action_id = entry.get('id')
    if not action_id:
        logger.warning(f"Skipping action entry without id: {entry}")
        return None
    return ActionFacts(
        action_id=action_id,
        name=entry.get('name', action_id),
        role=entry.get('role', ''),
        effect=entry.get('effect', 'NONE'),
        tags=tuple(entry.get('tags', [])),
        implemented=bool(entry.get('implemented', True)),
    )


# Global catalog instance
_catalog: Optional[RulesCatalog] = None


def get_catalog() -> RulesCatalog:
    """Get the global rules catalog (lazy loaded)"""
    global _catalog
    if _catalog is None:
        _catalog = RulesCatalog.load()
    return _catalog


def set_catalog(catalog: Optional[RulesCatalog]):
    """Inject a catalog (None restores the bundled one on next use)."""
    global _catalog
    _catalog = catalog
