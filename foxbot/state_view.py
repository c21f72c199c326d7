"""
State normalization.

Turns a raw caller snapshot (a dict in either the snake_case layout or the
host's camelCase layout, or an existing SharedState) into a fresh, fully
populated SharedState. Every entry point calls normalize_state exactly once;
evaluators never see missing fields.

Documented defaults for missing or malformed fields:
    round               1
    event_sequence      []   (eventTrack sliced from eventIndex when given)
    remaining_bag       sorted(event_sequence)
    track_version       0
    escalation_seen     0
    lead_index          0
    loot deck / decks   []
    discard history     from actionDiscard {name, round, at} entries; recent = last 10
    flags               all off; a list of colors or ids is accepted for
                        denImmune / holdStill, any other non-object is {}
    expired head lock   cleared (head_locked_until_round < round)
    agent den_color     ""   (never matches a den event)
    agent burrow        available unless burrowUsedThisRaid / burrow_available says otherwise
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .models import (
    Agent, Choice, IntelMemory, Phase, RoundFlags, SharedState,
)
from .rules_catalog import RulesCatalog, get_catalog
from . import track_state

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_CONFIDENCE = 0.85
RECENT_DISCARD_WINDOW = 10

RawState = Union[SharedState, Dict[str, Any]]


def _pick(d: Dict[str, Any], *keys, default=None):
    """First present (non-None) value among alias keys"""
    for key in keys:
        if key in d and d[key] is not None:
            return d[key]
    return default


def _as_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _event_id(ev) -> Optional[str]:
    if ev is None:
        return None
    if isinstance(ev, dict):
        ev = ev.get('id')
        return str(ev) if ev else None
    return str(ev)


def _event_list(items: Optional[Iterable]) -> List[str]:
    if not isinstance(items, (list, tuple)):
        return []
    return [eid for eid in (_event_id(e) for e in items) if eid]


def _loot_values(items) -> List[float]:
    """Loot as card values; accepts numbers or {v: ...}/{value: ...} cards."""
    if isinstance(items, (int, float)):
        # Only a total is known: treat it as one card of that value
        return [float(items)] if items > 0 else []
    if not isinstance(items, (list, tuple)):
        return []
    values = []
    for card in items:
        if isinstance(card, dict):
            values.append(_as_float(_pick(card, 'v', 'value', 'points'), 0.0))
        else:
            values.append(_as_float(card, 0.0))
    return values


def _choice(value) -> Optional[Choice]:
    if isinstance(value, Choice):
        return value
    if not value:
        return None
    try:
        return Choice(str(value).strip().upper())
    except ValueError:
        logger.warning(f"Unknown decision value {value!r}, treating as undecided")
        return None


def _hand(items, catalog: RulesCatalog) -> List[str]:
    if not isinstance(items, (list, tuple)):
        return []
    hand = []
    for card in items:
        ref = card
        if isinstance(card, dict):
            ref = _pick(card, 'id', 'actionId', 'name')
        action_id = catalog.resolve_action_id(str(ref)) if ref else None
        if action_id:
            hand.append(action_id)
        else:
            logger.warning(f"Unknown action card in hand: {card!r}")
    return hand


def _memory(raw) -> Optional[IntelMemory]:
    if not isinstance(raw, dict):
        return None
    events = _event_list(_pick(raw, 'events'))
    if not events:
        next_id = _pick(raw, 'next_event', 'nextEventId')
        if next_id:
            events = [str(next_id)]
    if not events:
        return None
    return IntelMemory(
        events=events,
        track_version=_as_int(_pick(raw, 'track_version', 'knownAtHeadVersion', 'version'), -1),
        confidence=max(0.0, min(1.0, _as_float(_pick(raw, 'confidence'), DEFAULT_MEMORY_CONFIDENCE))),
    )


def _agent(raw: Dict[str, Any], index: int, catalog: RulesCatalog) -> Agent:
    agent_id = str(_pick(raw, 'id', 'uid', 'playerId', default=f"agent{index}"))

    burrow_available = _pick(raw, 'burrow_available', 'burrowAvailable')
    if burrow_available is None:
        used = _pick(raw, 'burrow_used_this_raid', 'burrowUsedThisRaid', default=False)
        burrow_available = not bool(used)

    status = str(_pick(raw, 'status', default='')).upper()
    dashed = bool(_pick(raw, 'dashed', default=status == 'DASHED'))
    in_yard = _pick(raw, 'in_yard', 'inYard')
    if in_yard is None:
        in_yard = status not in ('DASHED', 'CAUGHT', 'OUT') and not dashed

    last_shift = _pick(raw, 'last_shift_round', 'lastShiftRound')

    return Agent(
        id=agent_id,
        name=str(_pick(raw, 'name', default=agent_id)),
        den_color=str(_pick(raw, 'den_color', 'denColor', 'color', 'den', default='')).upper(),
        loot=_loot_values(_pick(raw, 'loot', default=[])),
        hand=_hand(_pick(raw, 'hand', default=[]), catalog),
        burrow_available=bool(burrow_available),
        decision=_choice(_pick(raw, 'decision')),
        in_yard=bool(in_yard),
        dashed=dashed,
        join_order=_as_int(_pick(raw, 'join_order', 'joinOrder'), index),
        dash_pressure=max(0.0, min(10.0, _as_float(_pick(raw, 'dash_pressure', 'dashPush'), 0.0))),
        known_upcoming=_event_list(_pick(raw, 'known_upcoming', 'knownUpcomingEvents', default=[])),
        intel_memory=_memory(_pick(raw, 'intel_memory', 'intelMemory', 'memory')),
        last_shift_round=_as_int(last_shift) if last_shift is not None else None,
    )


def _mapping(value: Any, listed: Any = None) -> Dict[str, Any]:
    """A dict as is; a list/tuple maps each entry to `listed` when given; anything else is {}"""
    if isinstance(value, dict):
        return value
    if listed is not None and isinstance(value, (list, tuple)):
        return {str(item): listed for item in value}
    if value:
        logger.warning(f"⚠️  Ignoring malformed flag value {value!r}")
    return {}


def _sequence(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _action_ids(items: Any, catalog: RulesCatalog) -> List[str]:
    """Known action ids from ids, display names or {id/actionId/name: ...} cards"""
    ids = []
    for card in _sequence(items):
        ref = _pick(card, 'id', 'actionId', 'name') if isinstance(card, dict) else card
        action_id = catalog.resolve_action_id(str(ref)) if ref else None
        if action_id:
            ids.append(action_id)
    return ids


def _discard_history(items: Any, round_no: int, catalog: RulesCatalog) -> Tuple[List[str], List[str]]:
    """
    Split host discard entries ({name, round, at}) into the cards played
    this round and the last RECENT_DISCARD_WINDOW plays, oldest first.
    """
    entries = _sequence(items)
    this_round = _action_ids([e for e in entries
                              if isinstance(e, dict) and _as_int(e.get('round'), -1) == round_no], catalog)
    ordered = sorted(entries, key=lambda e: _as_float(e.get('at'), 0.0) if isinstance(e, dict) else 0.0)
    return this_round, _action_ids(ordered[-RECENT_DISCARD_WINDOW:], catalog)


def _flags(raw: Dict[str, Any], round_no: int) -> RoundFlags:
    den_immune = {str(color).upper(): bool(on)
                  for color, on in _mapping(_pick(raw, 'den_immune', 'denImmune'), listed=True).items()}
    hold_still = _mapping(_pick(raw, 'hold_still', 'holdStill'), listed=True)
    predictions = _mapping(_pick(raw, 'predictions'))
    follow_tail = _mapping(_pick(raw, 'follow_tail', 'followTail'))
    scent_checks = _sequence(_pick(raw, 'scent_checks', 'scentChecks'))

    head_until = _pick(raw, 'head_locked_until_round', 'headLockedUntilRound')
    return RoundFlags(
        den_immune=den_immune,
        lock_events=bool(_pick(raw, 'lock_events', 'lockEvents', default=False)),
        lock_head=bool(_pick(raw, 'lock_head', 'lockHead', default=False)),
        head_locked_id=_pick(raw, 'head_locked_id', 'headLockedId'),
        head_locked_until_round=_as_int(head_until, round_no) if head_until is not None else None,
        hold_still={str(k): bool(v) for k, v in hold_still.items()},
        peek_blocked=bool(_pick(raw, 'peek_blocked', 'noPeek', default=False)),
        scatter=bool(_pick(raw, 'scatter', default=False)),
        ops_locked=bool(_pick(raw, 'ops_locked', 'opsLocked', default=False)),
        predictions={str(k): str(v) for k, v in predictions.items()},
        follow_tail={str(k): str(v) for k, v in follow_tail.items()},
        scent_checks=[str(x) for x in scent_checks],
    )


def normalize_state(raw: RawState, catalog: Optional[RulesCatalog] = None) -> SharedState:
    """
    Build a fresh SharedState from a raw snapshot.

    A SharedState input is deep-copied so evaluation never mutates the
    caller's object. Malformed fields fall back to the module defaults.
    """
    if isinstance(raw, SharedState):
        state = copy.deepcopy(raw)
        _finish(state)
        return state

    if not isinstance(raw, dict):
        logger.warning(f"Unsupported state snapshot type {type(raw).__name__}, using empty state")
        raw = {}

    catalog = catalog or get_catalog()
    track_raw = _mapping(_pick(raw, 'track_state', 'trackState'))

    round_no = _as_int(_pick(raw, 'round', 'roundIndex', 'roundNo'), 1)

    sequence = _pick(raw, 'event_sequence', 'eventSequence')
    if sequence is None:
        track = _event_list(_pick(raw, 'eventTrack', default=[]))
        cursor = _as_int(_pick(raw, 'eventIndex', 'eventCursor'), 0)
        sequence = track[max(0, cursor):]
    sequence = _event_list(sequence)

    bag = _pick(raw, 'remaining_bag', 'remainingBag')
    bag = _event_list(bag) if bag is not None else sorted(sequence)

    flags_raw = dict(_mapping(_pick(raw, 'flags', 'flagsRound')))
    for key in ('headLockedId', 'headLockedUntilRound'):
        if key in track_raw and key not in flags_raw:
            flags_raw[key] = track_raw[key]

    discard_raw = _pick(raw, 'action_discard', 'actionDiscard')
    played_this_round, played_recently = _discard_history(discard_raw, round_no, catalog)

    agents_raw = _sequence(_pick(raw, 'agents', 'players'))
    agents = [_agent(a, i, catalog) for i, a in enumerate(agents_raw) if isinstance(a, dict)]

    state = SharedState(
        round=round_no,
        phase=Phase.parse(_pick(raw, 'phase')),
        event_sequence=sequence,
        remaining_bag=bag,
        track_version=_as_int(_pick(raw, 'track_version', 'trackVersion',
                                    default=track_raw.get('headVersion')), 0),
        escalation_seen=_as_int(_pick(raw, 'escalation_seen', 'roosterSeen'), 0),
        lead_index=_as_int(_pick(raw, 'lead_index', 'leadIndex'), 0),
        loot_deck=_loot_values(_pick(raw, 'loot_deck', 'lootDeck', default=[])),
        action_deck=_action_ids(_pick(raw, 'action_deck', 'actionDeck'), catalog),
        action_discard=_action_ids(discard_raw, catalog),
        discard_this_round=_action_ids(_pick(raw, 'discard_this_round'), catalog) or played_this_round,
        discard_recent=_action_ids(_pick(raw, 'discard_recent'), catalog) or played_recently,
        flags=_flags(flags_raw, round_no),
        agents=agents,
        ops_turn_order=[str(x) for x in _sequence(_pick(raw, 'ops_turn_order', 'opsTurnOrder'))],
        game_id=str(_pick(raw, 'game_id', 'gameId', default='')),
    )

    lead_id = _pick(raw, 'lead_id', 'leadFoxId')
    if lead_id:
        ordered = [a.id for a in state.in_yard_agents()]
        if lead_id in ordered:
            state.lead_index = ordered.index(lead_id)

    _finish(state)
    return state


def _finish(state: SharedState):
    """Fill derived defaults shared by both input paths."""
    flags = state.flags
    track_state.clear_expired_head_lock(state)
    if flags.lock_head and not flags.head_locked_id and state.event_sequence:
        flags.head_locked_id = state.event_sequence[0]
    if flags.head_locked_id and flags.head_locked_until_round is None:
        flags.head_locked_until_round = state.round
    if not state.ops_turn_order:
        state.ops_turn_order = [a.id for a in state.in_yard_agents()]
