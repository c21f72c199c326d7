"""
Action card effects.

Each effect kind named in the rules catalog has one CardEffect variant with
a legality check and an apply step. Effects mutate the state they are
given; simulate_play() always hands them a deep copy, so a simulation never
touches the snapshot it started from.

Randomized effects (shuffle, color re-roll) draw from the numpy Generator
passed in, which foxbot.sampling seeds deterministically.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from .models import DEN_COLORS, Agent, CardPlay, SharedState
from .rules_catalog import CATEGORY_CHARGE, RulesCatalog
from . import track_state

logger = logging.getLogger(__name__)


class EffectKind(Enum):
    GRANT_IMMUNITY = "GRANT_IMMUNITY"
    LOCK_HEAD = "LOCK_HEAD"
    LOCK_EVENTS = "LOCK_EVENTS"
    BLOCK_SCOUT = "BLOCK_SCOUT"
    SHUFFLE_FUTURE = "SHUFFLE_FUTURE"
    TRACK_SWAP = "TRACK_SWAP"
    SWAP_COLORS = "SWAP_COLORS"
    RANDOMIZE_OWN_COLOR = "RANDOMIZE_OWN_COLOR"
    HOLD_STILL = "HOLD_STILL"
    PREDICT = "PREDICT"
    SCENT_CHECK = "SCENT_CHECK"
    FOLLOW = "FOLLOW"
    SET_LEAD = "SET_LEAD"
    NONE = "NONE"


class TargetRule(Enum):
    NONE = "NONE"
    OPPONENT = "OPPONENT"        # in-yard fox of another den
    OTHER = "OTHER"              # any other in-yard fox


class CardEffect(ABC):
    """One effect kind: legality plus how it changes the state"""

    kind = EffectKind.NONE
    target = TargetRule.NONE
    randomized = False
    manipulates_track = False

    def is_legal(self, state: SharedState, actor: Agent, play: CardPlay) -> bool:
        if state.flags.ops_locked:
            return False
        if self.manipulates_track and state.flags.lock_events:
            return False
        if self.target != TargetRule.NONE:
            target = state.agent(play.target_id) if play.target_id else None
            if target is None or not target.in_yard or target.id == actor.id:
                return False
            if self.target == TargetRule.OPPONENT and target.den_color == actor.den_color:
                return False
        return self._is_legal(state, actor, play)

    def _is_legal(self, state: SharedState, actor: Agent, play: CardPlay) -> bool:
        return True

    @abstractmethod
    def apply(self, state: SharedState, actor: Agent, play: CardPlay,
              rng: Optional[np.random.Generator] = None):
        pass


def _forget_scouting(state: SharedState):
    """Reordering the track voids everything learned by SCOUT"""
    for agent in state.agents:
        agent.known_upcoming = []


class GrantImmunity(CardEffect):
    kind = EffectKind.GRANT_IMMUNITY

    def _is_legal(self, state, actor, play):
        return bool(actor.den_color) and not state.flags.is_immune(actor.den_color)

    def apply(self, state, actor, play, rng=None):
        state.flags.den_immune[actor.den_color] = True


class LockHead(CardEffect):
    kind = EffectKind.LOCK_HEAD

    def _is_legal(self, state, actor, play):
        return bool(state.event_sequence) and not track_state.is_head_locked(state)

    def apply(self, state, actor, play, rng=None):
        track_state.lock_head_for_round(state)


class LockEvents(CardEffect):
    kind = EffectKind.LOCK_EVENTS

    def _is_legal(self, state, actor, play):
        return not state.flags.lock_events

    def apply(self, state, actor, play, rng=None):
        state.flags.lock_events = True


class BlockScout(CardEffect):
    kind = EffectKind.BLOCK_SCOUT

    def _is_legal(self, state, actor, play):
        return not state.flags.scatter

    def apply(self, state, actor, play, rng=None):
        state.flags.scatter = True
        state.flags.peek_blocked = True


class ShuffleFuture(CardEffect):
    kind = EffectKind.SHUFFLE_FUTURE
    randomized = True
    manipulates_track = True

    def _is_legal(self, state, actor, play):
        return len(state.event_sequence) > 1

    def apply(self, state, actor, play, rng=None):
        rng = rng if rng is not None else np.random.default_rng(0)

        def shuffle(track: List[str]) -> List[str]:
            order = rng.permutation(len(track))
            return [track[i] for i in order]

        track_state.apply_track_mutation(state, shuffle)
        _forget_scouting(state)


class TrackSwap(CardEffect):
    """Swap the head with the farthest later event (a non-CHARGE one if the head is a CHARGE)"""
    kind = EffectKind.TRACK_SWAP
    manipulates_track = True

    def __init__(self, catalog: Optional[RulesCatalog] = None):
        self.catalog = catalog

    def pick_swap(self, state: SharedState) -> Optional[int]:
        track = state.event_sequence
        if len(track) < 2 or track_state.is_head_locked(state):
            return None
        head_is_charge = self._category(track[0]) == CATEGORY_CHARGE
        for k in range(len(track) - 1, 0, -1):
            if track[k] == track[0]:
                continue
            if not head_is_charge or self._category(track[k]) != CATEGORY_CHARGE:
                return k
        return None

    def _category(self, event_id: str) -> str:
        if self.catalog is None:
            return ""
        facts = self.catalog.facts_for_event(event_id)
        return facts.category if facts else ""

    def _is_legal(self, state, actor, play):
        return self.pick_swap(state) is not None

    def apply(self, state, actor, play, rng=None):
        k = self.pick_swap(state)
        if k is None:
            return
        track_state.swap_events(state, 0, k)
        _forget_scouting(state)


class SwapColors(CardEffect):
    kind = EffectKind.SWAP_COLORS
    target = TargetRule.OPPONENT

    def _is_legal(self, state, actor, play):
        target = state.agent(play.target_id)
        return bool(actor.den_color) and bool(target.den_color) and actor.den_color != target.den_color

    def apply(self, state, actor, play, rng=None):
        target = state.agent(play.target_id)
        actor.den_color, target.den_color = target.den_color, actor.den_color


class RandomizeOwnColor(CardEffect):
    kind = EffectKind.RANDOMIZE_OWN_COLOR
    randomized = True

    def apply(self, state, actor, play, rng=None):
        rng = rng if rng is not None else np.random.default_rng(0)
        options = [c for c in DEN_COLORS if c != actor.den_color]
        actor.den_color = options[int(rng.integers(len(options)))]


class HoldStill(CardEffect):
    """Target must stay in the yard; no further cards this round"""
    kind = EffectKind.HOLD_STILL
    target = TargetRule.OPPONENT

    def _is_legal(self, state, actor, play):
        return not state.flags.is_forced_stay(play.target_id)

    def apply(self, state, actor, play, rng=None):
        state.flags.hold_still[play.target_id] = True
        state.flags.ops_locked = True


class Predict(CardEffect):
    kind = EffectKind.PREDICT

    def _is_legal(self, state, actor, play):
        return bool(play.payload) and actor.id not in state.flags.predictions

    def apply(self, state, actor, play, rng=None):
        state.flags.predictions[actor.id] = play.payload


class ScentCheck(CardEffect):
    kind = EffectKind.SCENT_CHECK
    target = TargetRule.OTHER

    def apply(self, state, actor, play, rng=None):
        if actor.id not in state.flags.scent_checks:
            state.flags.scent_checks.append(actor.id)


class Follow(CardEffect):
    kind = EffectKind.FOLLOW
    target = TargetRule.OTHER

    def apply(self, state, actor, play, rng=None):
        state.flags.follow_tail[actor.id] = play.target_id


class SetLead(CardEffect):
    kind = EffectKind.SET_LEAD
    target = TargetRule.OTHER

    def _is_legal(self, state, actor, play):
        lead = state.lead_agent()
        return lead is None or lead.id != play.target_id

    def apply(self, state, actor, play, rng=None):
        ordered = [a.id for a in state.in_yard_agents()]
        state.lead_index = ordered.index(play.target_id)


class NoEffect(CardEffect):
    kind = EffectKind.NONE

    def apply(self, state, actor, play, rng=None):
        pass


def build_effects(catalog: Optional[RulesCatalog] = None) -> Dict[EffectKind, CardEffect]:
    effects: List[CardEffect] = [
        GrantImmunity(), LockHead(), LockEvents(), BlockScout(), ShuffleFuture(),
        TrackSwap(catalog), SwapColors(), RandomizeOwnColor(), HoldStill(), Predict(),
        ScentCheck(), Follow(), SetLead(), NoEffect(),
    ]
    return {e.kind: e for e in effects}


class EffectRegistry:
    """Effect variants resolved through the rules catalog"""

    def __init__(self, catalog: RulesCatalog):
        self.catalog = catalog
        self.effects = build_effects(catalog)

    def effect_for(self, action_id: str) -> CardEffect:
        facts = self.catalog.facts_for_action(action_id)
        if facts is None:
            return self.effects[EffectKind.NONE]
        try:
            return self.effects[EffectKind(facts.effect)]
        except ValueError:
            logger.warning(f"Unknown effect kind {facts.effect!r} for {action_id}")
            return self.effects[EffectKind.NONE]

    def is_legal(self, state: SharedState, actor_id: str, play: CardPlay) -> bool:
        actor = state.agent(actor_id)
        if actor is None or not actor.in_yard:
            return False
        return self.effect_for(play.action_id).is_legal(state, actor, play)

    def simulate(self, state: SharedState, actor_id: str, play: CardPlay,
                 rng: Optional[np.random.Generator] = None) -> SharedState:
        """
        Apply `play` to a deep copy of `state` and return the copy.

        The card moves from the actor's hand to the discard pile.
        """
        sim = state.clone()
        actor = sim.agent(actor_id)
        if actor is None:
            return sim
        if play.action_id in actor.hand:
            actor.hand.remove(play.action_id)
        sim.action_discard.append(play.action_id)
        self.effect_for(play.action_id).apply(sim, actor, play, rng)
        return sim
