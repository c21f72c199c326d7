"""
Event track helpers.

The head of the track is event_sequence[0]. track_version increases only
when the head changes (a mutation or the raid advancing), so an agent's
IntelMemory stays valid through tail-only reshuffles.

A head lock (NO_GO_ZONE) pins the head for the rest of a round: while it is
active, mutations only touch the tail.
"""

import logging
from typing import Callable, List, Optional

from .models import SharedState

logger = logging.getLogger(__name__)

TrackMutation = Callable[[List[str]], List[str]]


def raw_head(state: SharedState) -> Optional[str]:
    return state.event_sequence[0] if state.event_sequence else None


def is_head_locked(state: SharedState, round_no: Optional[int] = None) -> bool:
    """True while a head lock is active for the given round (default: current)."""
    flags = state.flags
    if not flags.head_locked_id:
        return False
    if round_no is None:
        round_no = state.round
    until = flags.head_locked_until_round
    return until is None or round_no <= until


def effective_head(state: SharedState, round_no: Optional[int] = None) -> Optional[str]:
    if is_head_locked(state, round_no):
        return state.flags.head_locked_id
    return raw_head(state)


def clear_expired_head_lock(state: SharedState, round_no: Optional[int] = None):
    flags = state.flags
    if round_no is None:
        round_no = state.round
    if flags.head_locked_id and flags.head_locked_until_round is not None \
            and round_no > flags.head_locked_until_round:
        logger.debug(f"Head lock on {flags.head_locked_id} expired (round {round_no})")
        flags.head_locked_id = None
        flags.head_locked_until_round = None
        flags.lock_head = False


def lock_head_for_round(state: SharedState, round_no: Optional[int] = None) -> bool:
    """Pin the current head until the end of the round. Returns False on an empty track."""
    head = raw_head(state)
    if not head:
        return False
    state.flags.head_locked_id = head
    state.flags.head_locked_until_round = state.round if round_no is None else round_no
    state.flags.lock_head = True
    return True


def apply_track_mutation(state: SharedState, mutate_whole: TrackMutation,
                         mutate_tail: Optional[TrackMutation] = None) -> bool:
    """
    Apply a track mutation while respecting an active head lock.

    Locked: only the tail (index 1..end) is mutated, with mutate_tail or,
    when not given, mutate_whole applied to the tail.
    Unlocked: the full track is mutated.

    Returns True if the head changed (and track_version was bumped).
    """
    track = list(state.event_sequence)
    if not track:
        return False
    prev_head = track[0]

    if is_head_locked(state):
        locked_id = state.flags.head_locked_id
        # Keep the locked event at the head even if it drifted
        if locked_id in track and track[0] != locked_id:
            idx = track.index(locked_id)
            track[0], track[idx] = track[idx], track[0]
        tail_fn = mutate_tail or mutate_whole
        track = [track[0]] + list(tail_fn(track[1:]))
    else:
        track = list(mutate_whole(track))

    state.event_sequence = track
    new_head = track[0] if track else None
    if new_head != prev_head:
        state.track_version += 1
        return True
    return False


def swap_events(state: SharedState, i: int, j: int) -> bool:
    """
    Swap two positions of the track in place.

    Returns False (no change) when an index is out of range or the swap
    would move a locked head.
    """
    n = len(state.event_sequence)
    if i == j or not (0 <= i < n and 0 <= j < n):
        return False
    if is_head_locked(state) and (i == 0 or j == 0):
        return False

    def _swap(track: List[str]) -> List[str]:
        track = list(track)
        track[i], track[j] = track[j], track[i]
        return track

    apply_track_mutation(state, _swap)
    return True
