"""
Tests for track_state.py
"""

from foxbot import track_state

from builders import two_fox_state


class TestHeadLock:

    def test_lock_lasts_until_end_of_round(self):
        state = two_fox_state(["DOG_CHARGE", "HIDDEN_NEST"], round=2)
        assert track_state.lock_head_for_round(state)

        assert track_state.is_head_locked(state)
        assert track_state.is_head_locked(state, round_no=2)
        assert not track_state.is_head_locked(state, round_no=3)
        assert track_state.effective_head(state) == "DOG_CHARGE"

    def test_empty_track_cannot_be_locked(self):
        state = two_fox_state([])
        assert not track_state.lock_head_for_round(state)
        assert state.flags.head_locked_id is None

    def test_expired_lock_is_cleared(self):
        state = two_fox_state(["DOG_CHARGE", "HIDDEN_NEST"], round=2)
        track_state.lock_head_for_round(state)
        state.round = 3

        track_state.clear_expired_head_lock(state)

        assert state.flags.head_locked_id is None
        assert not state.flags.lock_head


class TestSwap:

    def test_head_swap_bumps_version(self):
        state = two_fox_state(["DOG_CHARGE", "HIDDEN_NEST", "DEN_BLUE"], track_version=4)
        assert track_state.swap_events(state, 0, 2)
        assert state.event_sequence == ["DEN_BLUE", "HIDDEN_NEST", "DOG_CHARGE"]
        assert state.track_version == 5

    def test_tail_swap_keeps_version(self):
        state = two_fox_state(["DOG_CHARGE", "HIDDEN_NEST", "DEN_BLUE"], track_version=4)
        assert track_state.swap_events(state, 1, 2)
        assert state.event_sequence == ["DOG_CHARGE", "DEN_BLUE", "HIDDEN_NEST"]
        assert state.track_version == 4

    def test_swap_rejects_locked_head_and_bad_indexes(self):
        state = two_fox_state(["DOG_CHARGE", "HIDDEN_NEST", "DEN_BLUE"])
        track_state.lock_head_for_round(state)
        assert not track_state.swap_events(state, 0, 1)
        assert not track_state.swap_events(state, 1, 7)
        assert not track_state.swap_events(state, 2, 2)
        assert state.event_sequence == ["DOG_CHARGE", "HIDDEN_NEST", "DEN_BLUE"]


class TestMutation:

    def test_locked_head_restored_before_tail_mutation(self):
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE", "DEN_BLUE"])
        state.flags.head_locked_id = "DOG_CHARGE"
        state.flags.head_locked_until_round = state.round

        changed = track_state.apply_track_mutation(state, lambda t: list(reversed(t)))

        assert changed
        assert state.event_sequence[0] == "DOG_CHARGE"
        assert sorted(state.event_sequence) == ["DEN_BLUE", "DOG_CHARGE", "HIDDEN_NEST"]
