"""
Tests for card_effects.py

Legality rules and what each effect does to a simulated copy.
"""

import numpy as np
import pytest

from foxbot.card_effects import EffectKind, EffectRegistry, TrackSwap
from foxbot.models import CardPlay

from builders import bundled_catalog, make_agent, make_state, two_fox_state


@pytest.fixture
def registry():
    return EffectRegistry(bundled_catalog())


class TestSimulate:

    def test_original_state_untouched(self, registry):
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE"], hand=["DEN_SIGNAL"])

        sim = registry.simulate(state, "a", CardPlay("DEN_SIGNAL"))

        assert sim.flags.den_immune == {"RED": True}
        assert state.flags.den_immune == {}
        assert state.agent("a").hand == ["DEN_SIGNAL"]

    def test_card_moves_to_discard(self, registry):
        state = two_fox_state(["HIDDEN_NEST"], hand=["SCATTER", "DEN_SIGNAL"])
        sim = registry.simulate(state, "a", CardPlay("SCATTER"))
        assert sim.agent("a").hand == ["DEN_SIGNAL"]
        assert sim.action_discard == ["SCATTER"]
        assert sim.flags.scatter and sim.flags.peek_blocked

    def test_unknown_card_has_no_effect(self, registry):
        assert registry.effect_for("NOT_A_CARD").kind == EffectKind.NONE


class TestLegality:

    def test_ops_locked_blocks_everything(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        state.flags.ops_locked = True
        assert not registry.is_legal(state, "a", CardPlay("DEN_SIGNAL"))
        assert not registry.is_legal(state, "a", CardPlay("SCATTER"))

    def test_track_cards_blocked_by_event_lock(self, registry):
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE", "DEN_BLUE"])
        assert registry.is_legal(state, "a", CardPlay("KICK_UP_DUST"))
        state.flags.lock_events = True
        assert not registry.is_legal(state, "a", CardPlay("KICK_UP_DUST"))
        assert not registry.is_legal(state, "a", CardPlay("PACK_TINKER"))

    def test_actor_out_of_yard(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        state.agent("a").in_yard = False
        assert not registry.is_legal(state, "a", CardPlay("DEN_SIGNAL"))

    def test_target_must_be_in_yard(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        assert registry.is_legal(state, "a", CardPlay("HOLD_STILL", target_id="b"))
        state.agent("b").in_yard = False
        assert not registry.is_legal(state, "a", CardPlay("HOLD_STILL", target_id="b"))

    def test_cannot_target_self_or_nobody(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        assert not registry.is_legal(state, "a", CardPlay("FOLLOW_THE_TAIL", target_id="a"))
        assert not registry.is_legal(state, "a", CardPlay("FOLLOW_THE_TAIL"))

    def test_opponent_cards_need_another_den(self, registry):
        a = make_agent("a", "RED")
        mate = make_agent("m", "RED", join_order=1)
        state = make_state([a, mate], ["HIDDEN_NEST"])
        assert not registry.is_legal(state, "a", CardPlay("MASK_SWAP", target_id="m"))
        assert registry.is_legal(state, "a", CardPlay("FOLLOW_THE_TAIL", target_id="m"))

    def test_immunity_not_granted_twice(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        state.flags.den_immune["RED"] = True
        assert not registry.is_legal(state, "a", CardPlay("DEN_SIGNAL"))

    def test_predict_needs_a_guess(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        assert not registry.is_legal(state, "a", CardPlay("NOSE_FOR_TROUBLE"))
        assert registry.is_legal(state, "a", CardPlay("NOSE_FOR_TROUBLE", payload="HIDDEN_NEST"))


class TestTrackEffects:

    def test_track_swap_skips_charge_for_charge_head(self):
        swap = TrackSwap(bundled_catalog())
        state = two_fox_state(["DOG_CHARGE", "HIDDEN_NEST", "SECOND_CHARGE"])
        assert swap.pick_swap(state) == 1

    def test_track_swap_uses_farthest_event(self, registry):
        state = two_fox_state(["DEN_RED", "HIDDEN_NEST", "DEN_BLUE"])
        sim = registry.simulate(state, "a", CardPlay("PACK_TINKER"))
        assert sim.event_sequence == ["DEN_BLUE", "HIDDEN_NEST", "DEN_RED"]
        assert sim.track_version == state.track_version + 1

    def test_track_swap_illegal_under_head_lock(self, registry):
        state = two_fox_state(["DEN_RED", "HIDDEN_NEST", "DEN_BLUE"])
        state.flags.head_locked_id = "DEN_RED"
        state.flags.head_locked_until_round = state.round
        assert not registry.is_legal(state, "a", CardPlay("PACK_TINKER"))

    def test_shuffle_keeps_locked_head(self, registry):
        sequence = ["DEN_RED", "HIDDEN_NEST", "DEN_BLUE", "GATE_TOLL", "DOG_CHARGE"]
        state = two_fox_state(sequence)
        state.flags.head_locked_id = "DEN_RED"
        state.flags.head_locked_until_round = state.round
        rng = np.random.default_rng(7)

        sim = registry.simulate(state, "a", CardPlay("KICK_UP_DUST"), rng)

        assert sim.event_sequence[0] == "DEN_RED"
        assert sorted(sim.event_sequence) == sorted(sequence)
        assert sim.track_version == state.track_version

    def test_reordering_forgets_scouting(self, registry):
        state = two_fox_state(["DEN_RED", "HIDDEN_NEST", "DEN_BLUE"])
        state.agent("b").known_upcoming = ["DEN_RED"]
        sim = registry.simulate(state, "a", CardPlay("PACK_TINKER"))
        assert sim.agent("b").known_upcoming == []

    def test_no_go_zone_pins_head(self, registry):
        state = two_fox_state(["DOG_CHARGE", "HIDDEN_NEST"], round=4)
        sim = registry.simulate(state, "a", CardPlay("NO_GO_ZONE"))
        assert sim.flags.head_locked_id == "DOG_CHARGE"
        assert sim.flags.head_locked_until_round == 4
        assert not registry.is_legal(sim, "a", CardPlay("NO_GO_ZONE"))


class TestAgentEffects:

    def test_mask_swap_exchanges_colors(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        sim = registry.simulate(state, "a", CardPlay("MASK_SWAP", target_id="b"))
        assert sim.agent("a").den_color == "BLUE"
        assert sim.agent("b").den_color == "RED"
        assert state.agent("a").den_color == "RED"

    def test_hold_still_freezes_target_and_ops(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        sim = registry.simulate(state, "a", CardPlay("HOLD_STILL", target_id="b"))
        assert sim.flags.hold_still == {"b": True}
        assert sim.flags.ops_locked

    def test_molting_mask_picks_another_color(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        sim = registry.simulate(state, "a", CardPlay("MOLTING_MASK"), np.random.default_rng(3))
        assert sim.agent("a").den_color in ("BLUE", "GREEN", "YELLOW")

    def test_alpha_call_moves_lead(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        assert state.is_lead(state.agent("a"))
        sim = registry.simulate(state, "a", CardPlay("ALPHA_CALL", target_id="b"))
        assert sim.is_lead(sim.agent("b"))
        assert not registry.is_legal(sim, "a", CardPlay("ALPHA_CALL", target_id="b"))

    def test_follow_records_binding(self, registry):
        state = two_fox_state(["HIDDEN_NEST"])
        sim = registry.simulate(state, "a", CardPlay("FOLLOW_THE_TAIL", target_id="b"))
        assert sim.flags.follow_tail == {"a": "b"}
