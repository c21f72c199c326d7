"""
Tests for ops_evaluator.py

PASS thresholds, urgent defense, target choice, sequential combo
simulation and deterministic sampling of random effects.
"""

import pytest

from foxbot.evaluators.base import ActionType, EvaluatedAction
from foxbot.evaluators.ops_evaluator import OpsEvaluator
from foxbot.card_effects import EffectKind

from builders import bundled_catalog, default_config, make_agent, make_state, two_fox_state


@pytest.fixture
def evaluator():
    return OpsEvaluator(bundled_catalog(), default_config())


def three_fox_state(sequence, hand=None, **kwargs):
    """RED fox 'a' against BLUE 'b' (carry 4) and GREEN 'c' (carry 9)"""
    a = make_agent("a", "RED", loot=[2], hand=hand, join_order=0)
    b = make_agent("b", "BLUE", loot=[4], join_order=1)
    c = make_agent("c", "GREEN", loot=[9], join_order=2)
    return make_state([a, b, c], sequence, **kwargs)


class TestEarlyExits:

    def test_ops_locked(self, evaluator):
        state = two_fox_state(["HIDDEN_NEST"], hand=["SCATTER"])
        state.flags.ops_locked = True
        result = evaluator.evaluate(state.agent("a"), state)
        assert result.best.action_id == "PASS"
        assert result.no_candidates
        assert result.meta['reason'] == "OPS_LOCKED"

    def test_empty_hand(self, evaluator):
        state = two_fox_state(["HIDDEN_NEST"])
        result = evaluator.evaluate(state.agent("a"), state)
        assert result.meta['reason'] == "EMPTY_HAND"

    def test_no_legal_plays_when_events_locked(self, evaluator):
        """Both cards manipulate the track"""
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE"], hand=["KICK_UP_DUST", "PACK_TINKER"])
        state.flags.lock_events = True

        result = evaluator.evaluate(state.agent("a"), state)

        assert result.best.action_id == "PASS"
        assert result.no_candidates
        assert result.meta['reason'] == "NO_LEGAL_PLAYS"


class TestUrgentDefense:

    def test_own_den_next_plays_immunity(self, evaluator):
        state = two_fox_state(["DEN_RED", "HIDDEN_NEST"], hand=["DEN_SIGNAL", "SCATTER"])

        result = evaluator.evaluate(state.agent("a"), state)

        assert result.best.action_id == "DEN_SIGNAL"
        assert result.meta['reason'] == "URGENT_DEFENSE"
        assert result.best.plays[0].action_id == "DEN_SIGNAL"

    def test_charge_next_plays_immunity(self, evaluator):
        state = two_fox_state(["DOG_CHARGE"], hand=["SCATTER", "DEN_SIGNAL"])
        result = evaluator.evaluate(state.agent("a"), state)
        assert result.meta['reason'] == "URGENT_DEFENSE"

    def test_other_den_is_not_urgent(self, evaluator):
        state = two_fox_state(["DEN_BLUE", "HIDDEN_NEST"], hand=["DEN_SIGNAL"])
        result = evaluator.evaluate(state.agent("a"), state)
        assert result.meta['reason'] != "URGENT_DEFENSE"

    def test_already_immune_is_not_urgent(self, evaluator):
        state = two_fox_state(["DEN_RED"], hand=["DEN_SIGNAL"])
        state.flags.den_immune["RED"] = True
        result = evaluator.evaluate(state.agent("a"), state)
        assert result.meta['reason'] != "URGENT_DEFENSE"


class TestPassThreshold:

    def test_marginal_play_passes(self, evaluator):
        """SCATTER on a safe round barely moves anyone's outlook; RED leans away from control cards"""
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE"], hand=["SCATTER"])

        result = evaluator.evaluate(state.agent("a"), state)

        assert result.best.action_id == "PASS"
        assert result.meta['reason'] == "PASS"
        assert result.meta['stage'] == "early"
        assert not result.no_candidates
        scatter = next(x for x in result.ranked if x.action_id == "SCATTER")
        assert scatter.score == pytest.approx(0.1222 - 0.168 - 0.05, abs=0.005)

    def test_never_pass_plays_best_single(self):
        evaluator = OpsEvaluator(bundled_catalog(), default_config({'ops': {'never_pass': True}}))
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE"], hand=["SCATTER"])

        result = evaluator.evaluate(state.agent("a"), state)

        assert result.best.action_id == "SCATTER"
        assert result.meta['reason'] == "NEVER_PASS"

    def test_threat_mode_lowers_required_gain(self, evaluator):
        state = two_fox_state(["DOG_CHARGE", "HIDDEN_NEST"], hand=["SCATTER"])
        result = evaluator.evaluate(state.agent("a"), state)
        assert result.meta['threat_mode'] is True
        assert result.meta['required_gain'] == pytest.approx(0.4)

    def test_lead_event_is_a_threat_for_the_lead(self, evaluator):
        state = two_fox_state(["SILENT_ALARM", "HIDDEN_NEST"], hand=["SCATTER"])
        assert state.is_lead(state.agent("a"))
        result = evaluator.evaluate(state.agent("a"), state)
        assert result.meta['threat_mode'] is True


class TestStageAndCosts:

    def test_stage_boundaries(self, evaluator):
        assert evaluator.stage_of(two_fox_state(["HIDDEN_NEST"] * 6, round=2)).name == "early"
        assert evaluator.stage_of(two_fox_state(["HIDDEN_NEST"] * 3, round=3)).name == "late"
        assert evaluator.stage_of(two_fox_state(["HIDDEN_NEST"] * 6, round=3)).name == "mid"

    def test_solo_fox_penalized_for_interaction_cards(self, evaluator):
        agent = make_agent("a", hand=["SCATTER"])
        state = make_state([agent], ["HIDDEN_NEST"])
        assert evaluator._multiplayer_bonus(agent, state) == pytest.approx(-0.75)

    def test_interaction_bonus_grows_with_foxes_left_to_act(self, evaluator):
        state = three_fox_state(["HIDDEN_NEST"])
        first = evaluator._multiplayer_bonus(state.agent("a"), state)
        last = evaluator._multiplayer_bonus(state.agent("c"), state)
        assert first > last > 0


class TestTargeting:

    def test_hold_still_targets_richest_opponent(self, evaluator):
        state = three_fox_state(["HIDDEN_NEST"], hand=["HOLD_STILL"])
        agent = state.agent("a")
        intel = evaluator.resolver.resolve(agent, state)

        play = evaluator.choose_play(agent, state, intel, "HOLD_STILL")

        assert play.target_id == "c"

    def test_mask_swap_needs_another_color(self, evaluator):
        a = make_agent("a", "RED", loot=[1], hand=["MASK_SWAP"])
        b = make_agent("b", "RED", loot=[5], join_order=1)
        state = make_state([a, b], ["HIDDEN_NEST"])
        intel = evaluator.resolver.resolve(a, state)
        assert evaluator.choose_play(a, state, intel, "MASK_SWAP") is None

    def test_set_lead_prefers_opponents(self, evaluator):
        a = make_agent("a", "RED", loot=[1], join_order=0)
        ally = make_agent("x", "RED", loot=[20], join_order=1)
        opp = make_agent("b", "BLUE", loot=[2], join_order=2)
        state = make_state([a, ally, opp], ["HIDDEN_NEST"])
        order = evaluator.target_preference(a, state, EffectKind.SET_LEAD)
        assert [t.id for t in order] == ["b", "x"]

    def test_predict_uses_next_event(self, evaluator):
        state = two_fox_state(["GATE_TOLL", "HIDDEN_NEST"], hand=["NOSE_FOR_TROUBLE"])
        agent = state.agent("a")
        intel = evaluator.resolver.resolve(agent, state)
        play = evaluator.choose_play(agent, state, intel, "NOSE_FOR_TROUBLE")
        assert play.payload == "GATE_TOLL"


class TestSimulation:

    def test_unimplemented_effect_is_discounted(self, evaluator):
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE"], hand=["SCENT_CHECK"])
        result = evaluator.evaluate(state.agent("a"), state)
        scent = next(x for x in result.ranked if x.action_id == "SCENT_CHECK")
        assert any("not implemented" in r for r in scent.reasoning)

    def test_random_effect_is_deterministic(self):
        sequence = ["DOG_CHARGE", "HIDDEN_NEST", "DEN_BLUE", "GATE_TOLL", "DEN_RED"]
        scores = []
        for _ in range(2):
            evaluator = OpsEvaluator(bundled_catalog(), default_config())
            state = two_fox_state(sequence, hand=["KICK_UP_DUST"], game_id="g1")
            result = evaluator.evaluate(state.agent("a"), state)
            dust = next(x for x in result.ranked if x.action_id == "KICK_UP_DUST")
            scores.append(dust.score)
            assert any("Random effect" in r for r in dust.reasoning)
        assert scores[0] == scores[1]

    def test_second_card_sees_first_cards_effect(self):
        """DEN_SIGNAL then SCATTER: SCATTER is scored on the post-immunity state"""
        calls = []

        class RecordingOps(OpsEvaluator):
            def play_delta(self, ctx, state, play, baseline=None):
                calls.append((play.action_id, dict(state.flags.den_immune), state is ctx.state))
                return super().play_delta(ctx, state, play, baseline)

        evaluator = RecordingOps(bundled_catalog(), default_config())
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE"], hand=["DEN_SIGNAL", "SCATTER"])

        result = evaluator.evaluate(state.agent("a"), state)

        assert ("SCATTER", {"RED": True}, False) in calls
        assert state.flags.den_immune == {}
        combos = [x for x in result.ranked if x.action_type == ActionType.COMBO]
        assert {c.action_id for c in combos} == {"DEN_SIGNAL+SCATTER", "SCATTER+DEN_SIGNAL"}
        assert all(len(c.plays) == 2 for c in combos)

    def test_snapshot_is_not_mutated_by_simulation(self, evaluator):
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE", "DEN_BLUE"],
                              hand=["KICK_UP_DUST", "HOLD_STILL", "MASK_SWAP"])
        before_track = list(state.event_sequence)
        before_hand = list(state.agent("a").hand)

        evaluator.evaluate(state.agent("a"), state)

        assert state.event_sequence == before_track
        assert state.agent("a").hand == before_hand
        assert state.agent("a").den_color == "RED"
        assert not state.flags.ops_locked
        assert state.flags.hold_still == {}

    def test_randomized_opener_averages_the_follow_up(self):
        """KICK_UP_DUST then HOLD_STILL: HOLD_STILL is scored on every sampled shuffle"""
        sequence = ["DOG_CHARGE", "HIDDEN_NEST", "DEN_BLUE", "GATE_TOLL", "DEN_RED"]
        after_dust = []

        class RecordingOps(OpsEvaluator):
            def play_delta(self, ctx, state, play, baseline=None):
                if play.action_id == "HOLD_STILL" and "KICK_UP_DUST" in state.action_discard:
                    after_dust.append(list(state.event_sequence))
                return super().play_delta(ctx, state, play, baseline)

        scores = []
        for _ in range(2):
            after_dust.clear()
            evaluator = RecordingOps(bundled_catalog(), default_config())
            state = two_fox_state(sequence, hand=["KICK_UP_DUST", "HOLD_STILL"], game_id="g1")

            result = evaluator.evaluate(state.agent("a"), state)

            assert len(after_dust) == evaluator.sampler.n_samples
            combo = next(x for x in result.ranked if x.action_id == "KICK_UP_DUST+HOLD_STILL")
            assert any(r.startswith("Follow-up over 6 outcomes of KICK_UP_DUST") for r in combo.reasoning)
            scores.append(combo.score)
        assert scores[0] == scores[1]


class TestComboGate:

    @staticmethod
    def context(evaluator, state):
        agent = state.agent("a")
        return evaluator._build_context(agent, state, evaluator.resolver.resolve(agent, state))

    def test_margin_is_the_two_card_spend_cost(self, evaluator):
        """Empty action deck, round 1: 0.4 base x 0.4 card value x 1.05 early x 2 cards"""
        ctx = self.context(evaluator, two_fox_state(["HIDDEN_NEST"], hand=["SCATTER", "DEN_SIGNAL"]))
        assert evaluator.combo_margin(ctx) == pytest.approx(evaluator.spend_cost(ctx, 2))
        assert evaluator.combo_margin(ctx) == pytest.approx(0.336)

    def test_combo_on_the_boundary(self, evaluator):
        ctx = self.context(evaluator, two_fox_state(["HIDDEN_NEST"], hand=["SCATTER", "DEN_SIGNAL"]))
        margin = evaluator.combo_margin(ctx)
        assert evaluator.prefers_combo(ctx, 1.0 + margin, 1.0)
        assert not evaluator.prefers_combo(ctx, 1.0 + margin - 1e-6, 1.0)

    def test_configured_floor_adds_to_the_margin(self):
        evaluator = OpsEvaluator(bundled_catalog(), default_config({'ops': {'combo_min_gain': 0.5}}))
        ctx = self.context(evaluator, two_fox_state(["HIDDEN_NEST"], hand=["SCATTER", "DEN_SIGNAL"]))
        assert evaluator.combo_margin(ctx) == pytest.approx(0.336 + 0.5)

    @pytest.mark.parametrize("offset,reason", [(0.0, "BEST_COMBO"), (-1e-6, "BEST_SINGLE")])
    def test_evaluate_uses_the_margin(self, offset, reason):
        """A combo exactly one margin above the best single is played; anything less is not"""

        class FixedCombo(OpsEvaluator):
            def _search_combos(self, ctx, scored):
                score = scored[0].adjusted + self.combo_margin(ctx) + offset
                return [EvaluatedAction(action_id="SCATTER+DEN_SIGNAL", action_type=ActionType.COMBO, score=score)]

        evaluator = FixedCombo(bundled_catalog(), default_config({'ops': {'min_advantage': -10.0}}))
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE"], hand=["SCATTER", "DEN_SIGNAL"])

        result = evaluator.evaluate(state.agent("a"), state)

        assert result.meta['reason'] == reason


class TestPlayStyle:

    def test_den_presets(self, evaluator):
        """DEN_SIGNAL lowers risk: cautious GREEN likes it, bold RED does not"""
        assert evaluator.style_adjustment(make_agent("g", "GREEN"), "DEN_SIGNAL") == pytest.approx(0.12)
        assert evaluator.style_adjustment(make_agent("r", "RED"), "DEN_SIGNAL") == pytest.approx(-0.08)

    def test_unknown_den_uses_default_style(self, evaluator):
        assert evaluator.style_adjustment(make_agent("x", ""), "DEN_SIGNAL") == pytest.approx(0.06)

    def test_untagged_dimensions_are_neutral(self, evaluator):
        """YELLOW keeps risk at 1.0 and DEN_SIGNAL's control is only 2"""
        assert evaluator.style_adjustment(make_agent("y", "YELLOW"), "DEN_SIGNAL") == pytest.approx(-0.02)

    def test_style_scale_from_config(self):
        evaluator = OpsEvaluator(bundled_catalog(), default_config({'ops': {'style_scale': 0.0}}))
        assert evaluator.style_adjustment(make_agent("g", "GREEN"), "DEN_SIGNAL") == 0.0


class TestDuplicatePlays:

    @staticmethod
    def context(evaluator, hand, **kwargs):
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE"], hand=hand, **kwargs)
        agent = state.agent("a")
        return evaluator._build_context(agent, state, evaluator.resolver.resolve(agent, state))

    def test_fresh_card_has_no_penalty(self, evaluator):
        ctx = self.context(evaluator, ["SCATTER"], discard_recent=["HOLD_STILL"])
        assert evaluator.duplicate_penalty(ctx, "SCATTER") == 0.0

    def test_played_this_round(self, evaluator):
        ctx = self.context(evaluator, ["SCATTER"], discard_this_round=["SCATTER"])
        assert evaluator.duplicate_penalty(ctx, "SCATTER") == pytest.approx(0.75)

    def test_twice_in_recent_window(self, evaluator):
        ctx = self.context(evaluator, ["SCATTER"], discard_recent=["SCATTER", "HOLD_STILL", "SCATTER"])
        assert evaluator.duplicate_penalty(ctx, "SCATTER") == pytest.approx(0.5)

    def test_third_in_a_row(self, evaluator):
        ctx = self.context(evaluator, ["SCATTER"], discard_recent=["HOLD_STILL", "SCATTER", "SCATTER"])
        assert evaluator.duplicate_penalty(ctx, "SCATTER") == pytest.approx(0.5 + 2.0)

    def test_primed_combo_halves_the_penalty(self, evaluator):
        """KICK_UP_DUST then BURROW_BEACON scores 9 in the combo table"""
        ctx = self.context(evaluator, ["KICK_UP_DUST", "BURROW_BEACON", "SCATTER"],
                           discard_this_round=["BURROW_BEACON", "SCATTER"])
        assert ctx.primed_pair == ("KICK_UP_DUST", "BURROW_BEACON")
        assert evaluator.duplicate_penalty(ctx, "BURROW_BEACON") == pytest.approx(0.375)
        assert evaluator.duplicate_penalty(ctx, "SCATTER") == pytest.approx(0.75)

    def test_penalty_shows_in_scoring(self, evaluator):
        state = two_fox_state(["HIDDEN_NEST", "DOG_CHARGE"], hand=["SCATTER"], discard_this_round=["SCATTER"])
        result = evaluator.evaluate(state.agent("a"), state)
        scatter = next(x for x in result.ranked if x.action_id == "SCATTER")
        assert "Played again too soon (-0.8)" in scatter.reasoning
