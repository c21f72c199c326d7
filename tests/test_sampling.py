"""
Tests for sampling.py
"""

import pytest

from foxbot.sampling import EffectSampler, stable_seed


class TestSeeds:

    def test_seed_is_stable(self):
        assert stable_seed("g1|2|a|KICK_UP_DUST") == stable_seed("g1|2|a|KICK_UP_DUST")
        assert stable_seed("g1|2|a|KICK_UP_DUST") != stable_seed("g1|3|a|KICK_UP_DUST")

    def test_same_tag_same_stream(self):
        sampler = EffectSampler()
        a = sampler.rng_for("tag", 0).integers(1_000_000, size=5)
        b = sampler.rng_for("tag", 0).integers(1_000_000, size=5)
        c = sampler.rng_for("tag", 1).integers(1_000_000, size=5)
        assert list(a) == list(b)
        assert list(a) != list(c)


class TestExpectation:

    def test_discounted_mean(self):
        sampler = EffectSampler(n_samples=4, optimism=0.5)
        values = iter([1.0, 2.0, 3.0, 6.0])

        result = sampler.expectation(lambda rng: next(values), "t")

        assert result.mean == pytest.approx(3.0)
        assert result.discounted == pytest.approx(1.5)
        assert result.worst == 1.0
        assert result.best == 6.0
        assert len(result.samples) == 4

    def test_repeatable_for_random_scores(self):
        sampler = EffectSampler(n_samples=6)
        first = sampler.expectation(lambda rng: float(rng.normal()), "repeat")
        second = sampler.expectation(lambda rng: float(rng.normal()), "repeat")
        assert first.samples == second.samples

    def test_bounds(self):
        sampler = EffectSampler(n_samples=0, optimism=3.0)
        assert sampler.n_samples == 1
        assert sampler.optimism == 1.0
