"""
Sampling for randomized card effects.

Cards like KICK_UP_DUST and MOLTING_MASK have a random outcome. Their value
is the mean utility delta over a fixed number of seeded simulations,
multiplied by an explicit optimism factor (< 1) so one lucky sample cannot
carry the whole estimate.

Seeds are derived from a stable tag (game, round, agent, card, sample
index), so the same snapshot always yields the same estimate.
"""

import logging
import zlib
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class SampleResult:
    """Aggregate of N sampled outcomes."""
    mean: float                 # Plain mean of the samples
    discounted: float           # mean x optimism
    worst: float
    best: float
    optimism: float
    samples: List[float] = field(default_factory=list)


def stable_seed(tag: str) -> int:
    """Deterministic 32-bit seed for a tag string."""
    return zlib.crc32(tag.encode('utf-8')) & 0xFFFFFFFF


class EffectSampler:
    """
    Runs a scoring function over N seeded random generators.
    """

    DEFAULT_N_SAMPLES = 6
    DEFAULT_OPTIMISM = 0.55

    def __init__(self, n_samples: Optional[int] = None, optimism: Optional[float] = None):
        self.n_samples = max(1, int(n_samples if n_samples is not None else self.DEFAULT_N_SAMPLES))
        optimism = float(optimism if optimism is not None else self.DEFAULT_OPTIMISM)
        self.optimism = max(0.0, min(1.0, optimism))

        logger.debug(f"EffectSampler initialized: n={self.n_samples}, optimism={self.optimism}")

    def rng_for(self, tag: str, index: int) -> np.random.Generator:
        return np.random.default_rng(stable_seed(f"{tag}#{index}"))

    def expectation(self, score_fn: Callable[[np.random.Generator], float], tag: str) -> SampleResult:
        """
        Evaluate score_fn once per sample and aggregate.

        Args:
            score_fn: Receives a seeded Generator, returns a utility delta
            tag: Stable identifier for seeding
        """
        samples = [float(score_fn(self.rng_for(tag, i))) for i in range(self.n_samples)]
        values = np.array(samples, dtype=float)
        mean = float(values.mean())
        result = SampleResult(
            mean=mean,
            discounted=mean * self.optimism,
            worst=float(values.min()),
            best=float(values.max()),
            optimism=self.optimism,
            samples=samples,
        )
        logger.debug(f"Sampled {tag}: mean={mean:.2f} worst={result.worst:.2f} "
                     f"best={result.best:.2f} -> {result.discounted:.2f}")
        return result
