"""Per-dimension statistics of the encoder's posterior parameters.

For a random subset of samples we accumulate first and second moments of the
mean and log-stddev outputs, then report (mean, population stddev) per latent
dimension. Dimensions whose E[mu] spread is tiny and whose E[ln(sigma)] sits
near 0 are ones the encoder has stopped using.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from tweetvae.data import SampleList
from tweetvae.encoder import Encoder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LatentStatistics:
    """Per-dimension statistics, each array of shape [D]."""

    mean_mean: np.ndarray
    mean_stddev: np.ndarray
    log_stddev_mean: np.ndarray
    log_stddev_stddev: np.ndarray
    count: int


class _Moments:
    def __init__(self) -> None:
        self.total: np.ndarray | None = None
        self.total_sq: np.ndarray | None = None

    def add(self, rows: np.ndarray) -> None:
        s = rows.sum(axis=0, dtype=np.float64)
        s2 = (rows.astype(np.float64) ** 2).sum(axis=0)
        if self.total is None:
            self.total, self.total_sq = s, s2
        else:
            self.total += s
            self.total_sq += s2

    def finish(self, count: int) -> tuple[np.ndarray, np.ndarray]:
        mean = self.total / count
        var = self.total_sq / count - mean * mean
        # rounding can push a zero variance slightly negative
        return mean, np.sqrt(np.maximum(var, 0.0))


def latent_statistics(
    encoder: Encoder,
    samples: SampleList,
    *,
    num_samples: int = 512,
    batch_size: int = 32,
    rng: np.random.Generator,
) -> LatentStatistics:
    """Encode a random subset of samples and summarize the posterior parameters.

    :param Encoder encoder: Trained encoder.
    :param SampleList samples: Candidate samples (non-empty).
    :param int num_samples: Samples to use (capped at len(samples)).
    :param int batch_size: Samples per forward pass.
    :param np.random.Generator rng: Generator used to pick the subset.
    :raises ValueError: On an empty sample list or non-positive sizes.
    :return LatentStatistics: Per-dimension statistics.
    """
    if not samples:
        raise ValueError("cannot compute statistics of an empty sample list")
    if num_samples < 1:
        raise ValueError(f"num_samples must be positive, got {num_samples}")
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    order = rng.permutation(len(samples))[:num_samples]
    means, log_stddevs = _Moments(), _Moments()
    count = 0
    for start in range(0, len(order), batch_size):
        batch = [samples[i] for i in order[start : start + batch_size]]
        mean, log_stddev = encoder.encode(batch)
        means.add(np.asarray(mean))
        log_stddevs.add(np.asarray(log_stddev))
        count += len(batch)
        logger.info("Processed %d samples", count)

    mean_mean, mean_stddev = means.finish(count)
    ls_mean, ls_stddev = log_stddevs.finish(count)
    return LatentStatistics(
        mean_mean=mean_mean,
        mean_stddev=mean_stddev,
        log_stddev_mean=ls_mean,
        log_stddev_stddev=ls_stddev,
        count=count,
    )


def format_statistics(stats: LatentStatistics) -> list[str]:
    """One tab-separated line per latent dimension."""
    return [
        f"{i}\tE[μ]={stats.mean_mean[i]:.3f}\tσ(μ)={stats.mean_stddev[i]:.3f}"
        f"\tE[ln(σ)]={stats.log_stddev_mean[i]:.3f}\tσ(ln(σ))={stats.log_stddev_stddev[i]:.3f}"
        for i in range(len(stats.mean_mean))
    ]
