"""Reparameterized latent sampling and the closed-form KL term."""

from __future__ import annotations

import jax
import jax.numpy as jnp


def reparameterize(mean: jax.Array, log_stddev: jax.Array, noise: jax.Array) -> jax.Array:
    """z = mean + exp(log_stddev) * noise, differentiable in mean and log_stddev."""
    return mean + jnp.exp(log_stddev) * noise


def standard_noise(
    key: jax.Array, batch_size: int, latent_size: int, dtype=jnp.float32
) -> jax.Array:
    """[B, D] standard-normal noise for `reparameterize`."""
    return jax.random.normal(key, (batch_size, latent_size), dtype=dtype)


def sample_latent(key: jax.Array, mean: jax.Array, log_stddev: jax.Array) -> jax.Array:
    """Draw one latent per row with fresh standard-normal noise.

    One-shot form of what training does in two steps: `Trainer.next_noise`
    draws `standard_noise` up front so a batch's cost and gradient see the
    same noise, then the cost applies `reparameterize`.

    :param jax.Array key: PRNG key; callers split a new one per call.
    :param jax.Array mean: [B, D] posterior means.
    :param jax.Array log_stddev: [B, D] posterior log standard deviations.
    :return jax.Array: [B, D] latent sample.
    """
    noise = standard_noise(key, *mean.shape, dtype=mean.dtype)
    return reparameterize(mean, log_stddev, noise)


def kl_divergence(mean: jax.Array, log_stddev: jax.Array) -> jax.Array:
    """KL(N(mean, diag(stddev^2)) || N(0, I)) per batch row.

    0.5 * (sum(stddev^2) + dot(mean, mean) - D) - sum(log_stddev)

    :param jax.Array mean: [B, D].
    :param jax.Array log_stddev: [B, D].
    :return jax.Array: [B] non-negative divergences.
    """
    dim = mean.shape[-1]
    variance = jnp.exp(2 * log_stddev)
    return 0.5 * (
        jnp.sum(variance, axis=-1) + jnp.sum(mean * mean, axis=-1) - dim
    ) - jnp.sum(log_stddev, axis=-1)
