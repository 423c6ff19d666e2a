"""Model builders.

This file is the one place that turns a `ModelConfig` into modules. Everything
else talks in terms of:
- an `(encoder, decoder)` pair
- params pytree (inexact arrays) vs static pytree (everything else)
"""

from __future__ import annotations

from typing import Any

import equinox as eqx
import jax

from tweetvae.config import ModelConfig
from tweetvae.decoder import Decoder
from tweetvae.encoder import Encoder


def build_encoder(cfg: ModelConfig, *, key: jax.Array) -> Encoder:
    return Encoder(
        cfg.latent_size,
        cfg.state_size,
        cfg.num_layers,
        stddev_bias_init=cfg.stddev_bias_init,
        in_weight_scale=cfg.in_weight_scale,
        key=key,
    )


def build_decoder(cfg: ModelConfig, *, key: jax.Array) -> Decoder:
    return Decoder(
        cfg.latent_size,
        cfg.state_size,
        cfg.num_layers,
        in_weight_scale=cfg.in_weight_scale,
        key=key,
    )


def build_models(cfg: ModelConfig, *, key: jax.Array) -> tuple[Encoder, Decoder]:
    """Build a fresh encoder/decoder pair from one key."""
    k_enc, k_dec = jax.random.split(key)
    return build_encoder(cfg, key=k_enc), build_decoder(cfg, key=k_dec)


def partition_models(encoder: Encoder, decoder: Decoder) -> tuple[Any, Any]:
    """Split the pair into (params, static).

    params covers every inexact array: the encoder stack, the decoder stack,
    the state mapper, and also the encoder's mean and log-stddev heads. A
    gradient restricted to the two stacks and the state mapper would leave
    the heads at their initial projections.
    """
    return eqx.partition((encoder, decoder), eqx.is_inexact_array)
