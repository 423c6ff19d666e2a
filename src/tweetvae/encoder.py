"""Encoder: byte sequence -> diagonal Gaussian posterior over the latent code."""

from __future__ import annotations

from collections.abc import Sequence

import equinox as eqx
import jax
import jax.numpy as jnp

from tweetvae.codec import NUM_SYMBOLS
from tweetvae.data.batch import build_reversed_input
from tweetvae.layers import LSTMLayer, lstm_stack, scan_stack, start_states
from tweetvae.types import SeqBatch

# Log-domain bias for the stddev head. Starting below zero keeps early training
# from being dominated by sampling noise: -2 starts stddevs near e^-2.
INIT_STDDEV_BIAS = -2.0


class Encoder(eqx.Module):
    """LSTM stack over reversed bytes, with mean and log-stddev heads.

    Contract:
        __call__(seq: SeqBatch) -> (mean [B, D], log_stddev [B, D])

    `seq` must be the *reversed* sample bytes without a terminator.
    """

    layers: tuple[LSTMLayer, ...]
    mean_head: eqx.nn.Linear
    log_stddev_head: eqx.nn.Linear
    latent_size: int = eqx.field(static=True)
    state_size: int = eqx.field(static=True)

    def __init__(
        self,
        latent_size: int,
        state_size: int,
        num_layers: int = 3,
        *,
        stddev_bias_init: float = INIT_STDDEV_BIAS,
        in_weight_scale: float = 1.0,
        key: jax.Array,
    ):
        """Initialize the encoder.

        :param int latent_size: Latent dimensionality D.
        :param int state_size: Hidden width of every LSTM layer.
        :param int num_layers: Number of LSTM layers.
        :param float stddev_bias_init: Initial offset of the log-stddev bias.
        :param float in_weight_scale: Input-weight multiplier for each LSTM.
        :param jax.Array key: PRNG key for initialization.
        """
        k_stack, k_mean, k_std = jax.random.split(key, 3)
        self.layers = lstm_stack(
            NUM_SYMBOLS, state_size, num_layers, in_weight_scale=in_weight_scale, key=k_stack
        )
        self.mean_head = eqx.nn.Linear(state_size, latent_size, key=k_mean)
        std_head = eqx.nn.Linear(state_size, latent_size, key=k_std)
        self.log_stddev_head = eqx.tree_at(
            lambda lin: lin.bias, std_head, std_head.bias + stddev_bias_init
        )
        self.latent_size = latent_size
        self.state_size = state_size

    @property
    def num_layers(self) -> int:
        return len(self.layers)

    def __call__(self, seq: SeqBatch) -> tuple[jax.Array, jax.Array]:
        if seq.vectors.shape[0] == 0:
            raise ValueError("must have at least one sequence")
        if seq.vectors.shape[1] == 0:
            raise ValueError("input sequences must be non-empty")
        vectors = eqx.error_if(
            seq.vectors, ~jnp.all(seq.present[:, 0]), "input sequences must be non-empty"
        )

        start = start_states(self.layers, vectors.shape[0])
        final, _ = scan_stack(self.layers, start, vectors, seq.present)
        tail = final[-1].last_out

        # Both heads read the same tail; autodiff handles the shared backward pass.
        mean = jax.vmap(self.mean_head)(tail)
        log_stddev = jax.vmap(self.log_stddev_head)(tail)
        return mean, log_stddev

    def encode(self, samples: Sequence[bytes | str]) -> tuple[jax.Array, jax.Array]:
        """Encode strings to their posterior means and log-stddevs.

        :param samples: Non-empty strings (str is UTF-8 encoded).
        :raises EmptySampleError: If any sample is empty.
        :return tuple: (mean [N, D], log_stddev [N, D]) in input order.
        """
        raw = [s.encode("utf-8") if isinstance(s, str) else bytes(s) for s in samples]
        return _apply_encoder(self, build_reversed_input(raw))


@eqx.filter_jit
def _apply_encoder(encoder: Encoder, seq: SeqBatch) -> tuple[jax.Array, jax.Array]:
    return encoder(seq)
