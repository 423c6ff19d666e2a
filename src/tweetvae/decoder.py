"""Decoder: latent vector -> byte sequence.

The decoder is an LSTM stack topped by a stateless readout (linear to 256
classes + log-softmax). A latent vector never enters the stack as input; it
becomes the *initial state* of every LSTM through the `StateMapper`.

State packing
-------------
The mapper projects a latent row to one flat vector and slices it, per sample,
in layer order:

    [L1.internal | L1.last_out | L2.internal | L2.last_out | ...]

Stateless layers take no slice. `pack_state` is the exact inverse and is also
the backward pass of `unpack_state` (custom VJP), so during guided training the
gradient reaching the initial states is packed back the same way before it
flows through the projection into the latent vector.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any

import equinox as eqx
import jax
import jax.numpy as jnp

from tweetvae.codec import NUM_SYMBOLS, TERMINATOR, decode_distribution, one_hot
from tweetvae.layers import Readout, lstm_stack, scan_stack, state_layout, step_stack
from tweetvae.types import LSTMState, SeqBatch

logger = logging.getLogger(__name__)

Layout = tuple[int | None, ...]

# Upper bound on unguided generation. The model stops on its own when it emits
# the terminator; this only guards against a model that never does.
DEFAULT_MAX_DECODE_LEN = 1024


# ------------------------------ State packing ------------------------------


def packed_state_size(layout: Layout) -> int:
    """Width of one sample's flat state vector: sum(2 * H_i) over stateful layers."""
    return sum(2 * width for width in layout if width is not None)


@partial(jax.custom_vjp, nondiff_argnums=(1,))
def unpack_state(flat: jax.Array, layout: Layout) -> tuple[LSTMState | None, ...]:
    """Slice flat per-sample vectors [B, S] into per-layer states.

    :param jax.Array flat: [B, packed_state_size(layout)].
    :param Layout layout: Per-layer widths, None for stateless layers.
    :return tuple: One `LSTMState` per stateful layer, None elsewhere.
    """
    if flat.shape[-1] != packed_state_size(layout):
        raise ValueError(
            f"flat state width {flat.shape[-1]} does not match layout {layout} "
            f"(expected {packed_state_size(layout)})"
        )
    states: list[LSTMState | None] = []
    offset = 0
    for width in layout:
        if width is None:
            states.append(None)
            continue
        internal = flat[:, offset : offset + width]
        offset += width
        last_out = flat[:, offset : offset + width]
        offset += width
        states.append(LSTMState(internal=internal, last_out=last_out))
    return tuple(states)


def pack_state(states: tuple[Any, ...], layout: Layout) -> jax.Array:
    """Inverse of `unpack_state`: per-layer states -> flat [B, S]."""
    parts = []
    for width, state in zip(layout, states, strict=True):
        if width is None:
            continue
        parts.append(state.internal)
        parts.append(state.last_out)
    return jnp.concatenate(parts, axis=-1)


def _unpack_fwd(flat, layout):
    return unpack_state(flat, layout), None


def _unpack_bwd(layout, _residuals, state_grad):
    return (pack_state(state_grad, layout),)


unpack_state.defvjp(_unpack_fwd, _unpack_bwd)


class StateMapper(eqx.Module):
    """Linear map from a latent vector to the initial state of a layer stack."""

    proj: eqx.nn.Linear
    layout: Layout = eqx.field(static=True)

    def __init__(self, latent_size: int, layout: Layout, *, key: jax.Array):
        """Initialize the mapper.

        :param int latent_size: Latent dimensionality D.
        :param Layout layout: Per-layer state widths (None for stateless layers).
        :param jax.Array key: PRNG key for initialization.
        """
        self.layout = tuple(layout)
        self.proj = eqx.nn.Linear(latent_size, packed_state_size(self.layout), key=key)

    def latent_to_state(self, latent: jax.Array) -> tuple[LSTMState | None, ...]:
        """Map latents [B, D] to per-layer initial states."""
        flat = jax.vmap(self.proj)(latent)
        return unpack_state(flat, self.layout)

    def state_to_latent_gradient(self, state_grad: tuple[Any, ...]) -> jax.Array:
        """Route a gradient w.r.t. the initial states back to the latents.

        Standalone form of the backward pass autodiff takes through
        `latent_to_state` during training: the custom VJP of `unpack_state`
        packs the state gradient, then the projection's transpose maps it to
        the latents.

        :param state_grad: Per-layer gradients shaped like `latent_to_state`'s output.
        :return jax.Array: [B, D] gradient w.r.t. the latent rows.
        """
        flat_grad = pack_state(state_grad, self.layout)
        return flat_grad @ self.proj.weight


# ------------------------------ Decoder ------------------------------------


class Decoder(eqx.Module):
    """LSTM stack + readout, initialized from a latent vector by a StateMapper.

    Contract:
        guided(latent [B, D], guide: SeqBatch) -> log_probs [B, T, 256]
        unguided(latent [D], max_len) -> bytes
    """

    layers: tuple[Any, ...]
    state_mapper: StateMapper
    latent_size: int = eqx.field(static=True)
    state_size: int = eqx.field(static=True)

    def __init__(
        self,
        latent_size: int,
        state_size: int,
        num_layers: int = 3,
        *,
        in_weight_scale: float = 1.0,
        key: jax.Array,
    ):
        """Initialize the decoder.

        :param int latent_size: Latent dimensionality D.
        :param int state_size: Hidden width of every LSTM layer.
        :param int num_layers: Number of LSTM layers.
        :param float in_weight_scale: Input-weight multiplier for each LSTM.
        :param jax.Array key: PRNG key for initialization.
        """
        k_stack, k_out, k_map = jax.random.split(key, 3)
        lstms = lstm_stack(
            NUM_SYMBOLS, state_size, num_layers, in_weight_scale=in_weight_scale, key=k_stack
        )
        self.layers = (*lstms, Readout(state_size, NUM_SYMBOLS, key=k_out))
        self.state_mapper = StateMapper(latent_size, state_layout(self.layers), key=k_map)
        self.latent_size = latent_size
        self.state_size = state_size

    @property
    def num_layers(self) -> int:
        return sum(1 for layer in self.layers if layer.stateful)

    def guided(self, latent: jax.Array, guide: SeqBatch) -> jax.Array:
        """Teacher-forced decode of a whole batch in one pass.

        :param jax.Array latent: [B, D] latent vectors (sampled during training).
        :param SeqBatch guide: Ground-truth inputs, terminator first.
        :return jax.Array: [B, T, 256] log-probabilities of the next byte.
        """
        start = self.state_mapper.latent_to_state(latent)
        _, log_probs = scan_stack(self.layers, start, guide.vectors, guide.present)
        return log_probs

    def unguided(self, latent: jax.Array, max_len: int = DEFAULT_MAX_DECODE_LEN) -> bytes:
        """Autoregressively decode a single latent vector.

        Feeds the terminator, then the model's own argmax, until the model emits
        the terminator or `max_len` bytes have been produced.

        :param jax.Array latent: [D] latent vector.
        :param int max_len: Maximum number of bytes to produce.
        :raises ValueError: If max_len < 1.
        :return bytes: Decoded bytes, terminator excluded.
        """
        if max_len < 1:
            raise ValueError(f"max_len must be positive, got {max_len}")

        states = self.state_mapper.latent_to_state(jnp.asarray(latent)[None, :])
        symbol = TERMINATOR
        out = bytearray()
        for _ in range(max_len):
            states, log_probs = _decode_step(self.layers, states, one_hot(symbol)[None, :])
            symbol = decode_distribution(log_probs[0])
            if symbol == TERMINATOR:
                return bytes(out)
            out.append(symbol)
        logger.warning("Unguided decode hit max_len=%d without a terminator", max_len)
        return bytes(out)


@eqx.filter_jit
def _decode_step(layers, states, x):
    return step_stack(layers, states, x)
