"""Recurrent layer stacks.

A stack is a tuple of layers that share one step interface:

    state, out = layer.step(state, x)     # x: [B, in], out: [B, out]

Each layer class declares `stateful`. Stateful layers (LSTMs) own per-sample
state that the decoder's state mapper fills in; stateless layers (the readout)
carry `None` and are skipped by state packing.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, ClassVar

import equinox as eqx
import jax
import jax.numpy as jnp

from tweetvae.types import LSTMState


class LSTMLayer(eqx.Module):
    """One LSTM layer applied to a batch."""

    cell: eqx.nn.LSTMCell
    hidden_size: int = eqx.field(static=True)

    stateful: ClassVar[bool] = True

    def __init__(
        self,
        input_size: int,
        hidden_size: int,
        *,
        in_weight_scale: float = 1.0,
        key: jax.Array,
    ):
        """Initialize the layer.

        :param int input_size: Input width.
        :param int hidden_size: Hidden (and output) width.
        :param float in_weight_scale: Multiplier applied to the input-to-hidden weights.
        :param jax.Array key: PRNG key for initialization.
        """
        cell = eqx.nn.LSTMCell(input_size, hidden_size, key=key)
        if in_weight_scale != 1.0:
            cell = eqx.tree_at(lambda c: c.weight_ih, cell, cell.weight_ih * in_weight_scale)
        self.cell = cell
        self.hidden_size = hidden_size

    def start(self, batch_size: int) -> LSTMState:
        zeros = jnp.zeros((batch_size, self.hidden_size), dtype=jnp.float32)
        return LSTMState(internal=zeros, last_out=zeros)

    def step(self, state: LSTMState, x: jax.Array) -> tuple[LSTMState, jax.Array]:
        h, c = jax.vmap(self.cell)(x, (state.last_out, state.internal))
        return LSTMState(internal=c, last_out=h), h


class Readout(eqx.Module):
    """Stateless projection to byte classes followed by log-softmax."""

    linear: eqx.nn.Linear

    stateful: ClassVar[bool] = False

    def __init__(self, in_size: int, num_classes: int, *, key: jax.Array):
        self.linear = eqx.nn.Linear(in_size, num_classes, key=key)

    def start(self, batch_size: int) -> None:
        _ = batch_size
        return None

    def step(self, state: None, x: jax.Array) -> tuple[None, jax.Array]:
        logits = jax.vmap(self.linear)(x)
        return state, jax.nn.log_softmax(logits, axis=-1)


def lstm_stack(
    input_size: int,
    hidden_size: int,
    num_layers: int,
    *,
    in_weight_scale: float,
    key: jax.Array,
) -> tuple[LSTMLayer, ...]:
    """Build `num_layers` LSTMs, the first reading `input_size` features."""
    keys = jax.random.split(key, num_layers)
    return tuple(
        LSTMLayer(
            input_size if i == 0 else hidden_size,
            hidden_size,
            in_weight_scale=in_weight_scale,
            key=k,
        )
        for i, k in enumerate(keys)
    )


def state_layout(layers: Sequence[Any]) -> tuple[int | None, ...]:
    """Per-layer state width: hidden size for stateful layers, None otherwise."""
    return tuple(layer.hidden_size if layer.stateful else None for layer in layers)


def start_states(layers: Sequence[Any], batch_size: int) -> tuple[Any, ...]:
    return tuple(layer.start(batch_size) for layer in layers)


def step_stack(
    layers: Sequence[Any], states: tuple[Any, ...], x: jax.Array
) -> tuple[tuple[Any, ...], jax.Array]:
    """Advance every layer of a stack by one timestep."""
    new_states = []
    for layer, state in zip(layers, states, strict=True):
        state, x = layer.step(state, x)
        new_states.append(state)
    return tuple(new_states), x


def scan_stack(
    layers: Sequence[Any],
    start: tuple[Any, ...],
    inputs: jax.Array,
    present: jax.Array,
) -> tuple[tuple[Any, ...], jax.Array]:
    """Run a stack over a padded batch with `lax.scan`.

    State only advances where `present` is True, so each sample's final state is
    its state after its last real timestep. Outputs at absent steps are
    computed but meaningless; callers mask them.

    :param layers: Layer stack.
    :param start: Initial per-layer states.
    :param jax.Array inputs: [B, T, F] inputs.
    :param jax.Array present: [B, T] bool mask.
    :return tuple: (final states, outputs [B, T, out]).
    """

    def body(states, xs):
        x, p = xs
        new_states, out = step_stack(layers, states, x)
        new_states = jax.tree_util.tree_map(
            lambda new, old: jnp.where(p[:, None], new, old), new_states, states
        )
        return new_states, out

    xs = (jnp.swapaxes(inputs, 0, 1), jnp.swapaxes(present, 0, 1))
    final, outputs = jax.lax.scan(body, start, xs)
    return final, jnp.swapaxes(outputs, 0, 1)
