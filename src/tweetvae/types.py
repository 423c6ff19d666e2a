"""Core pytrees and shared types.

Keep this file small: it defines the **runtime contracts** between subsystems.

- `SeqBatch` is one padded, masked sequence batch.
- `Batch` is what the batch builder yields and the compiled cost consumes.
- `LSTMState` is the per-layer recurrent state the state mapper produces.

**Sequence contract**

  vectors: [B, T, 256] float32 one-hot rows (all-zero where absent)
  present: [B, T] bool

where B = number of samples and T = padded length. Sequences are right-padded,
so `present[:, 0]` is all True for a fresh batch and `present[:, t].sum()` never
increases with t.
"""

from __future__ import annotations

from typing import NamedTuple

import equinox as eqx
import jax


class SeqBatch(eqx.Module):
    """A padded batch of one-hot sequences with a present mask."""

    vectors: jax.Array
    present: jax.Array

    @property
    def batch_size(self) -> int:
        return int(self.vectors.shape[0])

    @property
    def num_steps(self) -> int:
        return int(self.vectors.shape[1])


class Batch(eqx.Module):
    """A training batch.

    - `reversed_input`: sample bytes in reverse order, no terminator (encoder input)
    - `guide`: terminator + bytes (decoder input under teacher forcing)
    - `desired`: bytes + terminator (decoder targets)

    `guide` and `desired` always share the same present mask.
    """

    reversed_input: SeqBatch
    guide: SeqBatch
    desired: SeqBatch


class LSTMState(NamedTuple):
    """Recurrent state of one LSTM layer for a whole batch.

    Both fields are [B, H]. `internal` is the cell memory, `last_out` the
    previous hidden output.
    """

    internal: jax.Array
    last_out: jax.Array
