"""Batch builder: raw byte strings -> padded, masked sequence batches.

For a sample `s` the decoder sequence is

    [TERMINATOR] + list(s) + [TERMINATOR]

`guide` is that sequence without its last element (what the decoder reads under
teacher forcing) and `desired` is it without its first element (what it must
predict). The encoder reads `s` reversed, without a terminator.

All three are right-padded to a shared length. We round that length up to
`pad_multiple` so a jitted cost sees a handful of shapes instead of one per
batch. Padding never changes the cost: it is masked out by `present`.
"""

from __future__ import annotations

from collections.abc import Sequence

import jax.numpy as jnp
import numpy as np

from tweetvae.codec import TERMINATOR, one_hot_ids
from tweetvae.types import Batch, SeqBatch


class EmptySampleError(ValueError):
    """Raised when a zero-length sample reaches the batch builder."""


def _round_up(n: int, multiple: int) -> int:
    return -(-n // multiple) * multiple


def _seq_batch(ids: np.ndarray, present: np.ndarray) -> SeqBatch:
    return SeqBatch(
        vectors=jnp.asarray(one_hot_ids(ids, present)),
        present=jnp.asarray(present),
    )


def build_batch(samples: Sequence[bytes], *, pad_multiple: int = 1) -> Batch:
    """Build a training batch from non-empty byte strings.

    :param samples: Byte strings, one per training example.
    :param int pad_multiple: Round the padded length up to a multiple of this.
    :raises ValueError: If `samples` is empty or `pad_multiple` < 1.
    :raises EmptySampleError: If any sample has zero length.
    :return Batch: reversed_input, guide and desired sequence batches.
    """
    if len(samples) == 0:
        raise ValueError("batch must contain at least one sample")
    if pad_multiple < 1:
        raise ValueError(f"pad_multiple must be >= 1, got {pad_multiple}")

    arrays = []
    for i, sample in enumerate(samples):
        arr = np.frombuffer(bytes(sample), dtype=np.uint8)
        if arr.size == 0:
            raise EmptySampleError(f"encountered empty sample string (index {i})")
        arrays.append(arr)

    batch_size = len(arrays)
    # +1 for the terminator on either end of guide/desired
    num_steps = _round_up(max(a.size for a in arrays) + 1, pad_multiple)

    guide_ids = np.full((batch_size, num_steps), TERMINATOR, dtype=np.int32)
    desired_ids = np.full((batch_size, num_steps), TERMINATOR, dtype=np.int32)
    seq_present = np.zeros((batch_size, num_steps), dtype=bool)
    rev_ids = np.full((batch_size, num_steps), TERMINATOR, dtype=np.int32)
    rev_present = np.zeros((batch_size, num_steps), dtype=bool)

    for i, arr in enumerate(arrays):
        n = arr.size
        full = np.concatenate([[TERMINATOR], arr, [TERMINATOR]])
        guide_ids[i, : n + 1] = full[:-1]
        desired_ids[i, : n + 1] = full[1:]
        seq_present[i, : n + 1] = True
        rev_ids[i, :n] = arr[::-1]
        rev_present[i, :n] = True

    return Batch(
        reversed_input=_seq_batch(rev_ids, rev_present),
        guide=_seq_batch(guide_ids, seq_present),
        desired=_seq_batch(desired_ids, seq_present),
    )


def build_reversed_input(samples: Sequence[bytes], *, pad_multiple: int = 1) -> SeqBatch:
    """Build just the encoder input for inference-time encoding."""
    return build_batch(samples, pad_multiple=pad_multiple).reversed_input
