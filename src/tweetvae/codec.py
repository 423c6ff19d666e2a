"""One-hot byte codec.

Every byte 0..255 is one class. Byte 0 doubles as the start/end-of-sequence
terminator, so it never appears inside a sample's body as far as the decoder
is concerned.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
import numpy as np

NUM_SYMBOLS = 0x100
TERMINATOR = 0


def one_hot(b: int) -> jax.Array:
    """Return the 256-dim indicator vector for byte `b`.

    :param int b: Byte value in [0, 256).
    :return jax.Array: float32 vector with a single 1 at index `b`.
    """
    return jax.nn.one_hot(b, NUM_SYMBOLS, dtype=jnp.float32)


def one_hot_ids(ids: np.ndarray, present: np.ndarray) -> np.ndarray:
    """One-hot encode a padded id array on the host.

    Absent slots become all-zero rows.

    :param np.ndarray ids: Integer array [B, T].
    :param np.ndarray present: Bool array [B, T].
    :return np.ndarray: float32 array [B, T, 256].
    """
    eye = np.eye(NUM_SYMBOLS, dtype=np.float32)
    return eye[ids] * present[..., None].astype(np.float32)


def decode_distribution(probabilities: jax.Array | np.ndarray) -> int:
    """Return the most probable byte of a (log-)probability vector."""
    return int(np.argmax(np.asarray(probabilities)))
