"""One-hot codec."""

from __future__ import annotations

import numpy as np

from tweetvae.codec import NUM_SYMBOLS, TERMINATOR, decode_distribution, one_hot, one_hot_ids


def test_one_hot_has_single_one_at_byte() -> None:
    v = np.asarray(one_hot(65))
    assert v.shape == (NUM_SYMBOLS,)
    assert v[65] == 1.0
    assert v.sum() == 1.0


def test_terminator_is_byte_zero() -> None:
    assert TERMINATOR == 0
    assert np.asarray(one_hot(TERMINATOR))[0] == 1.0


def test_decode_distribution_is_argmax() -> None:
    probs = np.full(NUM_SYMBOLS, 0.001, dtype=np.float32)
    probs[200] = 0.9
    assert decode_distribution(probs) == 200
    assert decode_distribution(np.log(probs)) == 200


def test_decode_inverts_one_hot_for_every_byte() -> None:
    for b in (0, 1, 127, 255):
        assert decode_distribution(one_hot(b)) == b


def test_one_hot_ids_zeroes_absent_slots() -> None:
    ids = np.array([[3, 4], [5, 0]], dtype=np.int32)
    present = np.array([[True, True], [True, False]])
    out = one_hot_ids(ids, present)

    assert out.shape == (2, 2, NUM_SYMBOLS)
    assert out[0, 1, 4] == 1.0
    assert out[1, 0, 5] == 1.0
    assert not out[1, 1].any()
