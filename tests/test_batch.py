"""Batch builder: guide/desired/reversed sequences and masks."""

from __future__ import annotations

import numpy as np
import pytest

from tweetvae.codec import TERMINATOR
from tweetvae.data import EmptySampleError, build_batch, build_reversed_input
from tweetvae.types import SeqBatch


def _ids(seq: SeqBatch) -> np.ndarray:
    """Recover byte ids from one-hot rows, -1 where absent."""
    vectors = np.asarray(seq.vectors)
    present = np.asarray(seq.present)
    return np.where(present, vectors.argmax(axis=-1), -1)


def test_guide_and_desired_are_shifted_with_terminators() -> None:
    batch = build_batch([b"hi"])

    assert _ids(batch.guide)[0].tolist() == [TERMINATOR, ord("h"), ord("i")]
    assert _ids(batch.desired)[0].tolist() == [ord("h"), ord("i"), TERMINATOR]


def test_reversed_input_has_no_terminator() -> None:
    batch = build_batch([b"abc"])
    rev = _ids(batch.reversed_input)[0].tolist()
    assert rev[:3] == [ord("c"), ord("b"), ord("a")]
    assert rev[3:] == [-1]


def test_shorter_samples_are_right_padded() -> None:
    batch = build_batch([b"a", b"abcd"])
    present = np.asarray(batch.guide.present)

    assert present.shape == (2, 5)
    assert present[0].tolist() == [True, True, False, False, False]
    assert present[1].all()
    # absent slots are all-zero vectors
    assert not np.asarray(batch.guide.vectors)[0, 2:].any()
    np.testing.assert_array_equal(present, np.asarray(batch.desired.present))


def test_present_counts_never_increase_over_time() -> None:
    batch = build_batch([b"a", b"abcdef", b"abc"], pad_multiple=8)
    for seq in (batch.guide, batch.reversed_input):
        counts = np.asarray(seq.present).sum(axis=0)
        assert counts[0] == 3
        assert (np.diff(counts) <= 0).all()


def test_pad_multiple_rounds_up_length() -> None:
    batch = build_batch([b"hello"], pad_multiple=16)
    assert batch.guide.num_steps == 16
    assert int(np.asarray(batch.guide.present).sum()) == 6


def test_non_ascii_bytes_are_kept() -> None:
    raw = "é".encode()
    batch = build_batch([raw])
    assert _ids(batch.guide)[0, 1:3].tolist() == list(raw)


def test_empty_sample_raises() -> None:
    with pytest.raises(EmptySampleError, match="index 1"):
        build_batch([b"ok", b""])


def test_empty_batch_raises() -> None:
    with pytest.raises(ValueError, match="at least one sample"):
        build_batch([])


def test_bad_pad_multiple_raises() -> None:
    with pytest.raises(ValueError, match="pad_multiple"):
        build_batch([b"a"], pad_multiple=0)


def test_build_reversed_input_matches_batch() -> None:
    seq = build_reversed_input([b"xy", b"z"])
    full = build_batch([b"xy", b"z"])
    np.testing.assert_array_equal(np.asarray(seq.vectors), np.asarray(full.reversed_input.vectors))
