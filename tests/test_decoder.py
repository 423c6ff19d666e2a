"""Decoder: guided (teacher-forced) and unguided decoding."""

from __future__ import annotations

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np
import pytest

from tweetvae.codec import TERMINATOR
from tweetvae.data import build_batch
from tweetvae.decoder import Decoder
from tweetvae.encoder import Encoder
from tweetvae.layers import Readout


def test_stack_ends_with_stateless_readout(tiny_models: tuple[Encoder, Decoder]) -> None:
    _, decoder = tiny_models
    assert isinstance(decoder.layers[-1], Readout)
    assert decoder.num_layers == 3
    assert decoder.state_mapper.layout == (8, 8, 8, None)
    assert decoder.state_mapper.proj.weight.shape == (6 * 8, 4)


def test_guided_returns_log_probabilities(tiny_models: tuple[Encoder, Decoder]) -> None:
    _, decoder = tiny_models
    batch = build_batch([b"hi", b"yo!"])
    log_probs = decoder.guided(jnp.zeros((2, 4)), batch.guide)

    assert log_probs.shape == (2, 4, 256)
    np.testing.assert_allclose(
        np.asarray(jax.scipy.special.logsumexp(log_probs, axis=-1)), 0.0, atol=1e-5
    )


def test_guided_real_steps_ignore_padding(tiny_models: tuple[Encoder, Decoder]) -> None:
    _, decoder = tiny_models
    latent = jax.random.normal(jax.random.PRNGKey(3), (1, 4))
    alone = decoder.guided(latent, build_batch([b"hey"]).guide)
    padded = decoder.guided(
        jnp.concatenate([latent, latent]), build_batch([b"hey", b"hello world"], pad_multiple=8).guide
    )
    np.testing.assert_allclose(np.asarray(padded[0, :4]), np.asarray(alone[0]), atol=1e-5)


def test_latent_changes_the_output(tiny_models: tuple[Encoder, Decoder]) -> None:
    _, decoder = tiny_models
    guide = build_batch([b"ab"]).guide
    a = decoder.guided(jnp.zeros((1, 4)), guide)
    b = decoder.guided(jnp.full((1, 4), 3.0), guide)
    assert not np.allclose(np.asarray(a), np.asarray(b))


def test_unguided_respects_max_len(tiny_models: tuple[Encoder, Decoder]) -> None:
    _, decoder = tiny_models
    out = decoder.unguided(jnp.zeros(4), max_len=5)
    assert isinstance(out, bytes)
    assert len(out) <= 5
    assert 0 not in out


def test_unguided_is_deterministic(tiny_models: tuple[Encoder, Decoder]) -> None:
    _, decoder = tiny_models
    latent = jnp.linspace(-1.0, 1.0, 4)
    assert decoder.unguided(latent, max_len=6) == decoder.unguided(latent, max_len=6)


def test_unguided_matches_guided_argmax(tiny_models: tuple[Encoder, Decoder]) -> None:
    _, decoder = tiny_models
    # never predict the terminator, so the decode always runs to max_len
    bias = decoder.layers[-1].linear.bias
    decoder = eqx.tree_at(
        lambda d: d.layers[-1].linear.bias, decoder, bias.at[TERMINATOR].set(-1e4)
    )
    latent = jnp.linspace(-1.0, 1.0, 4)
    out = decoder.unguided(latent, max_len=4)
    assert len(out) == 4
    assert TERMINATOR not in out
    log_probs = decoder.guided(latent[None, :], build_batch([out]).guide)
    greedy = np.asarray(log_probs[0]).argmax(axis=-1)
    assert bytes(greedy[: len(out)].tolist()) == out


def test_unguided_rejects_bad_max_len(tiny_models: tuple[Encoder, Decoder]) -> None:
    _, decoder = tiny_models
    with pytest.raises(ValueError, match="max_len"):
        decoder.unguided(jnp.zeros(4), max_len=0)
