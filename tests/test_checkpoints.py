"""Encoder/decoder checkpoint save, load and create-or-load."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import jax
import pytest

from tweetvae.ckpt import (
    FORMAT_VERSION,
    META_FILE,
    CheckpointError,
    create_or_load,
    load_decoder,
    load_encoder,
    save_decoder,
    save_encoder,
)
from tweetvae.config import Config, ModelConfig
from tweetvae.decoder import Decoder
from tweetvae.encoder import Encoder
from tweetvae.model import build_models
from tweetvae.utils.tree import tree_allclose


def _cfg(tmp_path: Path, model: ModelConfig) -> Config:
    cfg = Config(model=model)
    return replace(
        cfg,
        checkpoint=replace(
            cfg.checkpoint,
            encoder_path=str(tmp_path / "enc_out"),
            decoder_path=str(tmp_path / "dec_out"),
        ),
    )


def test_encoder_round_trip(tmp_path: Path, tiny_models: tuple[Encoder, Decoder]) -> None:
    encoder, _ = tiny_models
    save_encoder(tmp_path / "enc", encoder)
    loaded = load_encoder(tmp_path / "enc")

    assert tree_allclose(loaded, encoder)
    assert loaded.latent_size == 4
    assert loaded.state_size == 8


def test_decoder_round_trip_includes_state_mapper(
    tmp_path: Path, tiny_models: tuple[Encoder, Decoder]
) -> None:
    _, decoder = tiny_models
    save_decoder(tmp_path / "dec", decoder)
    loaded = load_decoder(tmp_path / "dec")

    assert tree_allclose(loaded, decoder)
    assert tree_allclose(loaded.state_mapper, decoder.state_mapper)


def test_meta_records_architecture(tmp_path: Path, tiny_models: tuple[Encoder, Decoder]) -> None:
    encoder, _ = tiny_models
    save_encoder(tmp_path / "enc", encoder)
    meta = json.loads((tmp_path / "enc" / META_FILE).read_text())

    assert meta["kind"] == "encoder"
    assert meta["format_version"] == FORMAT_VERSION
    assert (meta["latent_size"], meta["state_size"], meta["num_layers"]) == (4, 8, 3)


def test_saving_twice_overwrites(tmp_path: Path, model_cfg: ModelConfig) -> None:
    first, _ = build_models(model_cfg, key=jax.random.PRNGKey(0))
    second, _ = build_models(model_cfg, key=jax.random.PRNGKey(1))
    save_encoder(tmp_path / "enc", first)
    save_encoder(tmp_path / "enc", second)
    assert tree_allclose(load_encoder(tmp_path / "enc"), second)


def test_missing_checkpoint_raises_file_not_found(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_encoder(tmp_path / "nope")


def test_wrong_kind_raises(tmp_path: Path, tiny_models: tuple[Encoder, Decoder]) -> None:
    encoder, _ = tiny_models
    save_encoder(tmp_path / "enc", encoder)
    with pytest.raises(CheckpointError, match="expected 'decoder'"):
        load_decoder(tmp_path / "enc")


def test_directory_without_meta_raises(tmp_path: Path) -> None:
    (tmp_path / "enc").mkdir()
    with pytest.raises(CheckpointError, match=META_FILE):
        load_encoder(tmp_path / "enc")


def test_corrupt_meta_raises(tmp_path: Path, tiny_models: tuple[Encoder, Decoder]) -> None:
    encoder, _ = tiny_models
    save_encoder(tmp_path / "enc", encoder)
    (tmp_path / "enc" / META_FILE).write_text("{not json")
    with pytest.raises(CheckpointError, match="corrupted"):
        load_encoder(tmp_path / "enc")


def test_create_or_load_creates_fresh_models(tmp_path: Path, model_cfg: ModelConfig) -> None:
    encoder, decoder = create_or_load(_cfg(tmp_path, model_cfg), key=jax.random.PRNGKey(0))
    assert encoder.latent_size == decoder.latent_size == 4
    assert not (tmp_path / "enc_out").exists()


def test_create_or_load_prefers_checkpoint_architecture(
    tmp_path: Path, tiny_models: tuple[Encoder, Decoder]
) -> None:
    encoder, decoder = tiny_models
    cfg = _cfg(tmp_path, ModelConfig(latent_size=6, state_size=10))
    save_encoder(cfg.checkpoint.encoder_path, encoder)
    save_decoder(cfg.checkpoint.decoder_path, decoder)

    loaded_enc, loaded_dec = create_or_load(cfg, key=jax.random.PRNGKey(5))
    assert loaded_enc.latent_size == 4
    assert tree_allclose(loaded_enc, encoder)
    assert tree_allclose(loaded_dec, decoder)


def test_create_or_load_rejects_mismatched_pair(
    tmp_path: Path, tiny_models: tuple[Encoder, Decoder]
) -> None:
    encoder, _ = tiny_models
    cfg = _cfg(tmp_path, ModelConfig(latent_size=6, state_size=8))
    save_encoder(cfg.checkpoint.encoder_path, encoder)
    with pytest.raises(CheckpointError, match="latent_size"):
        create_or_load(cfg, key=jax.random.PRNGKey(0))
