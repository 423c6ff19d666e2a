"""Checkpointing (Orbax) for tweetvae.

The encoder and the decoder are saved separately, each to its own directory:

    <path>/
      params/     Orbax StandardCheckpointer payload (named arrays)
      meta.json   kind, architecture, format version

The encoder set holds the encoder LSTM stack and its mean/log-stddev heads.
The decoder set holds the decoder stack *and* its state mapper, so a decoder
checkpoint is always self-consistent.

Loading rebuilds a skeleton from meta.json and restores arrays into it; the
architecture stored in the checkpoint wins over whatever the config says.

Training contract:
- missing checkpoint => fresh model (not an error)
- anything present but unreadable/mismatched => CheckpointError (fatal)
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

import equinox as eqx
import jax

from tweetvae import __version__
from tweetvae.config import Config, ModelConfig
from tweetvae.decoder import Decoder
from tweetvae.encoder import Encoder
from tweetvae.model import build_decoder, build_encoder
from tweetvae.utils.tree import abstractify_tree

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
META_FILE = "meta.json"
PARAMS_DIR = "params"


class CheckpointError(RuntimeError):
    """Raised when a checkpoint exists but cannot be loaded."""


def _leaf_name(path: tuple[Any, ...]) -> str:
    return re.sub(r"\W+", "_", jax.tree_util.keystr(path)).strip("_")


def _named_leaves(params: Any) -> tuple[dict[str, jax.Array], list[str], Any]:
    """Flatten params into {readable_name: array}, keeping order and treedef."""
    with_paths, treedef = jax.tree_util.tree_flatten_with_path(params)
    names = [_leaf_name(p) for p, _ in with_paths]
    if len(set(names)) != len(names):
        raise RuntimeError("parameter names collide after sanitizing; cannot checkpoint")
    return dict(zip(names, (x for _, x in with_paths), strict=True)), names, treedef


def _meta(kind: str, model: Encoder | Decoder) -> dict[str, Any]:
    return {
        "kind": kind,
        "format_version": FORMAT_VERSION,
        "latent_size": model.latent_size,
        "state_size": model.state_size,
        "num_layers": model.num_layers,
        "tweetvae": __version__,
        "timestamp": datetime.now().isoformat(timespec="seconds"),
    }


def checkpoint_exists(path: str | Path) -> bool:
    return Path(path).exists()


def _save(path: str | Path, kind: str, model: Encoder | Decoder) -> None:
    import orbax.checkpoint as ocp

    path = Path(path).resolve()
    path.mkdir(parents=True, exist_ok=True)
    params, _ = eqx.partition(model, eqx.is_inexact_array)
    named, _, _ = _named_leaves(params)

    ckptr = ocp.StandardCheckpointer()
    try:
        ckptr.save(path / PARAMS_DIR, named, force=True)
        ckptr.wait_until_finished()
    finally:
        ckptr.close()

    # meta last: a directory without meta.json is an interrupted save
    (path / META_FILE).write_text(json.dumps(_meta(kind, model), indent=2, sort_keys=True))
    logger.debug("Saved %s to %s", kind, path)


def _read_meta(path: Path, kind: str) -> dict[str, Any]:
    meta_path = path / META_FILE
    if not meta_path.exists():
        raise CheckpointError(f"{path} exists but has no {META_FILE}; not a {kind} checkpoint")
    try:
        meta = json.loads(meta_path.read_text())
    except json.JSONDecodeError as e:
        raise CheckpointError(f"corrupted {META_FILE} in {path}: {e}") from e
    if not isinstance(meta, dict):
        raise CheckpointError(f"expected a JSON object in {meta_path}")
    if meta.get("kind") != kind:
        raise CheckpointError(f"{path} holds a {meta.get('kind')!r} checkpoint, expected {kind!r}")
    if meta.get("format_version") != FORMAT_VERSION:
        raise CheckpointError(
            f"{path} has format_version {meta.get('format_version')!r}, "
            f"this build reads {FORMAT_VERSION}"
        )
    for field in ("latent_size", "state_size", "num_layers"):
        if not isinstance(meta.get(field), int) or meta[field] <= 0:
            raise CheckpointError(f"{meta_path} has invalid {field!r}: {meta.get(field)!r}")
    return meta


def _load(path: str | Path, kind: str, builder) -> Any:
    import orbax.checkpoint as ocp

    path = Path(path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"{kind} checkpoint not found: {path}")
    meta = _read_meta(path, kind)

    model_cfg = ModelConfig(
        latent_size=meta["latent_size"],
        state_size=meta["state_size"],
        num_layers=meta["num_layers"],
    )
    skeleton = builder(model_cfg, key=jax.random.PRNGKey(0))
    params, static = eqx.partition(skeleton, eqx.is_inexact_array)
    named, names, treedef = _named_leaves(params)

    ckptr = ocp.StandardCheckpointer()
    try:
        restored = ckptr.restore(path / PARAMS_DIR, abstractify_tree(named))
    except Exception as e:
        raise CheckpointError(f"failed to restore {kind} parameters from {path}: {e}") from e
    finally:
        ckptr.close()

    params = jax.tree_util.tree_unflatten(treedef, [restored[n] for n in names])
    return eqx.combine(params, static)


def save_encoder(path: str | Path, encoder: Encoder) -> None:
    _save(path, "encoder", encoder)


def save_decoder(path: str | Path, decoder: Decoder) -> None:
    _save(path, "decoder", decoder)


def load_encoder(path: str | Path) -> Encoder:
    """Load an encoder checkpoint.

    :raises FileNotFoundError: If `path` does not exist.
    :raises CheckpointError: If it exists but cannot be loaded.
    """
    return _load(path, "encoder", build_encoder)


def load_decoder(path: str | Path) -> Decoder:
    """Load a decoder checkpoint (stack + state mapper).

    :raises FileNotFoundError: If `path` does not exist.
    :raises CheckpointError: If it exists but cannot be loaded.
    """
    return _load(path, "decoder", build_decoder)


def _warn_on_arch_mismatch(kind: str, model: Encoder | Decoder, cfg: ModelConfig) -> None:
    wanted = (cfg.latent_size, cfg.state_size, cfg.num_layers)
    found = (model.latent_size, model.state_size, model.num_layers)
    if wanted != found:
        logger.warning(
            "Loaded %s has (latent, state, layers)=%s but config asks for %s; using the checkpoint",
            kind,
            found,
            wanted,
        )


def create_or_load(cfg: Config, *, key: jax.Array) -> tuple[Encoder, Decoder]:
    """Load both parameter sets if present, otherwise initialize fresh ones.

    :param Config cfg: Config providing checkpoint paths and the fresh architecture.
    :param jax.Array key: PRNG key for fresh initialization.
    :raises CheckpointError: If a checkpoint exists but is broken.
    :return tuple[Encoder, Decoder]: The pair to train.
    """
    k_enc, k_dec = jax.random.split(key)

    if checkpoint_exists(cfg.checkpoint.encoder_path):
        logger.info("Loading encoder from %s", cfg.checkpoint.encoder_path)
        encoder = load_encoder(cfg.checkpoint.encoder_path)
        _warn_on_arch_mismatch("encoder", encoder, cfg.model)
    else:
        logger.info("Creating new encoder...")
        encoder = build_encoder(cfg.model, key=k_enc)

    if checkpoint_exists(cfg.checkpoint.decoder_path):
        logger.info("Loading decoder from %s", cfg.checkpoint.decoder_path)
        decoder = load_decoder(cfg.checkpoint.decoder_path)
        _warn_on_arch_mismatch("decoder", decoder, cfg.model)
    else:
        logger.info("Creating new decoder...")
        decoder = build_decoder(cfg.model, key=k_dec)

    if encoder.latent_size != decoder.latent_size:
        raise CheckpointError(
            f"encoder latent_size {encoder.latent_size} != decoder latent_size "
            f"{decoder.latent_size}; the pair cannot be trained together"
        )
    return encoder, decoder
