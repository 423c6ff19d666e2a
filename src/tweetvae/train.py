"""VAE objective, Trainer, and the training loop.

Per batch:

    encode -> sample z (reparameterized) -> guided decode
      -> masked cross-entropy against `desired`
      -> + kl_weight * KL
      -> gradient w.r.t. (encoder, decoder stack, state mapper)

Both terms are divided by the number of *present* (timestep, sample) pairs, so
padding contributes zero cost and zero count.

Design rules:
1) The cost is a pure function of (params, static, batch, noise, kl_weight).
   Noise is an explicit argument; nothing is captured.
2) Parameters change only in `Trainer.apply_updates`, after a full gradient.
   A Ctrl+C therefore never leaves a half-applied update behind.
3) One seed drives everything: JAX keys (init + noise) and the numpy Generator
   used for shuffling.
"""

from __future__ import annotations

import itertools
import logging
import math
import time
from collections.abc import Callable, Sequence
from typing import Any

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np
import optax
from tqdm import tqdm

from tweetvae.ckpt import create_or_load, save_decoder, save_encoder
from tweetvae.config import Config
from tweetvae.data import SampleList, build_batch, iterate_batches, read_sample_list
from tweetvae.decoder import Decoder
from tweetvae.encoder import Encoder
from tweetvae.latent import kl_divergence, reparameterize, standard_noise
from tweetvae.model import partition_models
from tweetvae.types import Batch
from tweetvae.utils.io import MetricsWriter, prepare_run_dir
from tweetvae.utils.tree import param_count

logger = logging.getLogger(__name__)


# ------------------------------ Objective ----------------------------------


def batch_cost(
    encoder: Encoder,
    decoder: Decoder,
    batch: Batch,
    noise: jax.Array,
    kl_weight: float | jax.Array,
) -> tuple[jax.Array, dict[str, jax.Array]]:
    """Masked reconstruction cost plus weighted KL, averaged over present steps.

    :param Encoder encoder: Encoder.
    :param Decoder decoder: Decoder.
    :param Batch batch: Training batch.
    :param jax.Array noise: [B, D] standard-normal noise for reparameterization.
    :param kl_weight: Weight of the KL term.
    :return tuple: (scalar cost, {"reconstruction", "kl"}).
    """
    mean, log_stddev = encoder(batch.reversed_input)
    latent = reparameterize(mean, log_stddev, noise)
    log_probs = decoder.guided(latent, batch.guide)

    present = batch.desired.present
    count = jnp.sum(present).astype(jnp.float32)

    step_costs = -jnp.sum(batch.desired.vectors * log_probs, axis=-1)
    reconstruction = jnp.sum(jnp.where(present, step_costs, 0.0)) / count
    kl = jnp.sum(kl_divergence(mean, log_stddev)) / count

    cost = reconstruction + kl_weight * kl
    return cost, {"reconstruction": reconstruction, "kl": kl}


def _params_cost(params: Any, static: Any, batch: Batch, noise: jax.Array, kl_weight: jax.Array):
    encoder, decoder = eqx.combine(params, static)
    return batch_cost(encoder, decoder, batch, noise, kl_weight)


# ------------------------------ Trainer ------------------------------------


class Trainer:
    """Fetch/gradient interface for training an encoder/decoder pair.

    Run state: `iteration` (completed updates), `kl_weight` (from the schedule
    at the current iteration), `last_cost` and `last_metrics` (set by every
    `gradient` call for external logging).
    """

    def __init__(
        self,
        encoder: Encoder,
        decoder: Decoder,
        *,
        key: jax.Array,
        kl_weight: float = 0.0,
        kl_schedule: Callable[[int], Any] | None = None,
        pad_multiple: int = 1,
        jit: bool = True,
    ):
        """Initialize the trainer.

        :param Encoder encoder: Encoder to train.
        :param Decoder decoder: Decoder (stack + state mapper) to train.
        :param jax.Array key: PRNG key for reparameterization noise.
        :param float kl_weight: Constant KL weight (ignored if kl_schedule is given).
        :param kl_schedule: Optional iteration -> KL weight schedule.
        :param int pad_multiple: Batch padding multiple (see `build_batch`).
        :param bool jit: If True, compile the cost and gradient functions.
        """
        if encoder.latent_size != decoder.latent_size:
            raise ValueError(
                f"encoder latent_size {encoder.latent_size} != decoder latent_size "
                f"{decoder.latent_size}"
            )
        self.params, self._static = partition_models(encoder, decoder)
        self.latent_size = encoder.latent_size
        self.kl_schedule = kl_schedule or optax.constant_schedule(kl_weight)
        self.pad_multiple = pad_multiple

        self.iteration = 0
        self.last_cost: float | None = None
        self.last_metrics: dict[str, float] = {}
        self._key = key

        cost_fn = _params_cost
        grad_fn = eqx.filter_value_and_grad(_params_cost, has_aux=True)
        if jit:
            cost_fn = eqx.filter_jit(cost_fn)
            grad_fn = eqx.filter_jit(grad_fn)
        self._cost_fn = cost_fn
        self._grad_fn = grad_fn

    @property
    def encoder(self) -> Encoder:
        return eqx.combine(self.params, self._static)[0]

    @property
    def decoder(self) -> Decoder:
        return eqx.combine(self.params, self._static)[1]

    @property
    def kl_weight(self) -> float:
        return float(self.kl_schedule(self.iteration))

    def fetch(self, samples: Sequence[bytes]) -> Batch:
        """Build a batch from raw samples (raises EmptySampleError on empty ones)."""
        return build_batch(samples, pad_multiple=self.pad_multiple)

    def next_noise(self, batch: Batch) -> jax.Array:
        """Draw fresh [B, D] standard-normal noise, advancing the key."""
        self._key, k = jax.random.split(self._key)
        return standard_noise(k, batch.guide.batch_size, self.latent_size)

    def total_cost(self, batch: Batch, noise: jax.Array | None = None) -> jax.Array:
        """Scalar cost of a batch under the current parameters."""
        if noise is None:
            noise = self.next_noise(batch)
        cost, _ = self._cost_fn(
            self.params, self._static, batch, noise, jnp.asarray(self.kl_weight, jnp.float32)
        )
        return cost

    def gradient(self, batch: Batch) -> Any:
        """Gradient of the batch cost w.r.t. the trainable parameters.

        Also records `last_cost` and `last_metrics`.

        :param Batch batch: Training batch.
        :return Any: Gradient pytree shaped like `self.params`.
        """
        noise = self.next_noise(batch)
        kl_weight = self.kl_weight
        (cost, aux), grads = self._grad_fn(
            self.params, self._static, batch, noise, jnp.asarray(kl_weight, jnp.float32)
        )
        self.last_cost = float(cost)
        self.last_metrics = {
            "cost": self.last_cost,
            "reconstruction": float(aux["reconstruction"]),
            "kl": float(aux["kl"]),
            "kl_weight": kl_weight,
        }
        return grads

    def apply_updates(self, updates: Any) -> None:
        """Apply optimizer updates and advance the iteration counter."""
        self.params = optax.apply_updates(self.params, updates)
        self.iteration += 1


# ------------------------------ Optimizer ----------------------------------


def build_optimizer(cfg: Config) -> optax.GradientTransformation:
    """Adam, optionally preceded by global-norm clipping."""
    transforms = []
    if cfg.optim.grad_clip_norm > 0:
        transforms.append(optax.clip_by_global_norm(cfg.optim.grad_clip_norm))
    transforms.append(
        optax.adam(
            learning_rate=cfg.optim.lr,
            b1=cfg.optim.adam_b1,
            b2=cfg.optim.adam_b2,
            eps=cfg.optim.adam_eps,
        )
    )
    return optax.chain(*transforms)


def build_kl_schedule(cfg: Config) -> optax.Schedule:
    """KL annealing: linear ramp from 0 over kl_warmup_steps, then constant."""
    if cfg.train.kl_warmup_steps > 0:
        return optax.linear_schedule(
            init_value=0.0,
            end_value=cfg.train.kl_weight,
            transition_steps=cfg.train.kl_warmup_steps,
        )
    return optax.constant_schedule(cfg.train.kl_weight)


# ------------------------------ Loop ---------------------------------------


def _check_finite_cost(cost: float | None, *, iteration: int) -> None:
    if cost is None or not math.isfinite(cost):
        raise RuntimeError(f"Non-finite cost at iteration {iteration}: {cost}")


def save_models(cfg: Config, trainer: Trainer) -> None:
    save_encoder(cfg.checkpoint.encoder_path, trainer.encoder)
    save_decoder(cfg.checkpoint.decoder_path, trainer.decoder)


def run(cfg: Config, *, samples: SampleList | None = None) -> Trainer:
    """Run a training job until `train.steps` or Ctrl+C, then save both models.

    :param Config cfg: Training configuration.
    :param samples: Optional in-memory samples; otherwise read from data.path.
    :raises ValueError: If no data is configured or no usable samples remain.
    :raises RuntimeError: On a non-finite cost (with debug.nan_check).
    :return Trainer: The trainer holding the final parameters.
    """
    run_dir = prepare_run_dir(cfg)

    if samples is None:
        if cfg.data.path is None:
            raise ValueError("data.path is required for training")
        logger.info("Loading samples...")
        samples = read_sample_list(cfg.data.path)
    if not samples:
        raise ValueError("no usable samples to train on")
    logger.info("Loaded %d samples", len(samples))

    key = jax.random.PRNGKey(cfg.train.seed)
    key, k_model = jax.random.split(key)
    encoder, decoder = create_or_load(cfg, key=k_model)

    trainer = Trainer(
        encoder,
        decoder,
        key=key,
        kl_schedule=build_kl_schedule(cfg),
        pad_multiple=cfg.data.pad_multiple,
        jit=cfg.train.jit,
    )
    logger.info("params: %s", f"{param_count(trainer.params):,}")

    tx = build_optimizer(cfg)
    opt_state = tx.init(trainer.params)

    rng = np.random.default_rng(cfg.train.seed)
    batches = iterate_batches(samples, cfg.train.batch_size, rng=rng, shuffle=cfg.data.shuffle)

    steps = range(cfg.train.steps) if cfg.train.steps is not None else itertools.count()
    metrics = MetricsWriter(run_dir / cfg.logging.metrics_file) if run_dir is not None else None
    t0 = time.perf_counter()

    logger.info("Press Ctrl+C to stop.")
    try:
        for _ in tqdm(steps, total=cfg.train.steps, desc="train", dynamic_ncols=True):
            it = trainer.iteration
            grads = trainer.gradient(trainer.fetch(next(batches)))
            if cfg.debug.nan_check:
                _check_finite_cost(trainer.last_cost, iteration=it)

            updates, opt_state = tx.update(grads, opt_state, trainer.params)
            trainer.apply_updates(updates)

            if it % cfg.train.log_every == 0:
                logger.info("iter %d: cost=%.6f", it, trainer.last_cost)
                if metrics is not None:
                    metrics.write(
                        {"iter": it, **trainer.last_metrics, "wall_time_s": time.perf_counter() - t0}
                    )

            save_every = cfg.checkpoint.save_every
            if save_every > 0 and trainer.iteration % save_every == 0:
                save_models(cfg, trainer)
    except KeyboardInterrupt:
        logger.warning("Interrupted after %d iterations", trainer.iteration)
    finally:
        if metrics is not None:
            metrics.close()

    logger.info("Saving...")
    save_models(cfg, trainer)
    return trainer
