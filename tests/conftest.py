"""Test session configuration."""

from __future__ import annotations

import os

# Tests run on CPU; set before anything imports jax.
os.environ.setdefault("JAX_PLATFORMS", "cpu")

from collections.abc import Callable  # noqa: E402
from pathlib import Path  # noqa: E402

import jax  # noqa: E402
import pytest  # noqa: E402

from tests.helpers.config_factories import make_smoke_cfg, tiny_model_cfg  # noqa: E402
from tweetvae.config import Config, ModelConfig  # noqa: E402
from tweetvae.decoder import Decoder  # noqa: E402
from tweetvae.encoder import Encoder  # noqa: E402
from tweetvae.model import build_models  # noqa: E402


@pytest.fixture
def model_cfg() -> ModelConfig:
    """Tiny architecture: latent 4, state 8, three layers."""
    return tiny_model_cfg()


@pytest.fixture
def tiny_models(model_cfg: ModelConfig) -> tuple[Encoder, Decoder]:
    """A freshly initialized encoder/decoder pair."""
    return build_models(model_cfg, key=jax.random.PRNGKey(0))


@pytest.fixture
def smoke_cfg_factory() -> Callable[..., tuple[Config, Path]]:
    """Expose the shared smoke-run config factory."""
    return make_smoke_cfg


@pytest.fixture
def smoke_cfg(tmp_path: Path) -> tuple[Config, Path]:
    """Provide a smoke-sized training config and its data file."""
    return make_smoke_cfg(tmp_path)
