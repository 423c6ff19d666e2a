"""tweetvae: a byte-level sequence-to-sequence VAE in JAX/Equinox.

Layout:
- codec + data: one-hot bytes, CSV samples, padded/masked batches
- layers, encoder, decoder, latent: the model and its variational pieces
- train: masked VAE objective, Trainer, training loop
- ckpt: Orbax persistence for the encoder and decoder parameter sets
- inference + analysis: reconstruction, interpolation, latent statistics
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
