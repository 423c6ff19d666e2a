"""Stats subcommand: per-dimension statistics of the encoder's outputs."""

from __future__ import annotations

import logging

import click

from tweetvae.cli.main import ENCODER_HELP, load_checkpoint
from tweetvae.utils.io import setup_python_logging

logger = logging.getLogger(__name__)


@click.command()
@click.option("--data", required=True, type=str, help="Sample CSV file.")
@click.option("--encoder", "encoder_path", default="enc_out", show_default=True, help=ENCODER_HELP)
@click.option(
    "--num", type=click.IntRange(min=1), default=512, show_default=True, help="Number of samples."
)
@click.option(
    "--batch", type=click.IntRange(min=1), default=32, show_default=True, help="Batch size."
)
@click.option("--seed", type=int, default=None, help="Seed for picking samples (default: random).")
def stats(data: str, encoder_path: str, num: int, batch: int, seed: int | None) -> None:
    """Print E[mu], sigma(mu), E[ln(sigma)], sigma(ln(sigma)) per latent dimension."""
    setup_python_logging("INFO")

    import numpy as np

    from tweetvae.analysis import format_statistics, latent_statistics
    from tweetvae.data import SampleReadError, read_sample_list

    logger.info("Loading encoder...")
    encoder = load_checkpoint("encoder", encoder_path)

    logger.info("Loading samples...")
    try:
        samples = read_sample_list(data)
    except SampleReadError as e:
        raise click.ClickException(str(e)) from e
    if not samples:
        raise click.ClickException(f"no usable samples in {data}")

    logger.info("Computing statistics...")
    result = latent_statistics(
        encoder, samples, num_samples=num, batch_size=batch, rng=np.random.default_rng(seed)
    )
    for line in format_statistics(result):
        click.echo(line)
