"""Encode subcommand: append latent means to every record of a CSV file."""

from __future__ import annotations

import logging

import click

from tweetvae.cli.main import ENCODER_HELP, load_checkpoint
from tweetvae.utils.io import setup_python_logging

logger = logging.getLogger(__name__)


@click.command()
@click.option("--data", required=True, type=str, help="Input CSV file.")
@click.option("--out", default="out.csv", show_default=True, help="Output CSV file.")
@click.option("--encoder", "encoder_path", default="enc_out", show_default=True, help=ENCODER_HELP)
@click.option(
    "--batch", type=click.IntRange(min=1), default=8, show_default=True, help="Computation batch size."
)
def encode(data: str, out: str, encoder_path: str, batch: int) -> None:
    """Write DATA's records to OUT with one latent-mean column per dimension."""
    setup_python_logging("INFO")

    from tweetvae.data import EmptySampleError, SampleReadError, read_records
    from tweetvae.inference import encode_records, write_records

    logger.info("Loading encoder...")
    encoder = load_checkpoint("encoder", encoder_path)

    logger.info("Reading samples...")
    try:
        records = read_records(data)
    except SampleReadError as e:
        raise click.ClickException(str(e)) from e

    logger.info("Encoding...")
    try:
        written = write_records(out, encode_records(encoder, records, batch_size=batch))
    except EmptySampleError as e:
        raise click.ClickException(f"encode: {e}") from e
    except OSError as e:
        raise click.ClickException(f"write output: {e}") from e
    logger.info("Wrote %d records to %s", written, out)
