"""Reconstruct subcommand: encode a text, decode it again, or interpolate."""

from __future__ import annotations

import click

from tweetvae.cli.main import DECODER_HELP, ENCODER_HELP, load_checkpoint
from tweetvae.utils.io import setup_python_logging


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


@click.command()
@click.option("--tweet", required=True, help="Text to reconstruct (interpolation start).")
@click.option("--end", default=None, help="End text for interpolation.")
@click.option(
    "--stops",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Interpolation stops; 1 means plain reconstruction.",
)
@click.option("--encoder", "encoder_path", default="enc_out", show_default=True, help=ENCODER_HELP)
@click.option("--decoder", "decoder_path", default="dec_out", show_default=True, help=DECODER_HELP)
@click.option(
    "--max-len",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum decoded length in bytes.",
)
def reconstruct(
    tweet: str,
    end: str | None,
    stops: int,
    encoder_path: str,
    decoder_path: str,
    max_len: int | None,
) -> None:
    """Print the reconstruction of --tweet, or an interpolation towards --end."""
    if not tweet:
        raise click.UsageError("--tweet must be non-empty")
    if stops > 1 and not end:
        raise click.UsageError("--end is required when --stops > 1")

    setup_python_logging("WARNING")

    from tweetvae import inference

    encoder = load_checkpoint("encoder", encoder_path)
    decoder = load_checkpoint("decoder", decoder_path)
    kwargs = {} if max_len is None else {"max_len": max_len}

    if stops == 1:
        decoded = inference.reconstruct(encoder, decoder, tweet, **kwargs)
        click.echo(f"Decoded to: {_text(decoded)}")
        return

    for frac, decoded in inference.interpolate(encoder, decoder, tweet, end, stops, **kwargs):
        click.echo(f"{frac:.3f}: {_text(decoded)}")
