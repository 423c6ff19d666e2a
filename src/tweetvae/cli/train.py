"""Train subcommand."""

from __future__ import annotations

import click

from tweetvae.config import load_config
from tweetvae.utils.io import setup_python_logging


def _flag_overrides(**flags: object) -> list[str]:
    """Translate explicitly given CLI flags into dot-path overrides."""
    mapping = {
        "data": "data.path",
        "encoder": "checkpoint.encoder_path",
        "decoder": "checkpoint.decoder_path",
        "latent": "model.latent_size",
        "state": "model.state_size",
        "batch": "train.batch_size",
        "step": "optim.lr",
        "kl": "train.kl_weight",
        "steps": "train.steps",
        "seed": "train.seed",
        "run_dir": "logging.run_dir",
    }
    return [f"{mapping[name]}={value}" for name, value in flags.items() if value is not None]


@click.command()
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML config file (defaults are used when omitted).",
)
@click.option("--data", type=str, default=None, help="Training CSV (last field is the text).")
@click.option("--encoder", type=str, default=None, help="Encoder checkpoint (loaded if present).")
@click.option("--decoder", type=str, default=None, help="Decoder checkpoint (loaded if present).")
@click.option("--latent", type=click.IntRange(min=1), default=None, help="Latent size.")
@click.option("--state", type=click.IntRange(min=1), default=None, help="LSTM state size.")
@click.option("--batch", type=click.IntRange(min=1), default=None, help="Batch size.")
@click.option("--step", type=float, default=None, help="Adam step size.")
@click.option("--kl", type=float, default=None, help="KL term weight.")
@click.option(
    "--steps",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many iterations (default: run until Ctrl+C).",
)
@click.option("--seed", type=int, default=None, help="Random seed.")
@click.option("--run-dir", type=click.Path(), default=None, help="Directory for logs/metrics.")
@click.option(
    "--override",
    "-o",
    "overrides",
    multiple=True,
    help="Dotpath override, e.g. train.kl_warmup_steps=1000 (repeatable).",
)
def train(
    config: str | None,
    data: str | None,
    encoder: str | None,
    decoder: str | None,
    latent: int | None,
    state: int | None,
    batch: int | None,
    step: float | None,
    kl: float | None,
    steps: int | None,
    seed: int | None,
    run_dir: str | None,
    overrides: tuple[str, ...],
) -> None:
    """Train an encoder/decoder pair.

    Existing checkpoints are resumed; missing ones are created. Both parameter
    sets are saved when training stops (including on Ctrl+C).
    """
    flags = _flag_overrides(
        data=data,
        encoder=encoder,
        decoder=decoder,
        latent=latent,
        state=state,
        batch=batch,
        step=step,
        kl=kl,
        steps=steps,
        seed=seed,
        run_dir=run_dir,
    )
    try:
        cfg = load_config(config, overrides=[*flags, *overrides])
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    if cfg.data.path is None:
        raise click.ClickException("Missing --data flag (or data.path in the config).")

    # Logging first so subsequent errors are readable
    setup_python_logging(cfg.logging.level, use_rich=cfg.logging.console_use_rich)

    from tweetvae.train import run

    try:
        trainer = run(cfg)
    except (ValueError, RuntimeError, OSError) as e:
        raise click.ClickException(str(e)) from e
    click.echo(
        f"[tweetvae] saved encoder to {cfg.checkpoint.encoder_path}, "
        f"decoder to {cfg.checkpoint.decoder_path} after {trainer.iteration} iterations"
    )
