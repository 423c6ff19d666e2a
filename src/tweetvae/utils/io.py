"""Console/file logging and the run directory.

Everything here is optional plumbing around training:
- one console handler on stderr (Rich or plain), so stdout stays free for the
  output of `reconstruct` and `stats`
- a run directory, when `logging.run_dir` is set, holding
  config_resolved.json, train.log and an append-only metrics.jsonl
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

from tweetvae.config import Config

PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class _QuietLibraries(logging.Filter):
    """Drop INFO/DEBUG records from chatty libraries on the console."""

    def __init__(self, prefixes: tuple[str, ...] = ("jax", "jaxlib", "absl", "orbax")):
        super().__init__()
        self.prefixes = prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.split(".", 1)[0] in self.prefixes:
            return record.levelno >= logging.WARNING
        return True


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def _console_handler(level: int, *, use_rich: bool) -> logging.Handler:
    handler: logging.Handler
    if use_rich:
        from rich.console import Console
        from rich.logging import RichHandler

        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            markup=False,
            log_time_format="[%X]",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    handler.setLevel(level)
    handler.addFilter(_QuietLibraries())
    return handler


def setup_python_logging(level: str, *, use_rich: bool = True) -> None:
    """Replace the root logger's handlers with a single console handler.

    :param str level: Log level name (DEBUG, INFO, WARNING, ERROR).
    :param bool use_rich: If True, render console logs with Rich.
    """
    numeric = _level(level)
    root = logging.getLogger()
    root.setLevel(numeric)
    root.handlers.clear()
    root.addHandler(_console_handler(numeric, use_rich=use_rich))


def add_file_logging(path: Path, *, level: str) -> logging.Handler:
    """Also send logs to `path` (idempotent per file).

    :param Path path: Log file path.
    :param str level: Log level name.
    :return logging.Handler: The new or already attached file handler.
    """
    path = path.resolve()
    root = logging.getLogger()
    for existing in root.handlers:
        if isinstance(existing, logging.FileHandler) and Path(existing.baseFilename) == path:
            return existing

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(_level(level))
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    root.addHandler(handler)
    return handler


def prepare_run_dir(cfg: Config) -> Path | None:
    """Create the configured run directory and snapshot the config into it.

    Run directories may be reused across resumed runs; the config snapshot is
    rewritten and metrics keep appending.

    :param Config cfg: Training configuration.
    :return Path | None: The run directory, or None if logging.run_dir is unset.
    """
    if cfg.logging.run_dir is None:
        return None
    run_dir = Path(cfg.logging.run_dir)
    run_dir.mkdir(parents=True, exist_ok=True)
    snapshot = json.dumps(cfg.to_dict(), indent=2, sort_keys=True)
    (run_dir / "config_resolved.json").write_text(snapshot)
    if cfg.logging.log_file:
        add_file_logging(run_dir / cfg.logging.log_file, level=cfg.logging.level)
    return run_dir


class MetricsWriter:
    """Append-only JSONL metrics file, flushed after every row."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._f = self.path.open("a", encoding="utf-8")
        self.rows_written = 0

    def write(self, row: dict[str, Any]) -> None:
        # numpy/jax scalars are not JSON-native
        self._f.write(json.dumps(row, ensure_ascii=False, default=float) + "\n")
        self._f.flush()
        self.rows_written += 1

    def close(self) -> None:
        if not self._f.closed:
            self._f.close()

    def __enter__(self) -> MetricsWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
