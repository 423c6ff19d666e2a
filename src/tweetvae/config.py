# SPDX-License-Identifier: Apache-2.0

"""Configuration for tweetvae.

Rule #1: **One config system.**
If a knob doesn't live in these dataclasses, it doesn't exist.

We use:
- YAML files for readability
- dot-path overrides for quick experiment changes (the CLI flags are
  translated into overrides too)

The loader is strict: mis-typed keys or invalid values fail fast with error
messages that tell you exactly what to fix.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import Field, asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Literal

import yaml

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(frozen=True)
class ModelConfig:
    """Architecture of the encoder/decoder pair.

    Both sides use `num_layers` LSTMs of width `state_size`. The decoder's
    state mapper therefore projects to 2 * num_layers * state_size values.
    """

    latent_size: int = 128
    state_size: int = 512
    num_layers: int = 3

    # Initial log-stddev bias of the encoder (stddev starts near e^bias)
    stddev_bias_init: float = -2.0

    # Multiplier applied to every LSTM's input-to-hidden weights at init
    in_weight_scale: float = 1.0


@dataclass(frozen=True)
class DataConfig:
    """Training data: a CSV file whose last field is the text body."""

    path: str | None = None
    shuffle: bool = True

    # Padded sequence length is rounded up to this multiple (fewer recompiles).
    pad_multiple: int = 16


@dataclass(frozen=True)
class TrainConfig:
    """Training loop configuration."""

    seed: int = 0
    # None => train until interrupted (Ctrl+C)
    steps: int | None = None
    batch_size: int = 16

    # Weight of the KL term. With kl_warmup_steps > 0 it ramps linearly from 0.
    kl_weight: float = 0.0
    kl_warmup_steps: int = 0

    jit: bool = True
    log_every: int = 1


@dataclass(frozen=True)
class OptimConfig:
    """Adam with an optional global-norm gradient clip."""

    lr: float = 1e-3
    grad_clip_norm: float = 0.0
    adam_b1: float = 0.9
    adam_b2: float = 0.999
    adam_eps: float = 1e-8


@dataclass(frozen=True)
class CheckpointConfig:
    """Where the two parameter sets live.

    A missing checkpoint at startup means "start fresh"; a broken one is fatal.
    """

    encoder_path: str = "enc_out"
    decoder_path: str = "dec_out"

    # 0 => save only when training ends
    save_every: int = 0


@dataclass(frozen=True)
class LoggingConfig:
    """Console logging plus optional run directory for metrics/log files."""

    run_dir: str | None = None
    metrics_file: str = "metrics.jsonl"
    level: LogLevel = "INFO"
    console_use_rich: bool = True
    log_file: str | None = "train.log"


@dataclass(frozen=True)
class DebugConfig:
    """Debug guards."""

    nan_check: bool = True


@dataclass(frozen=True)
class Config:
    """Top-level configuration combining all sub-configs for a training run."""

    model: ModelConfig = ModelConfig()
    data: DataConfig = DataConfig()
    train: TrainConfig = TrainConfig()
    optim: OptimConfig = OptimConfig()
    checkpoint: CheckpointConfig = CheckpointConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: DebugConfig = DebugConfig()

    def to_dict(self) -> dict[str, Any]:
        """Convert the entire config tree to a nested dictionary.

        :return dict[str, Any]: Nested dict representation of all config fields.
        """
        return asdict(self)


# ------------------------------ Loading ---------------------------------

_SECTIONS: dict[str, type] = {
    "model": ModelConfig,
    "data": DataConfig,
    "train": TrainConfig,
    "optim": OptimConfig,
    "checkpoint": CheckpointConfig,
    "logging": LoggingConfig,
    "debug": DebugConfig,
}

_TRUE = {"true", "1", "yes", "y", "on"}
_FALSE = {"false", "0", "no", "n", "off"}
_NULL = {"null", "none", "~"}
_SCALARS = {"int", "float", "bool", "str"}


def _type_names(f: Field) -> list[str]:
    """Scalar type names of a field annotation; Literal aliases count as str."""
    names = [part.strip() for part in str(f.type).split("|")]
    return [n if n in _SCALARS or n == "None" else "str" for n in names]


def _check_field(section: str, f: Field, value: Any) -> Any:
    """Check a parsed value against the field's annotation.

    Ints (and numeric strings such as YAML's "1e-3") are widened for float fields.

    :raises ValueError: If the value has the wrong type.
    :return Any: The value, converted where widening applies.
    """
    names = _type_names(f)
    if value is None:
        if "None" in names:
            return None
        _vfail(f"{section}.{f.name} must not be null")
    for name in names:
        if name == "bool" and isinstance(value, bool):
            return value
        if isinstance(value, bool):
            continue
        if name == "int" and isinstance(value, int):
            return value
        if name == "float":
            if isinstance(value, (int, float)):
                return float(value)
            if isinstance(value, str):
                try:
                    return float(value)
                except ValueError:
                    continue
        if name == "str" and isinstance(value, str):
            return value
    _vfail(f"{section}.{f.name} must be {' or '.join(names)}, got {value!r}")


def _parse_value(f: Field, current: Any, raw: str) -> Any:
    """Parse an override string guided by the field's current value.

    Fields whose current value is None take "null", the raw string when they
    accept str, and any YAML scalar otherwise.

    :param Field f: Dataclass field being overridden.
    :param Any current: Current field value.
    :param str raw: Override string.
    :raises ValueError: If `raw` does not parse as the current value's type.
    :return Any: Parsed value.
    """
    if isinstance(current, bool):
        if raw.lower() in _TRUE:
            return True
        if raw.lower() in _FALSE:
            return False
        raise ValueError(f"expected a boolean, got {raw!r}")
    if isinstance(current, (int, float)):
        try:
            return type(current)(raw)
        except ValueError as e:
            raise ValueError(f"expected {type(current).__name__}, got {raw!r}") from e
    if current is None:
        if raw.lower() in _NULL:
            return None
        if "str" in _type_names(f):
            return raw
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError:
            return raw
    return raw


def apply_override(cfg: Config, item: str) -> Config:
    """Return `cfg` with one "section.key=value" override applied.

    :raises ValueError: On malformed items, unknown keys, or unparsable values.
    """
    key, sep, raw = item.partition("=")
    if not sep:
        raise ValueError(f"Invalid override {item!r}. Expected format like train.batch_size=32")
    key = key.strip()
    section_name, dot, field_name = key.partition(".")
    if not dot or section_name not in _SECTIONS:
        raise ValueError(f"Unknown config key: {key!r}")
    section = getattr(cfg, section_name)
    by_name = {f.name: f for f in fields(section)}
    if field_name not in by_name:
        raise ValueError(f"Unknown config key: {key!r} (no {field_name!r} in {section_name!r})")

    field = by_name[field_name]
    try:
        value = _parse_value(field, getattr(section, field_name), raw.strip())
    except ValueError as e:
        raise ValueError(f"Bad value for {key}: {e}") from e
    value = _check_field(section_name, field, value)
    return replace(cfg, **{section_name: replace(section, **{field_name: value})})


def _from_nested_dict(data: dict[str, Any]) -> Config:
    """Build a Config from parsed YAML, rejecting unknown sections and keys."""
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown config sections: {sorted(unknown)}")

    sections = {}
    for name, cls in _SECTIONS.items():
        raw = data.get(name) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config section {name!r} must be a mapping")
        by_name = {f.name: f for f in fields(cls)}
        unknown_keys = set(raw) - set(by_name)
        if unknown_keys:
            raise ValueError(f"Invalid keys in config section {name!r}: {sorted(unknown_keys)}")
        checked = {key: _check_field(name, by_name[key], value) for key, value in raw.items()}
        sections[name] = cls(**checked)
    return Config(**sections)


def load_config(path: str | Path | None = None, overrides: Iterable[str] | None = None) -> Config:
    """Load a YAML config file (or defaults) and apply dot-path overrides.

    :param path: Optional YAML config path; None starts from defaults.
    :param overrides: Items like "train.batch_size=32", applied in order.
    :raises ValueError: If an override is malformed or validation fails.
    :return Config: Validated configuration object.
    """
    data: Any = {}
    if path is not None:
        try:
            data = yaml.safe_load(Path(path).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Config validation failed: cannot parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping, got {type(data).__name__}")

    cfg = _from_nested_dict(data)
    for item in overrides or ():
        cfg = apply_override(cfg, item)

    validate_config(cfg)
    return cfg


# ------------------------------ Validation ---------------------------------


def _vfail(msg: str) -> None:
    """Raise ValueError with a standardized config validation prefix."""
    raise ValueError(f"Config validation failed: {msg}")


def _validate_model(cfg: Config) -> None:
    if cfg.model.latent_size <= 0:
        _vfail(f"model.latent_size must be positive, got {cfg.model.latent_size}")
    if cfg.model.state_size <= 0:
        _vfail(f"model.state_size must be positive, got {cfg.model.state_size}")
    if cfg.model.num_layers <= 0:
        _vfail(f"model.num_layers must be positive, got {cfg.model.num_layers}")
    if cfg.model.in_weight_scale <= 0:
        _vfail(f"model.in_weight_scale must be positive, got {cfg.model.in_weight_scale}")


def _validate_data(cfg: Config) -> None:
    if cfg.data.path is not None and not str(cfg.data.path).strip():
        _vfail("data.path must be a non-empty string or null")
    if cfg.data.pad_multiple <= 0:
        _vfail(f"data.pad_multiple must be positive, got {cfg.data.pad_multiple}")


def _validate_train(cfg: Config) -> None:
    if cfg.train.steps is not None and cfg.train.steps <= 0:
        _vfail(f"train.steps must be positive or null, got {cfg.train.steps}")
    if cfg.train.batch_size <= 0:
        _vfail(f"train.batch_size must be positive, got {cfg.train.batch_size}")
    if cfg.train.kl_weight < 0:
        _vfail(f"train.kl_weight must be >= 0, got {cfg.train.kl_weight}")
    if cfg.train.kl_warmup_steps < 0:
        _vfail(f"train.kl_warmup_steps must be >= 0, got {cfg.train.kl_warmup_steps}")
    if cfg.train.log_every <= 0:
        _vfail(f"train.log_every must be positive, got {cfg.train.log_every}")


def _validate_optim(cfg: Config) -> None:
    if cfg.optim.lr <= 0:
        _vfail(f"optim.lr must be positive, got {cfg.optim.lr}")
    if cfg.optim.grad_clip_norm < 0:
        _vfail(f"optim.grad_clip_norm must be >= 0, got {cfg.optim.grad_clip_norm}")
    if cfg.optim.adam_b1 <= 0 or cfg.optim.adam_b1 >= 1:
        _vfail(f"optim.adam_b1 must be in (0, 1), got {cfg.optim.adam_b1}")
    if cfg.optim.adam_b2 <= 0 or cfg.optim.adam_b2 >= 1:
        _vfail(f"optim.adam_b2 must be in (0, 1), got {cfg.optim.adam_b2}")
    if cfg.optim.adam_eps <= 0:
        _vfail(f"optim.adam_eps must be positive, got {cfg.optim.adam_eps}")


def _validate_checkpoint(cfg: Config) -> None:
    if not cfg.checkpoint.encoder_path:
        _vfail("checkpoint.encoder_path must be non-empty")
    if not cfg.checkpoint.decoder_path:
        _vfail("checkpoint.decoder_path must be non-empty")
    if cfg.checkpoint.save_every < 0:
        _vfail(f"checkpoint.save_every must be >= 0, got {cfg.checkpoint.save_every}")


def _validate_logging(cfg: Config) -> None:
    if cfg.logging.level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        _vfail(f"logging.level must be DEBUG/INFO/WARNING/ERROR, got {cfg.logging.level!r}")
    if cfg.logging.log_file is not None and not str(cfg.logging.log_file).strip():
        _vfail("logging.log_file must be a non-empty string or null")


def validate_config(cfg: Config) -> None:
    """Validate config with actionable error messages."""
    _validate_model(cfg)
    _validate_data(cfg)
    _validate_train(cfg)
    _validate_optim(cfg)
    _validate_checkpoint(cfg)
    _validate_logging(cfg)
