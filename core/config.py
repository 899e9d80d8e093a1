from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from core.exceptions import ConfigError


@dataclass(frozen=True)
class AppConfig:
    env: str
    log_level: str
    log_dir: Optional[Path]
    log_file: str
    json_log_file: str
    console_log_format: str
    enable_json_file_log: bool

    @classmethod
    def default(cls) -> AppConfig:
        return cls(
            env="dev",
            log_level="INFO",
            log_dir=None,
            log_file="robust_gate.log",
            json_log_file="robust_gate.json.log",
            console_log_format="text",
            enable_json_file_log=False,
        )


@dataclass(frozen=True)
class GateConfig:
    """
    Thresholds and pipeline constants for the multi-model gate.

    The first six fields are the corridor thresholds. ``eta_decay`` is
    accepted for compatibility with stored configs but the update path does
    not consume it.
    """

    tau_mu: float = 0.5  # Mahalanobis units
    tau_sigma: float = 0.15  # spectral band half-width
    kl_threshold: float = 0.1  # nats
    clip_radius: float = 3.0
    eta_max: float = 0.05
    eta_decay: float = 0.995

    # Admission and diversity
    min_trust: float = 0.3
    max_per_source: int = 50
    min_unique_sources: int = 3
    min_entropy_bits: float = 1.5

    # Sampling and re-estimation
    sample_capacity: int = 200
    catoni_c: float = 2.0
    reference_shrinkage: float = 0.3
    candidate_shrinkage: float = 0.3

    # Rejections, checkpoints, anchor check
    rejection_limit: int = 10
    rejection_window_seconds: float = 3600.0
    checkpoint_interval_seconds: float = 300.0
    checkpoint_capacity: int = 20
    anchor_cutoff: float = 9.0

    def __post_init__(self) -> None:
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                raise ConfigError(f"Invalid config value (expected number): {f.name}")
            if not math.isfinite(val):
                raise ConfigError(f"Invalid config value (not finite): {f.name}")

        positive = (
            "tau_mu",
            "tau_sigma",
            "kl_threshold",
            "clip_radius",
            "eta_max",
            "catoni_c",
            "rejection_window_seconds",
            "checkpoint_capacity",
            "max_per_source",
            "sample_capacity",
            "anchor_cutoff",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise ConfigError(f"Config value must be positive: {name}")

        for name in ("eta_max", "eta_decay", "min_trust", "reference_shrinkage", "candidate_shrinkage"):
            val = getattr(self, name)
            if not 0.0 <= val <= 1.0:
                raise ConfigError(f"Config value must lie in [0, 1]: {name}")

        if self.tau_sigma >= 1.0:
            raise ConfigError("tau_sigma must be below 1 (lower band edge is 1 - tau_sigma)")
        if self.min_unique_sources < 1:
            raise ConfigError("min_unique_sources must be at least 1")
        if self.rejection_limit < 0 or self.checkpoint_interval_seconds < 0 or self.min_entropy_bits < 0:
            raise ConfigError("rejection_limit, checkpoint_interval_seconds and min_entropy_bits must be >= 0")

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> GateConfig:
        """Build a config from defaults plus a mapping of field overrides."""
        if not overrides:
            return cls()

        known = {f.name: f for f in dataclasses.fields(cls)}
        unknown = sorted(set(overrides) - set(known))
        if unknown:
            raise ConfigError(f"Unknown gate config keys: {', '.join(unknown)}")

        kwargs: dict[str, Any] = {}
        for key, val in overrides.items():
            default = known[key].default
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                raise ConfigError(f"Invalid config value (expected number): {key}")
            if isinstance(default, int):
                if not float(val).is_integer():
                    raise ConfigError(f"Invalid config value (expected integer): {key}")
                kwargs[key] = int(val)
            else:
                kwargs[key] = float(val)
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class Settings:
    app: AppConfig
    gate: GateConfig = field(default_factory=GateConfig)

    @classmethod
    def default(cls) -> Settings:
        return cls(app=AppConfig.default(), gate=GateConfig())


def _require_str(obj: dict[str, Any], key: str) -> str:
    val = obj.get(key)
    if not isinstance(val, str) or not val.strip():
        raise ConfigError(f"Invalid or missing config value: {key}")
    return val


def _get_str(obj: dict[str, Any], key: str, default: str) -> str:
    val = obj.get(key, default)
    if val is None:
        return default
    if not isinstance(val, str):
        raise ConfigError(f"Invalid config value (expected string): {key}")
    return val


def _get_bool(obj: dict[str, Any], key: str, default: bool) -> bool:
    val = obj.get(key, default)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    raise ConfigError(f"Invalid config value (expected bool): {key}")


def load_config(config_path: str | Path) -> Settings:
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        import yaml  # type: ignore
    except ModuleNotFoundError as e:
        raise ConfigError(
            "PyYAML is not installed. Install it (e.g. `pip install PyYAML`) to use YAML config."
        ) from e

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except Exception as e:  # noqa: BLE001
        raise ConfigError(f"Failed to parse YAML config: {path}") from e

    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a YAML mapping")

    app = raw.get("app")
    if not isinstance(app, dict):
        raise ConfigError("Missing 'app' section in config")

    env = _require_str(app, "env")
    log_level = _require_str(app, "log_level")

    log_dir_raw = app.get("log_dir")
    if log_dir_raw is not None and not isinstance(log_dir_raw, str):
        raise ConfigError("Invalid config value (expected string): log_dir")
    log_dir = Path(log_dir_raw).expanduser() if log_dir_raw else None

    app_config = AppConfig(
        env=env,
        log_level=log_level,
        log_dir=log_dir,
        log_file=_get_str(app, "log_file", default="robust_gate.log"),
        json_log_file=_get_str(app, "json_log_file", default="robust_gate.json.log"),
        console_log_format=_get_str(app, "console_log_format", default="text"),
        enable_json_file_log=_get_bool(app, "enable_json_file_log", default=False),
    )

    gate = raw.get("gate")
    if gate is None:
        gate = {}
    if not isinstance(gate, dict):
        raise ConfigError("'gate' section must be a YAML mapping")

    return Settings(app=app_config, gate=GateConfig.from_overrides(gate))
