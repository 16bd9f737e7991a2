"""YAML configuration file loading."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".ethm"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"


@dataclass
class EthmConfig:
    """Top-level configuration for the ethm tool.

    Every field has a default so a plain ``ethm --bin ... --data ...``
    invocation works without any config file.

    Attributes:
        num_runs: How many times the node is started for one analysis.
        collection_duration: Seconds of data collection per run.
        collection_interval: Seconds between two samples.
        ready_timeout: Seconds to wait for the JSON-RPC endpoint to answer.
        ready_poll_interval: Seconds between two readiness probes.
        terminate_timeout: Seconds between SIGTERM and SIGKILL on stop.
        analysis_skip: Seconds at the start of each run ignored by the
            analysis (node warm-up).
        block_speed_window: Width in seconds of the block-speed average.
        min_peers: Value passed to the node's ``--min-peers`` flag.
        chain: Value passed to the node's ``--chain`` flag.
        port_range_min: Lowest port considered for the P2P / RPC ports.
        port_range_max: Highest port considered for the P2P / RPC ports.
        rpc_timeout: HTTP timeout in seconds for a single JSON-RPC call.
        extra_args: Additional arguments appended to the node command line.
    """

    num_runs: int = 3
    collection_duration: float = 600.0
    collection_interval: float = 0.5
    ready_timeout: float = 5.0
    ready_poll_interval: float = 0.5
    terminate_timeout: float = 10.0
    analysis_skip: float = 300.0
    block_speed_window: float = 10.0
    min_peers: int = 75
    chain: str = "foundation"
    port_range_min: int = 8000
    port_range_max: int = 9000
    rpc_timeout: float = 5.0
    extra_args: list[str] = field(default_factory=list)


# Fields that must be strictly positive.
_POSITIVE_FIELDS = (
    "num_runs",
    "collection_duration",
    "collection_interval",
    "ready_timeout",
    "ready_poll_interval",
    "terminate_timeout",
    "block_speed_window",
    "rpc_timeout",
)

# Fields that must be whole numbers.
_INT_FIELDS = ("num_runs", "min_peers", "port_range_min", "port_range_max")

_KNOWN_KEYS = frozenset(EthmConfig.__dataclass_fields__)


def load_config(path: Path | str | None = None) -> EthmConfig:
    """Load configuration from a YAML file.

    Args:
        path: Explicit path to a YAML config file.  If ``None``, the
            default location (``~/.ethm/config.yaml``) is tried.  If the
            default file doesn't exist, an ``EthmConfig`` with all defaults
            is returned silently.

    Returns:
        A populated ``EthmConfig`` instance.

    Raises:
        FileNotFoundError: If an explicit *path* was given but doesn't exist.
        ConfigError: If the file contains invalid YAML, has an unexpected
            top-level structure, or holds invalid values.
    """
    resolved = _resolve_path(path)

    if resolved is None:
        logger.debug("No config file found; using defaults")
        return EthmConfig()

    logger.debug("Loading config from %s", resolved)
    text = resolved.read_text(encoding="utf-8")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc

    if raw is None:
        # Empty file: all defaults.
        return EthmConfig()

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {resolved}, "
            f"got {type(raw).__name__}"
        )

    cfg = _build_config(raw, source=resolved)
    validate_config(cfg)
    return cfg


def validate_config(cfg: EthmConfig) -> None:
    """Check value ranges that the dataclass itself cannot express.

    Raises:
        ConfigError: On the first invalid value found.
    """
    for name in _INT_FIELDS:
        value = getattr(cfg, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{name} must be an integer, got {value!r}")

    if not isinstance(cfg.chain, str):
        raise ConfigError(f"chain must be a string, got {cfg.chain!r}")

    for name in _POSITIVE_FIELDS:
        value = getattr(cfg, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{name} must be a number, got {value!r}")
        if value <= 0:
            raise ConfigError(f"{name} must be positive, got {value!r}")

    if cfg.analysis_skip < 0:
        raise ConfigError(
            f"analysis_skip must not be negative, got {cfg.analysis_skip!r}"
        )

    if not 0 < cfg.port_range_min < cfg.port_range_max <= 65535:
        raise ConfigError(
            f"Invalid port range {cfg.port_range_min}-{cfg.port_range_max}"
        )

    if not isinstance(cfg.extra_args, list):
        raise ConfigError(
            f"extra_args must be a list, got {type(cfg.extra_args).__name__}"
        )
    if not all(isinstance(arg, str) for arg in cfg.extra_args):
        raise ConfigError("extra_args must only contain strings")


class ConfigError(Exception):
    """Raised when a configuration file is malformed or unreadable."""


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _resolve_path(path: Path | str | None) -> Path | None:
    """Return a concrete ``Path`` to read, or ``None`` if nothing to read.

    Raises:
        FileNotFoundError: If the caller supplied an explicit path that
            doesn't exist on disk.
    """
    if path is not None:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def _build_config(raw: dict, source: Path) -> EthmConfig:
    """Map raw YAML dict to an ``EthmConfig``, ignoring unknown keys."""
    kwargs = {key: value for key, value in raw.items() if key in _KNOWN_KEYS}

    unknown = set(raw) - _KNOWN_KEYS
    if unknown:
        logger.warning(
            "Ignoring unknown config keys in %s: %s",
            source,
            ", ".join(sorted(str(key) for key in unknown)),
        )

    if "extra_args" in kwargs and isinstance(kwargs["extra_args"], list):
        kwargs["extra_args"] = [str(arg) for arg in kwargs["extra_args"]]

    return EthmConfig(**kwargs)
