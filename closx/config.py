"""Configuration loading for closx.

Settings come from TOML files merged in order (later wins):

    ~/.config/closx/closx.toml
    ~/.closx.toml
    ./.closx.toml
    --config PATH

then from CLOSX_* environment variables, then from `--set KEY=VALUE`
overrides and CLI flags. The merged data is validated once, at the end.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib

from .config_overrides import apply_cli_overrides, apply_set_override
from .errors import ClosxError
from .loop import DEFAULT_MAX_TURNS, DEFAULT_OUTPUT_LIMIT
from .shell.types import ExecutionMode, PolicySettings

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".closx.toml"

DEFAULT_ALLOW_LIST = (
    "ls",
    "pwd",
    "cat",
    "echo",
    "find",
    "grep",
    "head",
    "tail",
    "wc",
    "which",
    "whoami",
    "date",
    "git status",
    "git log",
    "git diff",
)

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "CLOSX_MODEL": "agent.model",
    "CLOSX_POLICY_MODE": "policy.mode",
    "CLOSX_MAX_TURNS": "agent.max_turns",
    "CLOSX_LOG_LEVEL": "logging.level",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ClosxError):
    """Raised when a config file cannot be read or holds invalid values."""
    pass


@dataclass
class PolicyConfig:
    mode: ExecutionMode = ExecutionMode.ALLOWLIST
    allow_list: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOW_LIST))
    deny_list: List[str] = field(default_factory=list)


@dataclass
class AgentConfig:
    model: Optional[str] = None
    max_turns: int = DEFAULT_MAX_TURNS
    instructions: Optional[str] = None


@dataclass
class ExecutionConfig:
    timeout_ms: Optional[int] = None
    output_limit: int = DEFAULT_OUTPUT_LIMIT
    shell: Optional[str] = None


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class ClosxConfig:
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    paths: List[Path] = field(default_factory=list)

    def policy_settings(self) -> PolicySettings:
        """Build the immutable policy used by the command gate."""
        return PolicySettings(
            mode=self.policy.mode,
            allow_list=tuple(self.policy.allow_list),
            deny_list=tuple(self.policy.deny_list),
        )


def config_search_paths(cwd: Optional[Path] = None, home: Optional[Path] = None) -> list[Path]:
    """Return the implicit config file locations, lowest priority first."""
    cwd = cwd or Path.cwd()
    home = home or Path.home()
    return [
        home / ".config" / "closx" / "closx.toml",
        home / CONFIG_FILENAME,
        cwd / CONFIG_FILENAME,
    ]


def read_config_file(path: Path) -> Dict[str, Any]:
    """Read one TOML file.

    Raises:
        ConfigError: If the file cannot be read or is not valid TOML
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e


def merge_config(base: Dict[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge `overlay` into `base` (in place). Tables merge, values replace."""
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            merge_config(base[key], value)
        elif isinstance(value, Mapping):
            base[key] = merge_config({}, value)
        else:
            base[key] = value
    return base


def load_config(
    *,
    config_path: Optional[Path] = None,
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    set_overrides: Iterable[str] = (),
    overrides: Optional[Mapping[str, Any]] = None,
) -> ClosxConfig:
    """Load, merge and validate the configuration.

    Args:
        config_path: Explicit config file (must exist)
        cwd: Directory searched for ./.closx.toml (defaults to the current one)
        home: Home directory (defaults to Path.home())
        environ: Environment variables (defaults to os.environ)
        set_overrides: --set KEY=VALUE specifications
        overrides: Dotted key -> value pairs from CLI flags, applied last

    Raises:
        ConfigError: On unreadable files or invalid values
    """
    data: Dict[str, Any] = {}
    paths: list[Path] = []

    for candidate in config_search_paths(cwd, home):
        if candidate.is_file():
            merge_config(data, read_config_file(candidate))
            paths.append(candidate)

    if config_path is not None:
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
        merge_config(data, read_config_file(config_path))
        paths.append(config_path)

    env = os.environ if environ is None else environ
    for var, key_path in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            apply_set_override(data, key_path, value)

    try:
        apply_cli_overrides(data, set_overrides=set_overrides)
        for key_path, value in (overrides or {}).items():
            if value is not None:
                apply_set_override(data, key_path, value)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    config = parse_config(data)
    config.paths = paths
    logger.debug(f"Loaded config from {[str(p) for p in paths] or 'defaults'}")
    return config


def parse_config(data: Mapping[str, Any]) -> ClosxConfig:
    """Validate merged config data.

    Raises:
        ConfigError: If a section or value is invalid
    """
    unknown = set(data) - {"policy", "agent", "execution", "logging"}
    if unknown:
        raise ConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")
    return ClosxConfig(
        policy=_parse_policy(_section(data, "policy")),
        agent=_parse_agent(_section(data, "agent")),
        execution=_parse_execution(_section(data, "execution")),
        logging=_parse_logging(_section(data, "logging")),
    )


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    raw = data.get(name) or {}
    if not isinstance(raw, Mapping):
        raise ConfigError(f"[{name}] must be a table")
    return raw


def _string_list(raw: Any, key: str) -> List[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple)) or not all(isinstance(item, str) for item in raw):
        raise ConfigError(f"{key} must be a list of strings")
    return [item.strip() for item in raw if item.strip()]


def _int(raw: Any, key: str, *, minimum: int) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if isinstance(raw, float) and raw != value:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{key} must be at least {minimum}, got {value}")
    return value


def _parse_policy(raw: Mapping[str, Any]) -> PolicyConfig:
    config = PolicyConfig()
    if "mode" in raw:
        try:
            config.mode = ExecutionMode(str(raw["mode"]).strip().lower())
        except ValueError:
            choices = ", ".join(m.value for m in ExecutionMode)
            raise ConfigError(f"policy.mode must be one of {choices}, got {raw['mode']!r}")
    if "allow_list" in raw:
        config.allow_list = _string_list(raw["allow_list"], "policy.allow_list")
    if "deny_list" in raw:
        config.deny_list = _string_list(raw["deny_list"], "policy.deny_list")
    return config


def _parse_agent(raw: Mapping[str, Any]) -> AgentConfig:
    config = AgentConfig()
    if raw.get("model"):
        config.model = str(raw["model"])
    if "max_turns" in raw:
        config.max_turns = _int(raw["max_turns"], "agent.max_turns", minimum=1)
    if raw.get("instructions"):
        config.instructions = str(raw["instructions"])
    return config


def _parse_execution(raw: Mapping[str, Any]) -> ExecutionConfig:
    config = ExecutionConfig()
    timeout = raw.get("timeout_ms")
    if timeout is not None:
        value = _int(timeout, "execution.timeout_ms", minimum=0)
        config.timeout_ms = value or None  # 0 disables the timeout
    if "output_limit" in raw:
        config.output_limit = _int(raw["output_limit"], "execution.output_limit", minimum=0)
    if raw.get("shell"):
        config.shell = str(raw["shell"])
    return config


def _parse_logging(raw: Mapping[str, Any]) -> LoggingConfig:
    config = LoggingConfig()
    if "level" in raw:
        level = str(raw["level"]).strip().upper()
        if level not in LOG_LEVELS:
            raise ConfigError(f"logging.level must be one of {', '.join(LOG_LEVELS)}, got {raw['level']!r}")
        config.level = level
    return config


__all__ = [
    "ClosxConfig",
    "ConfigError",
    "DEFAULT_ALLOW_LIST",
    "ENV_OVERRIDES",
    "config_search_paths",
    "load_config",
    "merge_config",
    "parse_config",
]
