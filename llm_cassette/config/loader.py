"""
Configuration management and loading.

Handles cassette settings from a YAML file and CASSETTE_* environment
variables.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from llm_cassette.core.modes import MissPolicy
from llm_cassette.core.pricing import PricingTable


DEFAULT_CASSETTE_DIR = ".cassettes"
DEFAULT_MODEL_OPTIONS = {"model": "gpt-4o-mini", "temperature": 0}

ENV_MODE = "CASSETTE_MODE"
ENV_DIR = "CASSETTE_DIR"
ENV_TOOL_MODE = "CASSETTE_TOOL_MODE"
ENV_TOOL_DIR = "CASSETTE_TOOL_DIR"
ENV_REPLAY_MISS = "CASSETTE_REPLAY_MISS"
ENV_TOOL_REPLAY_MISS = "CASSETTE_TOOL_REPLAY_MISS"
ENV_VERBOSE = "CASSETTE_VERBOSE"
ENV_CONFIG = "CASSETTE_CONFIG"


@dataclass(frozen=True)
class CassetteConfig:
    """Complete cassette configuration.

    Modes are kept as given; an unknown mode fails at the first dispatch,
    not here. Miss policies are validated eagerly.
    """
    mode: str = "auto"
    cassette_dir: str = DEFAULT_CASSETTE_DIR
    tool_mode: Optional[str] = None
    tool_cassette_dir: Optional[str] = None
    on_replay_miss: MissPolicy = MissPolicy.ERROR
    on_tool_replay_miss: MissPolicy = MissPolicy.LIVE
    provider: str = "openai"
    model_options: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_MODEL_OPTIONS))
    verbose: bool = False
    pricing: Optional[PricingTable] = None

    def __post_init__(self):
        """Validate values and coerce policy strings."""
        if not self.mode or not str(self.mode).strip():
            raise ValueError("mode cannot be empty")
        if not self.cassette_dir or not str(self.cassette_dir).strip():
            raise ValueError("cassette_dir cannot be empty")
        object.__setattr__(self, "mode", str(self.mode).strip().lower())
        if self.tool_mode is not None:
            object.__setattr__(self, "tool_mode", str(self.tool_mode).strip().lower())
        object.__setattr__(self, "on_replay_miss", MissPolicy.parse(self.on_replay_miss))
        object.__setattr__(self, "on_tool_replay_miss", MissPolicy.parse(self.on_tool_replay_miss))

    @property
    def model(self) -> str:
        return str(self.model_options.get("model") or "unknown-model")

    @property
    def resolved_cassette_dir(self) -> Path:
        return Path(self.cassette_dir).resolve()

    @property
    def resolved_tool_mode(self) -> str:
        """Tool mode, defaulting to the call mode."""
        return self.tool_mode or self.mode

    @property
    def resolved_tool_dir(self) -> Path:
        """Tool record directory, defaulting to `<cassette_dir>/tools`."""
        if self.tool_cassette_dir:
            return Path(self.tool_cassette_dir).resolve()
        return self.resolved_cassette_dir / "tools"


def load_cassette_config(path: str) -> CassetteConfig:
    """Load and validate cassette configuration from a YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated CassetteConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Cassette config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {
        'mode', 'cassette_dir', 'on_replay_miss', 'tools',
        'provider', 'model_options', 'verbose', 'pricing'
    }
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    kwargs: Dict[str, Any] = {}
    for key in ('mode', 'cassette_dir', 'provider'):
        if key in raw_config:
            kwargs[key] = _require_string(raw_config[key], key)

    if 'on_replay_miss' in raw_config:
        kwargs['on_replay_miss'] = _require_string(raw_config['on_replay_miss'], 'on_replay_miss')

    if 'verbose' in raw_config:
        if not isinstance(raw_config['verbose'], bool):
            raise ValueError("'verbose' must be true or false")
        kwargs['verbose'] = raw_config['verbose']

    if 'model_options' in raw_config:
        model_options = raw_config['model_options']
        if not isinstance(model_options, dict):
            raise ValueError("'model_options' must be a dictionary")
        if 'model' not in model_options:
            raise ValueError("Missing required 'model' in model_options")
        kwargs['model_options'] = dict(model_options)

    if 'tools' in raw_config:
        kwargs.update(_parse_tools_config(raw_config['tools']))

    if 'pricing' in raw_config:
        pricing_data = raw_config['pricing']
        if not isinstance(pricing_data, dict):
            raise ValueError("'pricing' must be a dictionary")
        kwargs['pricing'] = PricingTable.from_mapping(pricing_data)

    return CassetteConfig(**kwargs)


def _parse_tools_config(data: Any) -> Dict[str, Any]:
    """Parse and validate the `tools` section.

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ValueError("'tools' must be a dictionary")

    allowed_keys = {'mode', 'cassette_dir', 'on_replay_miss'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in tools: {unknown_keys}")

    parsed = {}
    if 'mode' in data:
        parsed['tool_mode'] = _require_string(data['mode'], 'tools.mode')
    if 'cassette_dir' in data:
        parsed['tool_cassette_dir'] = _require_string(data['cassette_dir'], 'tools.cassette_dir')
    if 'on_replay_miss' in data:
        parsed['on_tool_replay_miss'] = _require_string(data['on_replay_miss'], 'tools.on_replay_miss')
    return parsed


def _require_string(value: Any, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{path}' must be a non-empty string")
    return value


def config_from_env(
    environ: Optional[Mapping[str, str]] = None,
    base: Optional[CassetteConfig] = None
) -> CassetteConfig:
    """Overlay CASSETTE_* environment variables on a base configuration.

    The base is the YAML file named by CASSETTE_CONFIG when set, otherwise
    the defaults. Unset or empty variables leave the base value alone.
    """
    env = os.environ if environ is None else environ

    if base is None:
        config_file = env.get(ENV_CONFIG)
        base = load_cassette_config(config_file) if config_file else CassetteConfig()

    overrides: Dict[str, Any] = {}
    mapping = {
        ENV_MODE: 'mode',
        ENV_DIR: 'cassette_dir',
        ENV_TOOL_MODE: 'tool_mode',
        ENV_TOOL_DIR: 'tool_cassette_dir',
        ENV_REPLAY_MISS: 'on_replay_miss',
        ENV_TOOL_REPLAY_MISS: 'on_tool_replay_miss',
    }
    for env_name, field_name in mapping.items():
        value = env.get(env_name)
        if value:
            overrides[field_name] = value

    verbose = env.get(ENV_VERBOSE)
    if verbose:
        overrides['verbose'] = verbose.strip().lower() not in ("0", "false", "no", "off")

    return replace(base, **overrides) if overrides else base
