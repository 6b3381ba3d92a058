"""Engine configuration with YAML support."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import Field

from runner_core.schemas import BaseSchema


class EngineConfig(BaseSchema):
    """Runtime settings for the execution engine."""

    # Sandbox worker limits
    sandbox_timeout_ms: int = Field(default=5000, gt=0)
    sandbox_memory_limit_mb: int = Field(default=256, gt=0)

    # Local executables
    node_binary: str = "node"
    python_binary: str | None = None  # defaults to the running interpreter
    esbuild_binary: str = "esbuild"

    # Bundler
    cdn_base_url: str = "https://cdn.jsdelivr.net/npm/"

    # Remote execution service
    remote_url: str = "https://emkc.org/api/v2/piston/execute"
    remote_timeout_s: float | None = None  # transport default, no explicit bound

    # Alternative language table
    languages_path: str | None = None


def load_config(yaml_path: str | Path) -> EngineConfig:
    """Load engine configuration from a YAML file.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        EngineConfig instance

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If YAML is invalid
    """
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return EngineConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML config (expected a mapping): {yaml_path}")

    try:
        return EngineConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {yaml_path}: {e}") from e


def save_config(config: EngineConfig, yaml_path: str | Path) -> None:
    """Save engine configuration to a YAML file."""
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.to_dict()

    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)
