"""Client configuration and model registry loader.

Loads endpoint settings and the model registry from defaults.toml.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from deepseek_kit.schemas.config import ClientConfig, ModelConfig, StreamSettings

# Default config directory relative to the deepseek_kit package
_CONFIG_DIR = Path(__file__).parent.parent / "config"


def _read_toml(config_path: Path | None) -> tuple[Path, dict]:
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Client config not found: {path}")

    with open(path, "rb") as f:
        return path, tomllib.load(f)


def load_models(config_path: Path | None = None) -> dict[str, ModelConfig]:
    """Load the model registry from a TOML file.

    Args:
        config_path: Path to a TOML file. Defaults to deepseek_kit/config/defaults.toml.

    Returns:
        Dictionary mapping model names to ModelConfig instances.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path, raw = _read_toml(config_path)

    models_section = raw.get("models")
    if not models_section or not isinstance(models_section, dict):
        raise ValueError(f"No [models] section found in {path}")

    registry: dict[str, ModelConfig] = {}
    for key, entry in models_section.items():
        if not isinstance(entry, dict):
            continue
        registry[key] = ModelConfig(**entry)

    return registry


def load_client_config(config_path: Path | None = None) -> ClientConfig:
    """Load client settings and the model registry from a TOML file.

    Missing keys fall back to the ClientConfig defaults.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path, raw = _read_toml(config_path)

    client_section = dict(raw.get("client", {}))
    stream_data = client_section.pop("stream", {})

    models: dict[str, ModelConfig] = {}
    if raw.get("models"):
        models = load_models(path)

    return ClientConfig(
        **client_section,
        stream=StreamSettings(**stream_data),
        models=models,
    )
