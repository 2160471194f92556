"""api-ex config - storage directory resolution and config.yaml defaults."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import dotenv_values

from apiex.errors import ConfigurationError, ValidationError
from apiex.models import DEFAULT_TIMEOUT_MS
from apiex.validation import validate_timeout

STORAGE_ENV_VAR = "API_EX_STORAGE_DIR"
DEBUG_ENV_VAR = "API_EX_DEBUG"
GLOBAL_DIR = Path.home() / ".api-ex"
CONFIG_FILE_NAME = "config.yaml"


@dataclass
class Settings:
    storage_dir: Path
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    debug: bool = False
    headers: dict[str, str] = field(default_factory=dict)


def load_env(env_file: str | Path | None = ".env") -> dict[str, str]:
    """os.environ overlaid on a .env file. Real environment variables win."""
    env: dict[str, str] = {}
    if env_file and Path(env_file).is_file():
        env.update({k: v for k, v in dotenv_values(str(env_file)).items() if v is not None})
    env.update(os.environ)
    return env


def load_dotenv_variables(path: str | Path) -> dict[str, str]:
    """Read KEY=VALUE pairs from a .env file. Keys without a value map to ""."""
    p = Path(path)
    if not p.is_file():
        raise ConfigurationError(f".env file not found: {p}")
    return {k: "" if v is None else v for k, v in dotenv_values(str(p)).items()}


def resolve_storage_dir(cli_storage_dir: str | None, env: dict[str, str]) -> Path:
    """Resolution order:
      1. --storage-dir flag
      2. API_EX_STORAGE_DIR (environment or ./.env)
      3. ~/.api-ex
    """
    if cli_storage_dir:
        return Path(cli_storage_dir).expanduser()
    if env.get(STORAGE_ENV_VAR):
        return Path(env[STORAGE_ENV_VAR]).expanduser()
    return GLOBAL_DIR


def load_config(config_path: str | Path) -> dict:
    """Load the ``defaults`` section of a YAML config. Missing file → {}."""
    path = Path(config_path)
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid config file {path}: expected a mapping")
    defaults = data.get("defaults") or {}
    if not isinstance(defaults, dict):
        raise ConfigurationError(f"Invalid config file {path}: 'defaults' must be a mapping")
    return defaults


def load_settings(
    cli_storage_dir: str | None = None,
    debug: bool = False,
    env_file: str | Path | None = ".env",
) -> Settings:
    env = load_env(env_file)
    storage_dir = resolve_storage_dir(cli_storage_dir, env)
    defaults = load_config(storage_dir / CONFIG_FILE_NAME)

    timeout_ms = DEFAULT_TIMEOUT_MS
    if defaults.get("timeout") is not None:
        try:
            timeout_ms = validate_timeout(defaults["timeout"])
        except ValidationError as e:
            raise ConfigurationError(f"Invalid timeout in config: {e}") from e

    headers = defaults.get("headers") or {}
    if not isinstance(headers, dict):
        raise ConfigurationError("Invalid config: 'headers' must be a mapping")

    return Settings(
        storage_dir=storage_dir,
        timeout_ms=timeout_ms,
        debug=debug or env.get(DEBUG_ENV_VAR) == "1" or bool(defaults.get("debug")),
        headers={str(k): str(v) for k, v in headers.items()},
    )
