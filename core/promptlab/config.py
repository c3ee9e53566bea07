"""Shared promptlab configuration utilities.

Centralises reading of ~/.promptlab/configuration.json so the CLI, the
workflow executor and the batch runner share one implementation. The file
location can be overridden with the PROMPTLAB_CONFIG environment variable.

Example configuration::

    {
      "workflow": {"max_iterations": 100},
      "batch": {"concurrency": 3},
      "generation": {"temperature": 0.7, "top_p": 0.95, "top_k": 40},
      "providers": {"gemini": {"api_key_env_var": "GEMINI_API_KEY"}}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from promptlab.errors import ConfigError
from promptlab.schemas.prompt import GenerationConfig

DEFAULT_MAX_ITERATIONS = 100
DEFAULT_BATCH_CONCURRENCY = 3

_DEFAULT_KEY_ENV_VARS = {
    "gemini": "GEMINI_API_KEY",
    "openai-compatible": "OPENAI_API_KEY",
}

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------


def get_config_path() -> Path:
    override = os.environ.get("PROMPTLAB_CONFIG")
    if override:
        return Path(override)
    return Path.home() / ".promptlab" / "configuration.json"


def get_promptlab_config() -> dict[str, Any]:
    """Load configuration; a missing or unreadable file yields an empty dict."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_max_iterations() -> int:
    """Scheduler iteration ceiling per run."""
    value = get_promptlab_config().get("workflow", {}).get("max_iterations", DEFAULT_MAX_ITERATIONS)
    if not isinstance(value, int) or value < 1:
        raise ConfigError(f"workflow.max_iterations must be a positive integer, got {value!r}")
    return value


def get_batch_concurrency() -> int:
    """Number of test cases a batch run executes at once."""
    value = get_promptlab_config().get("batch", {}).get("concurrency", DEFAULT_BATCH_CONCURRENCY)
    if not isinstance(value, int) or value < 1:
        raise ConfigError(f"batch.concurrency must be a positive integer, got {value!r}")
    return value


def get_default_generation_config() -> GenerationConfig:
    """Sampling parameters used when a prompt version carries none."""
    overrides = get_promptlab_config().get("generation", {})
    try:
        return GenerationConfig.model_validate(overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid generation defaults: {e}") from e


def get_api_key(provider: str) -> str | None:
    """Return the API key for ``provider`` from the environment.

    The variable name comes from ``providers.<provider>.api_key_env_var``,
    falling back to GEMINI_API_KEY / OPENAI_API_KEY.
    """
    provider_cfg = get_promptlab_config().get("providers", {}).get(provider, {})
    env_var = provider_cfg.get("api_key_env_var") or _DEFAULT_KEY_ENV_VARS.get(provider)
    if env_var:
        return os.environ.get(env_var)
    return None


# ---------------------------------------------------------------------------
# RuntimeConfig – shared by the CLI and batch runner
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Workflow runtime configuration loaded from the configuration file."""

    max_iterations: int = field(default_factory=get_max_iterations)
    batch_concurrency: int = field(default_factory=get_batch_concurrency)
    generation: GenerationConfig = field(default_factory=get_default_generation_config)
