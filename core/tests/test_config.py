"""Tests for configuration file access."""

import pytest

from promptlab.config import (
    DEFAULT_BATCH_CONCURRENCY,
    DEFAULT_MAX_ITERATIONS,
    RuntimeConfig,
    get_api_key,
    get_batch_concurrency,
    get_config_path,
    get_default_generation_config,
    get_max_iterations,
    get_promptlab_config,
)
from promptlab.errors import ConfigError


def test_path_override(isolated_config):
    assert get_config_path() == isolated_config


def test_default_path(monkeypatch):
    monkeypatch.delenv("PROMPTLAB_CONFIG")
    assert get_config_path().parts[-2:] == (".promptlab", "configuration.json")


def test_missing_file_gives_defaults():
    assert get_promptlab_config() == {}
    assert get_max_iterations() == DEFAULT_MAX_ITERATIONS
    assert get_batch_concurrency() == DEFAULT_BATCH_CONCURRENCY
    assert get_default_generation_config().temperature == 0.7


def test_corrupt_file_gives_defaults(isolated_config):
    isolated_config.write_text("{oops")
    assert get_promptlab_config() == {}


def test_values_from_file(isolated_config):
    isolated_config.write_text(
        '{"workflow": {"max_iterations": 7}, "batch": {"concurrency": 5},'
        ' "generation": {"temperature": 0.1, "topK": 8}}'
    )
    runtime = RuntimeConfig()

    assert runtime.max_iterations == 7
    assert runtime.batch_concurrency == 5
    assert runtime.generation.temperature == 0.1
    assert runtime.generation.top_k == 8


@pytest.mark.parametrize(
    "content",
    ['{"workflow": {"max_iterations": 0}}', '{"workflow": {"max_iterations": "ten"}}'],
)
def test_invalid_iteration_limit(isolated_config, content):
    isolated_config.write_text(content)
    with pytest.raises(ConfigError):
        get_max_iterations()


def test_invalid_generation_defaults(isolated_config):
    isolated_config.write_text('{"generation": {"temperature": "hot"}}')
    with pytest.raises(ConfigError):
        get_default_generation_config()


def test_api_key_env_var_override(isolated_config, monkeypatch):
    isolated_config.write_text('{"providers": {"gemini": {"api_key_env_var": "MY_GEMINI"}}}')
    monkeypatch.setenv("MY_GEMINI", "custom")
    monkeypatch.setenv("GEMINI_API_KEY", "default")

    assert get_api_key("gemini") == "custom"


def test_api_key_defaults(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk")
    assert get_api_key("openai-compatible") == "sk"
    assert get_api_key("unknown") is None
