"""
Test Agent Configuration
========================

Validation ranges, per-run overrides, presets and environment loading.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from core.agent_config import AgentConfig, ConfigurationError, InvalidConfigError, FAST_CONFIG, ROBUST_CONFIG


def test_defaults_are_valid():
    print("\n🧪 Test: defaults")
    config = AgentConfig().validate()
    assert config.quality_threshold == 9.0
    assert config.max_rounds == 4
    assert config.plateau_epsilon == 0.0


@pytest.mark.parametrize("overrides", [
    {"quality_threshold": 0.0},
    {"quality_threshold": 10.5},
    {"max_rounds": 0},
    {"plateau_epsilon": -0.1},
    {"run_timeout": 0},
    {"retry_max_attempts": 0},
    {"synthesis_max_tokens": 0},
    {"critical_penalty": -1},
])
def test_out_of_range_values_are_rejected(overrides):
    with pytest.raises(ConfigurationError):
        AgentConfig(**overrides).validate()


def test_range_errors_are_invalid_config_errors():
    with pytest.raises(InvalidConfigError):
        AgentConfig().with_overrides(max_rounds=0).validate()
    assert issubclass(InvalidConfigError, ConfigurationError)


def test_threshold_upper_bound_is_inclusive():
    assert AgentConfig(quality_threshold=10.0).validate().quality_threshold == 10.0


def test_overrides_skip_none():
    base = AgentConfig(max_rounds=3)
    config = base.with_overrides(quality_threshold=7.5, max_rounds=None)
    assert config.quality_threshold == 7.5
    assert config.max_rounds == 3
    assert base.quality_threshold == 9.0


def test_presets():
    assert FAST_CONFIG.validate().max_rounds == 2
    assert ROBUST_CONFIG.validate().enable_technician


def test_from_env(tmp_path, monkeypatch):
    print("\n🧪 Test: environment loading")
    for name in ("CODEMIND_MAX_ROUNDS", "CODEMIND_QUALITY_THRESHOLD", "CODEMIND_ENABLE_TECHNICIAN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENROUTER_API_KEY", "env-key")
    monkeypatch.setenv("CODEMIND_QUALITY_THRESHOLD", "8.5")
    monkeypatch.setenv("CODEMIND_ENABLE_TECHNICIAN", "yes")
    dotenv = tmp_path / ".env"
    dotenv.write_text("CODEMIND_MAX_ROUNDS=2\n")

    config = AgentConfig.from_env(str(dotenv))

    assert config.quality_threshold == 8.5
    assert config.max_rounds == 2
    assert config.enable_technician is True
    assert config.api_key == "env-key"


def test_from_env_rejects_garbage(tmp_path, monkeypatch):
    monkeypatch.setenv("CODEMIND_MAX_ROUNDS", "many")
    with pytest.raises(ConfigurationError):
        AgentConfig.from_env(str(tmp_path / "missing.env"))
