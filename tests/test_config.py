"""Tests for YAML config loading and environment overrides."""

from pathlib import Path

from config import AppConfig, config


def test_defaults_loaded_from_yaml():
    assert config.segmentation.target_size == 2000
    assert config.segmentation.max_size == 2200
    assert config.retry.attempts == 3
    assert config.budget.total_tokens == 150000


def test_override_key_with_underscores():
    data = {"pipeline": {"summary_cooldown_seconds": 60.0}}
    out = AppConfig._apply_env_overrides(data, {"CHATLENS_PIPELINE_SUMMARY_COOLDOWN_SECONDS": "0"})
    assert out["pipeline"]["summary_cooldown_seconds"] == 0.0
    assert isinstance(out["pipeline"]["summary_cooldown_seconds"], float)


def test_override_nested_provider_section():
    data = {"providers": {"deep_analysis": {"model": "a", "max_tokens": 100}}}
    env = {
        "CHATLENS_PROVIDERS_DEEP_ANALYSIS_MODEL": "b",
        "CHATLENS_PROVIDERS_DEEP_ANALYSIS_MAX_TOKENS": "200",
    }
    out = AppConfig._apply_env_overrides(data, env)
    assert out["providers"]["deep_analysis"] == {"model": "b", "max_tokens": 200}


def test_unknown_and_unprefixed_keys_ignored():
    data = {"budget": {"total_tokens": 1}}
    env = {"CHATLENS_BUDGET_NOPE": "5", "BUDGET_TOTAL_TOKENS": "9", "CHATLENS_BUDGET": "x"}
    assert AppConfig._apply_env_overrides(data, env) == {"budget": {"total_tokens": 1}}


def test_load_applies_environment(tmp_path, monkeypatch):
    source = (Path(__file__).parent.parent / "config.yaml").read_text(encoding="utf-8")
    path = tmp_path / "config.yaml"
    path.write_text(source, encoding="utf-8")
    monkeypatch.setenv("CHATLENS_SEGMENTATION_MAX_SIZE", "500")
    loaded = AppConfig.load(path)
    assert loaded.segmentation.max_size == 500
