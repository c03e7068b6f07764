"""
Unit tests for config_loader module.
"""

import os

import pytest

from intake_intelligence.utils.config_loader import DEFAULT_CONFIG, Config, SystemConfig
from intake_intelligence.utils.error_handlers import ConfigurationError

pytestmark = pytest.mark.unit


class TestSystemConfig:
    """Tests for SystemConfig."""

    def test_defaults(self):
        config = SystemConfig()

        assert config.pipeline["max_retries"] == 3
        assert config.cache["ttl_seconds"] == 86400
        assert config.llm["secondary_text"]["name"] == "anthropic"

    def test_partial_override_keeps_defaults(self):
        config = SystemConfig(pipeline={"max_retries": 5}, llm={"vision": {"model": "gpt-4o-mini"}})

        assert config.pipeline["max_retries"] == 5
        assert config.pipeline["image_batch_size"] == 3
        assert config.llm["vision"]["model"] == "gpt-4o-mini"
        assert config.llm["vision"]["name"] == "openai"

    def test_defaults_not_shared(self):
        config = SystemConfig()
        config.pipeline["max_retries"] = 9

        assert DEFAULT_CONFIG["pipeline"]["max_retries"] == 3
        assert SystemConfig().pipeline["max_retries"] == 3

    def test_to_dict_is_copy(self):
        config = SystemConfig()
        data = config.to_dict()
        data["cache"]["ttl_seconds"] = 1

        assert config.cache["ttl_seconds"] == 86400


class TestConfigLoad:
    """Tests for Config.load."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "system_config.yaml"
        path.write_text("pipeline:\n  run_timeout_seconds: 120\ncache:\n  ttl_seconds: 60\n")

        config = Config.load(str(path), env_file=None)

        assert config.pipeline["run_timeout_seconds"] == 120
        assert config.cache["ttl_seconds"] == 60
        assert config.pipeline["max_retries"] == 3

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert Config.load(str(path), env_file=None).pipeline["max_retries"] == 3

    def test_no_path_uses_defaults(self):
        assert Config.load(None, env_file=None).cache["notes_prefix_length"] == 100

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            Config.load(str(tmp_path / "missing.yaml"), env_file=None)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("pipeline: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Failed to parse"):
            Config.load(str(path), env_file=None)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ConfigurationError, match="dictionary"):
            Config.load(str(path), env_file=None)

    def test_env_file_loaded(self, tmp_path, monkeypatch):
        monkeypatch.delenv("INTAKE_TEST_KEY", raising=False)
        env_path = tmp_path / ".env"
        env_path.write_text("INTAKE_TEST_KEY=from-dotenv\n")

        Config.load(None, env_file=str(env_path))

        assert os.environ["INTAKE_TEST_KEY"] == "from-dotenv"
        monkeypatch.delenv("INTAKE_TEST_KEY")

    def test_shipped_config_is_valid(self):
        config = Config.load(env_file=None)
        assert Config.validate(config) == []


class TestConfigValidate:
    """Tests for Config.validate."""

    def test_defaults_valid(self):
        assert Config.validate(SystemConfig()) == []

    def test_same_text_providers(self):
        config = SystemConfig(llm={"secondary_text": {"name": "openai"}})

        errors = Config.validate(config)

        assert any("different provider" in e for e in errors)

    def test_unknown_provider(self):
        config = SystemConfig(llm={"vision": {"name": "acme"}})
        assert any("llm.vision.name" in e for e in Config.validate(config))

    @pytest.mark.parametrize(
        "section, key, value",
        [
            ("pipeline", "max_retries", 0),
            ("pipeline", "run_timeout_seconds", "fast"),
            ("pipeline", "image_batch_size", True),
            ("image_preprocessing", "jpeg_quality", 101),
            ("cache", "ttl_seconds", -1),
        ],
    )
    def test_out_of_range(self, section, key, value):
        config = SystemConfig(**{section: {key: value}})

        errors = Config.validate(config)

        assert any(f"{section}.{key}" in e for e in errors)

    def test_specialized_types_must_be_list(self):
        config = SystemConfig(pipeline={"specialized_project_types": "window_replacement"})
        assert "pipeline.specialized_project_types must be a list" in Config.validate(config)
