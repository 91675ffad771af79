"""
Tests for configuration loading
"""

import pytest

from strikemd.config import (
    ConfigError,
    LLMConfig,
    StrikeConfig,
    find_config_file,
    find_project_root,
    load_config,
    read_dotenv_key,
)
from strikemd.models import OutputMode


class TestDataclasses:
    """Tests for config dataclasses."""

    def test_defaults(self):
        """Test default values."""
        config = StrikeConfig()
        assert config.mode == "full"
        assert config.output_mode == OutputMode.FULL
        assert config.max_history == 50
        assert config.llm.backend == "claude"
        assert config.llm.max_tokens == 16384

    def test_clamping(self):
        """Test out-of-range values are clamped."""
        llm = LLMConfig(temperature=5, max_tokens=1, timeout=0)
        assert llm.temperature == 2.0
        assert llm.max_tokens == 256
        assert llm.timeout == 1
        assert StrikeConfig(max_history=0).max_history == 1

    def test_invalid_values(self):
        """Test unknown backend or mode are rejected."""
        with pytest.raises(ConfigError):
            LLMConfig(backend="gpt")
        with pytest.raises(ConfigError):
            StrikeConfig(mode="diff")

    def test_model_default_per_backend(self):
        """Test the model falls back to the backend default."""
        assert LLMConfig(backend="ollama").model_name == "mistral:instruct"
        assert LLMConfig(backend="ollama", model="qwen").model_name == "qwen"

    def test_dict_round_trip(self):
        """Test to_dict/from_dict preserve settings."""
        config = StrikeConfig(llm=LLMConfig(backend="ollama", model="m"), mode="compact")
        again = StrikeConfig.from_dict(config.to_dict())
        assert again.to_dict() == config.to_dict()
        assert "api_key" not in config.to_dict()["llm"]


class TestLoading:
    """Tests for YAML loading and overrides."""

    def test_load_yaml(self, project_dir):
        """Test values are read from .strikemd/config.yaml."""
        (project_dir / ".strikemd" / "config.yaml").write_text(
            "mode: compact\nllm:\n  backend: ollama\n  model: llama3\n", encoding="utf-8"
        )
        config = load_config(start=project_dir)
        assert config.mode == "compact"
        assert config.llm.backend == "ollama"
        assert config.llm.model_name == "llama3"

    def test_find_config_upward(self, project_dir):
        """Test discovery searches parent directories."""
        (project_dir / "strikemd.yaml").write_text("mode: full\n", encoding="utf-8")
        nested = project_dir / "docs" / "guide"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == (project_dir / "strikemd.yaml").resolve()

    def test_invalid_yaml(self, temp_dir):
        """Test a broken file raises ConfigError."""
        path = temp_dir / "strikemd.yaml"
        path.write_text("mode: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_non_mapping(self, temp_dir):
        """Test a YAML list is rejected."""
        path = temp_dir / "strikemd.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_env_overrides(self, temp_dir, monkeypatch):
        """Test STRIKEMD_* variables win over the file."""
        path = temp_dir / "strikemd.yaml"
        path.write_text("mode: full\nllm:\n  backend: claude\n", encoding="utf-8")
        monkeypatch.setenv("STRIKEMD_BACKEND", "ollama")
        monkeypatch.setenv("STRIKEMD_MODEL", "phi")
        monkeypatch.setenv("STRIKEMD_MODE", "compact")
        monkeypatch.setenv("STRIKEMD_ENDPOINT", "http://gpu:11434")
        config = load_config(path)
        assert config.llm.backend == "ollama"
        assert config.llm.model == "phi"
        assert config.llm.endpoint == "http://gpu:11434"
        assert config.mode == "compact"

    def test_api_key_from_env(self, temp_dir, monkeypatch):
        """Test ANTHROPIC_API_KEY is picked up."""
        path = temp_dir / "strikemd.yaml"
        path.write_text("{}\n", encoding="utf-8")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        assert load_config(path).llm.api_key == "sk-env"


class TestProjectRoot:
    """Tests for project root discovery and .env lookup."""

    def test_marker_found_upward(self, project_dir):
        """Test the nearest .strikemd/ directory is the root."""
        nested = project_dir / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == project_dir.resolve()

    def test_git_marker(self, temp_dir):
        """Test .git also marks a project root."""
        (temp_dir / ".git").mkdir()
        doc = temp_dir / "doc.md"
        doc.write_text("x", encoding="utf-8")
        assert find_project_root(doc) == temp_dir.resolve()

    def test_dotenv_key(self, project_dir):
        """Test keys are read from the project's .env file."""
        (project_dir / ".env").write_text("ANTHROPIC_API_KEY=sk-file\nOTHER=1\n", encoding="utf-8")
        assert read_dotenv_key(project_dir, "ANTHROPIC_API_KEY") == "sk-file"
        assert read_dotenv_key(project_dir, "MISSING") == ""

    def test_dotenv_used_by_load_config(self, project_dir):
        """Test the .env key fills in a missing API key."""
        (project_dir / ".env").write_text('ANTHROPIC_API_KEY="sk-dotenv"\n', encoding="utf-8")
        (project_dir / "strikemd.yaml").write_text("mode: full\n", encoding="utf-8")
        config = load_config(start=project_dir)
        assert config.llm.api_key == "sk-dotenv"
