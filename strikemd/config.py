"""
Configuration for strikemd.

Loads strikemd.yaml (or .strikemd/config.yaml) found by searching upward
from the working directory, then applies environment variable overrides:

    STRIKEMD_BACKEND    ollama | claude | replay
    STRIKEMD_MODEL      model name for the backend
    STRIKEMD_ENDPOINT   Ollama endpoint URL
    STRIKEMD_MODE       full | compact
    ANTHROPIC_API_KEY   API key for the claude backend

Example strikemd.yaml:

    mode: compact
    llm:
      backend: ollama
      model: mistral:instruct
      temperature: 0.1
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union
import os

import yaml
from dotenv import dotenv_values

from strikemd.models import OutputMode

import logging

logger = logging.getLogger(__name__)

CONFIG_NAMES = ("strikemd.yaml", ".strikemd/config.yaml")
PROJECT_MARKERS = (".strikemd", ".git")

DEFAULT_MODELS = {
    "ollama": "mistral:instruct",
    "claude": "claude-sonnet-4-5-20250929",
    "replay": "replay",
}


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or is invalid."""
    pass


@dataclass
class LLMConfig:
    """Generation backend configuration."""
    backend: str = "claude"                     # ollama | claude | replay
    model: Optional[str] = None                 # None = backend default
    endpoint: str = "http://127.0.0.1:11434"
    api_key: str = ""                           # claude only (config, env or .env)
    temperature: float = 0.1
    max_tokens: int = 16384
    timeout: int = 300
    think: bool = False                         # request a reasoning phase

    def __post_init__(self):
        self.backend = self.backend.lower()
        if self.backend not in DEFAULT_MODELS:
            raise ConfigError(
                f"Unknown backend: {self.backend!r}. Use one of {', '.join(DEFAULT_MODELS)}."
            )
        self.temperature = max(0.0, min(2.0, float(self.temperature)))
        self.max_tokens = max(256, int(self.max_tokens))
        self.timeout = max(1, int(self.timeout))

    @property
    def model_name(self) -> str:
        return self.model or DEFAULT_MODELS[self.backend]


@dataclass
class StrikeConfig:
    """Top-level strikemd configuration."""
    llm: LLMConfig = field(default_factory=LLMConfig)
    mode: str = OutputMode.FULL.value
    max_history: int = 50
    checks_file: str = ".strikemd/checks.md"
    annotated_suffix: str = ".annotated.md"

    def __post_init__(self):
        try:
            self.mode = OutputMode.parse(self.mode).value
        except ValueError as e:
            raise ConfigError(str(e))
        self.max_history = max(1, int(self.max_history))

    @property
    def output_mode(self) -> OutputMode:
        return OutputMode(self.mode)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "llm": {
                "backend": self.llm.backend,
                "model": self.llm.model,
                "endpoint": self.llm.endpoint,
                "temperature": self.llm.temperature,
                "max_tokens": self.llm.max_tokens,
                "timeout": self.llm.timeout,
                "think": self.llm.think,
            },
            "mode": self.mode,
            "max_history": self.max_history,
            "checks_file": self.checks_file,
            "annotated_suffix": self.annotated_suffix,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "StrikeConfig":
        llm_d = d.get("llm") or {}
        return cls(
            llm=LLMConfig(
                backend=llm_d.get("backend", "claude"),
                model=llm_d.get("model"),
                endpoint=llm_d.get("endpoint", "http://127.0.0.1:11434"),
                api_key=llm_d.get("api_key", ""),
                temperature=llm_d.get("temperature", 0.1),
                max_tokens=llm_d.get("max_tokens", 16384),
                timeout=llm_d.get("timeout", 300),
                think=llm_d.get("think", False),
            ),
            mode=d.get("mode", OutputMode.FULL.value),
            max_history=d.get("max_history", 50),
            checks_file=d.get("checks_file", ".strikemd/checks.md"),
            annotated_suffix=d.get("annotated_suffix", ".annotated.md"),
        )


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def find_project_root(start: Optional[Union[str, Path]] = None) -> Path:
    """
    Walk upward to the first directory holding .strikemd/ or .git/.

    Falls back to the start directory when no marker is found.
    """
    origin = Path(start or Path.cwd()).resolve()
    if origin.is_file():
        origin = origin.parent
    for current in [origin, *origin.parents]:
        if any((current / marker).exists() for marker in PROJECT_MARKERS):
            return current
    return origin


def find_config_file(start: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """
    Find a configuration file by searching upward from start.

    Search order per directory: strikemd.yaml, .strikemd/config.yaml;
    then ~/.config/strikemd/strikemd.yaml.
    """
    origin = Path(start or Path.cwd()).resolve()
    if origin.is_file():
        origin = origin.parent
    for current in [origin, *origin.parents]:
        for name in CONFIG_NAMES:
            candidate = current / name
            if candidate.is_file():
                return candidate

    user_config = Path.home() / ".config" / "strikemd" / "strikemd.yaml"
    if user_config.is_file():
        return user_config
    return None


def read_dotenv_key(root: Union[str, Path], name: str) -> str:
    """Value of name in <root>/.env, or "" when absent."""
    env_path = Path(root) / ".env"
    if not env_path.is_file():
        return ""
    return dotenv_values(env_path).get(name) or ""


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_config(
    config_path: Optional[Union[str, Path]] = None,
    start: Optional[Union[str, Path]] = None,
) -> StrikeConfig:
    """
    Load configuration from YAML with environment variable overrides.

    Args:
        config_path: Explicit config file (skips discovery)
        start: Directory to start discovery from (default: cwd)

    Returns:
        StrikeConfig

    Raises:
        ConfigError: If the file cannot be parsed
    """
    path = Path(config_path) if config_path else find_config_file(start)
    data: Dict[str, Any] = {}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")
        logger.debug(f"[config] loaded {path}")

    config = StrikeConfig.from_dict(data)
    return _apply_env_overrides(config, find_project_root(start))


def _apply_env_overrides(config: StrikeConfig, project_root: Path) -> StrikeConfig:
    """Apply environment variable overrides to config."""
    if os.environ.get("STRIKEMD_BACKEND"):
        config.llm = LLMConfig(**{**config.llm.__dict__, "backend": os.environ["STRIKEMD_BACKEND"]})

    if os.environ.get("STRIKEMD_MODEL"):
        config.llm.model = os.environ["STRIKEMD_MODEL"]

    if os.environ.get("STRIKEMD_ENDPOINT"):
        config.llm.endpoint = os.environ["STRIKEMD_ENDPOINT"]

    if os.environ.get("STRIKEMD_MODE"):
        try:
            config.mode = OutputMode.parse(os.environ["STRIKEMD_MODE"]).value
        except ValueError as e:
            raise ConfigError(str(e))

    if not config.llm.api_key:
        config.llm.api_key = (
            os.environ.get("ANTHROPIC_API_KEY", "")
            or read_dotenv_key(project_root, "ANTHROPIC_API_KEY")
        )

    return config
