"""
Pytest configuration and fixtures.
"""

import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

_ENV_VARS = (
    "STRIKEMD_BACKEND",
    "STRIKEMD_MODEL",
    "STRIKEMD_ENDPOINT",
    "STRIKEMD_MODE",
    "ANTHROPIC_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's environment out of config resolution."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_dir(temp_dir: Path) -> Path:
    """A project root marked by .strikemd/."""
    (temp_dir / ".strikemd").mkdir()
    return temp_dir


@pytest.fixture
def sample_doc() -> str:
    """Small document with front matter, prose and a fenced block."""
    return (
        "---\n"
        "title: Sample\n"
        "---\n"
        "# Introduction\n"
        "\n"
        "The cat sat on the mat.\n"
        "It was a sunny day.\n"
        "\n"
        "```python\n"
        "x = 1\n"
        "\n"
        "y = 2\n"
        "```\n"
        "\n"
        "The end.\n"
    )
