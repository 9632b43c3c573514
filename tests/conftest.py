"""
Shared test fixtures and configuration for agent-conductor tests.
"""

# Note: Test isolation is handled automatically in config.py
# When pytest is detected and no explicit config files are set,
# the default config.yaml/config.local.yaml files are skipped
import stat
import sys
import textwrap
from pathlib import Path

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def isolate_user_dirs(tmp_path, monkeypatch):
    """Keep plugin settings and Claude transcripts out of the real home directory."""
    from agent_conductor.config import get_settings

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("CONDUCTOR_PLUGIN_DIR", str(tmp_path / "plugins"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def mock_env(monkeypatch):
    """Set up test environment variables."""
    from agent_conductor.config import get_settings

    get_settings.cache_clear()

    test_env = {
        "LOG_LEVEL": "WARNING",  # Reduce noise in tests
        "VICTORIA_LOGS_URL": "",
        "DISABLE_VICTORIA_LOGS": "1",
        "CONDUCTOR_KILL_TIMEOUT": "2",
    }
    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    # Clear cache again to force reload with new env
    get_settings.cache_clear()

    return test_env


@pytest.fixture
def temp_project(tmp_path):
    """Create a temporary project directory."""
    project = tmp_path / "project"
    (project / "src").mkdir(parents=True)
    (project / "src" / "main.py").write_text("print('hello')\n")
    return project


@pytest.fixture
def make_cli(tmp_path):
    """
    Write an executable Python script standing in for a vendor CLI.

    Returns a factory: make_cli(name, body) -> absolute path. The body is
    Python source with ``sys`` already imported.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def factory(name: str, body: str) -> str:
        path = bin_dir / name
        path.write_text(
            f"#!{sys.executable}\nimport sys\n" + textwrap.dedent(body)
        )
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return factory


@pytest.fixture
def settings(mock_env):
    """Fresh Settings built from the test environment."""
    from agent_conductor.config import get_settings

    return get_settings()
