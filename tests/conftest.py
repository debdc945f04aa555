"""Pytest fixtures for link-chat tests."""

import pytest
from pathlib import Path
from tempfile import TemporaryDirectory


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_file(temp_dir):
    """Create a sample JavaScript file for testing."""
    file_path = temp_dir / "app.js"
    content = """const express = require('express');
const app = express();

function greet(name) {
  return 'Hello, ' + name;
}

app.get('/', (req, res) => res.send(greet('world')));
app.listen(3000);
"""
    file_path.write_text(content, encoding="utf-8")
    return file_path


@pytest.fixture
def config_file(temp_dir):
    """Create a sample config.toml file."""
    config_path = temp_dir / "config.toml"
    content = """debug = false

[ollama]
endpoint = "http://ollama.local:11434"
model = "llama3"
timeout = 60
temperature = 0.2

[ui]
theme = "dark"
auto_save = false
"""
    config_path.write_text(content, encoding="utf-8")
    return config_path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from the real environment and home directory."""
    for var in ("LINK_OLLAMA_ENDPOINT", "LINK_OLLAMA_MODEL", "LINK_DEBUG"):
        monkeypatch.delenv(var, raising=False)

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.setenv("APPDATA", str(home / "AppData"))
    return home
