"""Shared fixtures."""

from pathlib import Path

import pytest

import char_knowledge.logging as event_log


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch) -> Path:
    """Point the data directory at a temp dir and reset the global event logger."""
    home = tmp_path / "home"
    monkeypatch.setenv("CHAR_KNOWLEDGE_HOME", str(home))
    monkeypatch.delenv("CHAR_KNOWLEDGE_CONFIG", raising=False)
    monkeypatch.setattr(event_log, "_logger", None)
    return home
