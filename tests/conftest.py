"""Shared fixtures: isolated JSON store, stub analysis provider, auth tokens."""

import os
import json
import tempfile

# Configure the environment before any scanara module is imported.
os.environ["SCANARA_DATA_DIR"] = tempfile.mkdtemp(prefix="scanara-test-")
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("ANTHROPIC_API_KEY", None)

import pytest

from scanara import db
from scanara import oracle
from scanara.oracle import AnalysisProvider, mock_report


class StubProvider(AnalysisProvider):
    """Deterministic oracle: returns a fixed reply or raises a fixed error."""

    name = "stub"

    def __init__(self, reply=None, error=None):
        self.reply = json.dumps(mock_report()) if reply is None else reply
        self.error = error
        self.prompts = []

    async def analyze(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=True)
def store(tmp_path, monkeypatch):
    """Point the document store at a fresh file for every test."""
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "db.json")
    monkeypatch.setattr(db, "PERSIST_DATA", True)
    db.reset_cache()
    yield tmp_path / "db.json"
    db.reset_cache()


@pytest.fixture
def stub():
    provider = StubProvider()
    oracle.set_provider(provider)
    yield provider
    oracle.set_provider(None)


def report_with_score(score, **extra):
    report = mock_report()
    report["scores"]["overall_score"] = score
    report.update(extra)
    return report


def make_files(n):
    return [{"path": f"src/file_{i:03d}.py", "content": f"x = {i}\n"} for i in range(n)]
