from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

import pytest

# The app builds its store at import time; keep test conversations out of the working tree.
os.environ.setdefault("SQLITE_PATH", str(Path(tempfile.mkdtemp(prefix="advisor-tests-")) / "conversations.db"))
os.environ["OPENROUTER_API_KEY"] = ""


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def happy_path_payload(fixtures_dir: Path) -> dict:
    return json.loads((fixtures_dir / "happy_path.json").read_text(encoding="utf-8"))
