import json
import shutil
import tempfile
from pathlib import Path

import sys

# Allow running tests without installing the package.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import pytest
from cardflow.core.runtime.settings import Settings


@pytest.fixture()
def temp_dir():
    d = Path(tempfile.mkdtemp(prefix="cardflow_test_"))
    try:
        yield d
    finally:
        shutil.rmtree(d, ignore_errors=True)


@pytest.fixture()
def settings():
    return Settings(
        log_level="INFO",
        backend="builtin",
        state_dir=".cardflow",
    )


@pytest.fixture()
def write_card(temp_dir):
    """Write a card document under <temp_dir>/cards and return its path."""
    root = temp_dir / "cards"
    root.mkdir(parents=True, exist_ok=True)

    def _write(rel_path: str, doc) -> Path:
        p = root / rel_path
        p.parent.mkdir(parents=True, exist_ok=True)
        text = doc if isinstance(doc, str) else json.dumps(doc)
        p.write_text(text, encoding="utf-8")
        return p

    _write.root = root
    return _write


class RecordingSession:
    def __init__(self, flow_id, flow_type):
        self.flow_id = flow_id
        self.flow_type = flow_type
        self.requests = []
        self.finalized = False

    def add_node(self, request):
        self.requests.append(request)

    def finalize(self):
        self.finalized = True

    def read_result(self):
        lines = [f"id: {self.flow_id}", "nodes:"]
        for r in self.requests:
            lines.append(f"  {r.node_id}: {r.routing.mode} {','.join(r.routing.targets)}".rstrip())
        return "\n".join(lines)


class RecordingBackend:
    """Flow backend that records every add-node request instead of spawning a process."""

    def __init__(self):
        self.sessions = []

    def open(self, flow_id, flow_type):
        session = RecordingSession(flow_id, flow_type)
        self.sessions.append(session)
        return session

    @property
    def requests(self):
        return self.sessions[-1].requests


@pytest.fixture()
def recording_backend():
    return RecordingBackend()
