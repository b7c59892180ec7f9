"""
Pytest configuration and fixtures
"""
from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest


# Define paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
BACKEND_ROOT = PROJECT_ROOT / "backend"

# Allow running the suite from a checkout without installing the package.
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


class RecordingUtils:
    """In-memory StepUtils double that serves a fixed working directory."""

    def __init__(self, workspace: Path) -> None:
        self.workspace = workspace
        self.telemetry: List[Dict[str, Any]] = []
        self.opened: List[Path] = []
        self.handles: List[io.BytesIO] = []
        self.commands: List[List[str]] = []
        self.getcwd_error: OSError | None = None
        self.open_error: OSError | None = None

    def getcwd(self) -> str:
        if self.getcwd_error is not None:
            raise self.getcwd_error
        return str(self.workspace)

    def file_exists(self, path) -> bool:
        return Path(path).is_file()

    def open(self, path, mode: str = "rb"):
        if self.open_error is not None:
            raise self.open_error
        self.opened.append(Path(path))
        handle = io.BytesIO(Path(path).read_bytes())
        self.handles.append(handle)
        return handle

    def run_executable(self, executable: str, *args: str) -> int:
        self.commands.append([executable, *args])
        return 0

    def emit_telemetry(self, payload: Dict[str, Any]) -> None:
        self.telemetry.append(payload)


def _write(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def write_file():
    """Create a file (and its parents) with the given text content."""
    return _write


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A CI workspace with sources, build noise and pipeline metadata."""
    root = tmp_path / "workspace"
    _write(root / "a.js", "console.log('a');\n")
    _write(root / "a.json", '{"name": "a"}\n')
    _write(root / "a.log", "build output\n")
    _write(root / ".git" / "config", "[core]\n")
    _write(root / ".pipeline" / "cfg.yaml", "steps: []\n")
    return root


@pytest.fixture
def utils(workspace: Path) -> RecordingUtils:
    return RecordingUtils(workspace)


def _multipart_fields(request) -> Dict[str, bytes]:
    """Split a multipart/form-data request body into {field name: raw value}."""
    content_type = request.headers["content-type"]
    boundary = content_type.split("boundary=", 1)[1].encode()
    fields: Dict[str, bytes] = {}
    for part in request.content.split(b"--" + boundary):
        head, sep, body = part.partition(b"\r\n\r\n")
        if not sep:
            continue
        marker = b'name="'
        start = head.index(marker) + len(marker)
        name = head[start:head.index(b'"', start)].decode()
        fields[name] = body[: -len(b"\r\n")] if body.endswith(b"\r\n") else body
    return fields


@pytest.fixture
def multipart_fields():
    return _multipart_fields
