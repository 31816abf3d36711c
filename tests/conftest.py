import asyncio
import sys
import time
from pathlib import Path

import pytest

# Project root on the path so tests run from a plain checkout
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from process import Role  # noqa: E402


class FakeHandle:
    """Stands in for ProcessHandle: records calls, lets the test fire events."""

    def __init__(self, role, command, cwd, on_output=None, on_exit=None, on_spawn_error=None):
        self.role = role
        self.command = command
        self.cwd = cwd
        self.on_output = on_output
        self.on_exit = on_exit
        self.on_spawn_error = on_spawn_error
        self.started_at = None
        self.terminate_calls = 0
        self._gone = asyncio.Event()

    def start(self):
        self.started_at = time.monotonic()
        return self

    def terminate(self):
        self.terminate_calls += 1
        self._gone.set()

    async def wait(self):
        await self._gone.wait()

    # test-side triggers
    def emit(self, stream, text):
        self.on_output(self, stream, text)

    def exit(self, code, sig=None):
        self._gone.set()
        self.on_exit(self, code, sig)

    def fail(self, exc):
        self._gone.set()
        self.on_spawn_error(self, exc)


class FakeFactory:
    def __init__(self):
        self.handles = {}
        self.order = []

    def __call__(self, role, command, cwd, **callbacks):
        handle = FakeHandle(role, command, cwd, **callbacks)
        self.handles[role] = handle
        self.order.append(role)
        return handle

    @property
    def backend(self):
        return self.handles.get(Role.BACKEND)

    @property
    def frontend(self):
        return self.handles.get(Role.FRONTEND)


class NullBootstrapper:
    def __init__(self):
        self.calls = 0

    def ensure(self):
        self.calls += 1
        return []


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def project(tmp_path):
    """A project root with the backend env template in place."""
    backend = tmp_path / "backend"
    backend.mkdir()
    (backend / "env.example").write_bytes(b"PORT=5000\nMOCK=true\n")
    return tmp_path


async def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
