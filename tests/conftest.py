import os
import tempfile
from pathlib import Path

# Point the app at throwaway storage before anything imports config
_TMP = Path(tempfile.mkdtemp(prefix="roboadvisor-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP / 'test.db'}")
os.environ.setdefault("STORAGE_DIR", str(_TMP / "storage"))
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

import pytest  # noqa: E402


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider:
    """Streams fixed chunks; optionally advances a clock before each chunk."""

    def __init__(self, chunks, clock: ManualClock | None = None, step: float = 0.0, fail_after: int | None = None):
        self.chunks = list(chunks)
        self.clock = clock
        self.step = step
        self.fail_after = fail_after
        self.requests = []
        self.closed = False

    async def stream(self, request):
        self.requests.append(request)
        try:
            for i, chunk in enumerate(self.chunks):
                if self.fail_after is not None and i >= self.fail_after:
                    raise ConnectionError("provider went away")
                if self.clock is not None:
                    self.clock.advance(self.step)
                yield chunk
            if self.fail_after is not None and self.fail_after >= len(self.chunks):
                raise ConnectionError("provider went away")
        finally:
            self.closed = True


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def registry():
    from assistant.session import SessionRegistry

    return SessionRegistry(fuzzy_company_match=True)


@pytest.fixture
def session(registry):
    return registry.create()
