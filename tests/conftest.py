import pytest
from pathlib import Path

from mehcache.cache import MehCache


class FakeClock:
    """Reloj manual en segundos epoch."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def snapshot_dir(tmp_path: Path) -> Path:
    d = tmp_path / "tmp"
    d.mkdir()
    return d


@pytest.fixture
def make_cache(snapshot_dir, clock):
    def _make(filename: str = "blort", **kwargs) -> MehCache:
        kwargs.setdefault("tmpdir", lambda: snapshot_dir)
        kwargs.setdefault("clock", clock)
        return MehCache(filename, **kwargs)
    return _make
