import pytest

START = 1_700_000_000


class FakeClock:
    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _no_request_time(monkeypatch) -> None:
    monkeypatch.delenv("FILESTASH_REQUEST_TIME", raising=False)
    monkeypatch.delenv("FILESTASH_CONFIG", raising=False)
