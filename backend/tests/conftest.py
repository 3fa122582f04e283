from typing import List, Optional, Tuple

import pytest

from tripchat.core.errors import GenerationNetworkError
from tripchat.core.logger import SessionLogger


class FakeGenerator:
    def __init__(self, text: str = "Here is your plan.", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls: List[Tuple[str, str, Optional[str]]] = []

    def generate(self, system_instructions: str, user_payload: str, model_name: Optional[str] = None) -> str:
        self.calls.append((system_instructions, user_payload, model_name))
        if self.error is not None:
            raise self.error
        return self.text


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def logs_dir(tmp_path, monkeypatch):
    path = tmp_path / "logs"
    monkeypatch.setenv("LOGS_DIR", str(path))
    return path


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def logger(logs_dir):
    return SessionLogger("test-session", base_dir=str(logs_dir))


@pytest.fixture
def failing_generator():
    return FakeGenerator(error=GenerationNetworkError("connection refused"))
