from collections.abc import Iterator
from pathlib import Path
from typing import Callable, List

import pytest

from glint.lsp.client import LSPSession
from glint.util.log import Log, LogFormat, LogLevel
from tests.helpers import FakeTransport, Responder


@pytest.fixture
def anyio_backend() -> str:
    """The code under test runs on the asyncio event loop."""
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    monkeypatch.setenv("GLINT_CONFIG_DIR", str(tmp_path_factory.mktemp("config")))
    monkeypatch.delenv("GLINT_CONFIG_CONTENT", raising=False)


@pytest.fixture(autouse=True)
def _log_teardown() -> Iterator[None]:
    yield
    Log.configure(level=LogLevel.INFO, format=LogFormat.KV, console=False, file=False)


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "main.py"
    path.write_text("def greet(name):\n    return name\n", encoding="utf-8")
    return path


@pytest.fixture
def make_session(source_file: Path) -> Iterator[Callable[..., LSPSession]]:
    """Build sessions over fake transports; transports are closed at teardown."""
    transports: List[FakeTransport] = []

    def factory(responder: Responder = None, **kwargs) -> LSPSession:
        transport = FakeTransport(responder)
        transports.append(transport)
        kwargs.setdefault("settle_delay", 0)
        return LSPSession(transport, str(source_file), **kwargs)

    yield factory

    # Ends listener threads of sessions a failing test never disposed.
    for transport in transports:
        transport.close()
