import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
TESTS_DIR = pathlib.Path(__file__).resolve().parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def relay_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path):
    """Give every test a fake API key and a private database path."""

    from streamrelay.config import get_settings

    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setenv("CHAT_DATABASE_PATH", str(tmp_path / "conversations.db"))
    monkeypatch.setenv("LOGGING_SETTINGS_PATH", str(tmp_path / "missing.conf"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
