from __future__ import annotations

from typing import Any

import pytest

from streamrelay import main as main_module


@pytest.fixture
def uvicorn_calls(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def fake_run(app: str, **kwargs: Any) -> None:
        calls.append({"app": app, **kwargs})

    monkeypatch.setattr(main_module.uvicorn, "run", fake_run)
    return calls


def test_main_uses_configured_bind_address(
    monkeypatch: pytest.MonkeyPatch, uvicorn_calls: list[dict[str, Any]]
) -> None:
    monkeypatch.setenv("RELAY_HOST", "127.0.0.1")
    monkeypatch.setenv("RELAY_PORT", "9100")

    main_module.main([])

    assert uvicorn_calls == [
        {
            "app": "streamrelay.app:create_app",
            "factory": True,
            "host": "127.0.0.1",
            "port": 9100,
            "reload": False,
        }
    ]


def test_main_flags_override_settings(
    monkeypatch: pytest.MonkeyPatch, uvicorn_calls: list[dict[str, Any]]
) -> None:
    monkeypatch.setenv("RELAY_PORT", "9100")

    main_module.main(["--host", "localhost", "--port", "8123", "--reload"])

    call = uvicorn_calls[0]
    assert (call["host"], call["port"], call["reload"]) == ("localhost", 8123, True)


def test_main_defaults(uvicorn_calls: list[dict[str, Any]]) -> None:
    main_module.main([])

    call = uvicorn_calls[0]
    assert (call["host"], call["port"], call["reload"]) == ("0.0.0.0", 8000, False)
