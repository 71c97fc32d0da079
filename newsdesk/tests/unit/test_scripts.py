from __future__ import annotations

import importlib.util
from pathlib import Path
import sys

import pytest


SCRIPTS_DIR = Path(__file__).resolve().parents[3] / "scripts"


def _load_script(name: str):  # noqa: ANN202
    spec = importlib.util.spec_from_file_location(f"newsdesk_script_{name}", SCRIPTS_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.parametrize(
    ("name", "argv"),
    [
        ("add_subscriber", ["--email", "ada@example.com", "--name", "Ada", "--confirmed"]),
        ("create_api_key", ["--username", "publisher", "--name", "ci"]),
    ],
)
def test_cli_scripts_configure_logging_before_running(monkeypatch, name: str, argv: list[str]) -> None:
    module = _load_script(name)
    calls: list[str] = []

    def _run(coro):  # noqa: ANN001, ANN202
        # Never touch the database; only the ordering matters here.
        coro.close()
        calls.append("run")
        return 0

    monkeypatch.setattr(module, "configure_logging", lambda: calls.append("configure_logging"))
    monkeypatch.setattr(module.asyncio, "run", _run)
    monkeypatch.setattr(sys, "argv", [f"{name}.py", *argv])

    assert module.main() == 0
    assert calls == ["configure_logging", "run"]
