from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest


def pytest_configure() -> None:
    # Allow tests to import `scripts.*` as a package.
    repo_root = Path(__file__).parents[2]
    sys.path.append(str(repo_root))


@pytest.fixture(autouse=True)
def _reset_deploy_logger():
    from scripts.deploy.deploy_logging import logger

    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


@pytest.fixture
def ssh_key(tmp_path: Path) -> Path:
    key = tmp_path / "id_rsa"
    key.write_text("not-a-real-key\n", encoding="utf-8")
    return key


@pytest.fixture
def params(ssh_key: Path):
    from scripts.deploy.deploy_params import DeployParams

    return DeployParams(
        repo_url="https://github.com/acme/shop.git",
        token="ghp_secret123",
        branch="main",
        remote_user="ubuntu",
        remote_ip="203.0.113.10",
        ssh_key_path=ssh_key,
        app_port=8080,
        app_name="myapp",
    )


class FakeRunner:
    def __init__(self) -> None:
        self.calls: list[dict] = []
        self._rules: list[tuple[Callable[[list[str]], bool], object]] = []
        self.on_call: Callable[[list[str]], None] | None = None

    def fail_when(self, needle: str, *, returncode: int = 1, output: str = "") -> None:
        from scripts.deploy.remote import CommandResult

        self._rules.append((lambda cmd: needle in " ".join(cmd), CommandResult(returncode, output)))

    def __call__(self, cmd, *, input_text=None, secrets=(), env=None):
        from scripts.deploy.remote import CommandResult

        cmd = list(cmd)
        self.calls.append({"cmd": cmd, "input_text": input_text, "secrets": tuple(secrets), "env": env})
        if self.on_call is not None:
            self.on_call(cmd)
        for matches, result in self._rules:
            if matches(cmd):
                return result
        return CommandResult(0, "")

    @property
    def remote_commands(self) -> list[str]:
        return [c["cmd"][-1] for c in self.calls if c["cmd"][0] == "ssh"]

    def index_of(self, needle: str) -> int:
        for i, command in enumerate(self.remote_commands):
            if needle in command:
                return i
        raise AssertionError(f"no remote command containing {needle!r}")


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
