from __future__ import annotations

import builtins
import signal
from pathlib import Path
from types import SimpleNamespace

import pytest

from scripts.deploy import deploy_params, nginx_config, remote_deploy
from scripts.deploy.deploy_config import SecretsEnum, VarsEnum
from scripts.deploy.deploy_errors import DeployInterrupted, ExitCode


@pytest.fixture
def operator(monkeypatch, runner, tmp_path: Path):
    """Wire the driver to scripted prompts, the fake runner and no-op waits."""
    answers: list[str] = []
    scratch_dirs: list[Path] = []

    def fake_input(text: str) -> str:
        if not answers:
            raise AssertionError(f"unexpected prompt: {text!r}")
        return answers.pop(0)

    def on_call(cmd: list[str]) -> None:
        if cmd[:2] == ["git", "clone"]:
            dest = Path(cmd[-1])
            scratch_dirs.append(dest.parent)
            dest.mkdir(parents=True)
            if operator_state.dockerfile:
                (dest / "Dockerfile").write_text("FROM nginx:alpine\n")

    operator_state = SimpleNamespace(answers=answers, scratch_dirs=scratch_dirs, dockerfile=True)
    runner.on_call = on_call

    for var in (*VarsEnum.__members__, *SecretsEnum.__members__):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(builtins, "input", fake_input)
    monkeypatch.setattr(remote_deploy.getpass, "getpass", lambda _text: "ghp_secret123")
    monkeypatch.setattr(remote_deploy, "run_logged", runner)
    monkeypatch.setattr(remote_deploy.time, "sleep", lambda _s: None)
    monkeypatch.setattr(deploy_params, "validate_ssh_key", lambda _path: True)
    monkeypatch.setattr(
        nginx_config.requests, "get", lambda url, timeout: SimpleNamespace(ok=True, status_code=200)
    )
    return operator_state


DEPLOY_ANSWERS = [
    "https://github.com/acme/shop.git",
    "",  # branch
    "ubuntu",
    "203.0.113.10",
    "~/.ssh/id_rsa",
    "8080",
    "Shop",
]


def test_full_deployment_dockerfile_path(operator, runner, tmp_path: Path):
    operator.answers.extend(DEPLOY_ANSWERS)

    assert remote_deploy.main([], tool_dir_override=tmp_path) == ExitCode.OK

    commands = runner.remote_commands
    assert commands[0] == "echo 'SSH connection successful'"
    assert runner.index_of("get.docker.com") < runner.index_of("mkdir -p /home/ubuntu/deployments/shop")
    assert runner.index_of("docker build -t shop:latest .") < runner.index_of("--restart always -p 8080:8080 shop:latest")
    assert runner.index_of("is-active docker") < runner.index_of("sudo tee /etc/nginx/sites-available/shop")
    assert runner.index_of("sudo nginx -t") < runner.index_of("is-active nginx")

    tee = next(c for c in runner.calls if "sudo tee" in c["cmd"][-1])
    assert "proxy_pass http://localhost:8080;" in tee["input_text"]

    rsync = next(c["cmd"] for c in runner.calls if c["cmd"][0] == "rsync")
    assert rsync[-1] == "ubuntu@203.0.113.10:/home/ubuntu/deployments/shop/"

    assert operator.scratch_dirs and not operator.scratch_dirs[0].exists()

    (log_file,) = tmp_path.glob("deploy_*.log")
    log_text = log_file.read_text(encoding="utf-8")
    assert "[SUCCESS] Deployment completed successfully!" in log_text
    assert "External URL: http://203.0.113.10" in log_text
    assert "ghp_secret123" not in log_text


def test_missing_descriptor_exits_before_ssh(operator, runner, tmp_path: Path):
    operator.dockerfile = False
    operator.answers.extend(DEPLOY_ANSWERS)

    assert remote_deploy.main([], tool_dir_override=tmp_path) == ExitCode.MISSING_DESCRIPTOR
    assert runner.remote_commands == []
    assert not operator.scratch_dirs[0].exists()


def test_git_failure_exit_code(operator, runner, tmp_path: Path):
    runner.fail_when("clone", returncode=128, output="fatal: repository not found")
    operator.answers.extend(DEPLOY_ANSWERS)

    assert remote_deploy.main([], tool_dir_override=tmp_path) == ExitCode.GIT
    (log_file,) = tmp_path.glob("deploy_*.log")
    assert "Script failed with exit code 3" in log_file.read_text(encoding="utf-8")


def test_ssh_failure_exit_code(operator, runner, tmp_path: Path):
    runner.fail_when("SSH connection successful", returncode=255, output="ssh: connect to host port 22: No route to host")
    operator.answers.extend(DEPLOY_ANSWERS)

    assert remote_deploy.main([], tool_dir_override=tmp_path) == ExitCode.SSH
    assert len(runner.remote_commands) == 1


def test_keyboard_interrupt_exit_code(monkeypatch, tmp_path: Path):
    def interrupted(_text: str) -> str:
        raise KeyboardInterrupt

    monkeypatch.setattr(builtins, "input", interrupted)
    assert remote_deploy.main([], tool_dir_override=tmp_path) == ExitCode.INTERRUPTED


def test_dotenv_deploy_file_supplies_defaults(operator, runner, tmp_path: Path):
    (tmp_path / ".env.deploy").write_text(
        "DEPLOY_REPO_URL=https://github.com/acme/shop.git\n"
        "DEPLOY_REMOTE_USER=deploy\n"
        "DEPLOY_REMOTE_IP=198.51.100.7\n"
        "DEPLOY_APP_PORT=5000\n",
        encoding="utf-8",
    )
    operator.answers.extend([""] * 7)

    assert remote_deploy.main([], tool_dir_override=tmp_path) == ExitCode.OK
    runner.index_of("-p 5000:5000 myapp:latest")
    assert runner.calls[2]["cmd"][-2] == "deploy@198.51.100.7"


def test_cleanup_declined_leaves_server_untouched(operator, runner, tmp_path: Path):
    operator.answers.extend(["ubuntu", "203.0.113.10", "~/.ssh/id_rsa", "8080", "myapp", "no"])

    assert remote_deploy.main(["--cleanup"], tool_dir_override=tmp_path) == ExitCode.OK
    assert runner.remote_commands == ["echo 'SSH connection successful'"]


def test_cleanup_confirmed_removes_everything(operator, runner, tmp_path: Path):
    operator.answers.extend(["ubuntu", "203.0.113.10", "~/.ssh/id_rsa", "8080", "myapp", "yes"])

    assert remote_deploy.main(["--cleanup"], tool_dir_override=tmp_path) == ExitCode.OK
    commands = runner.remote_commands
    assert any(c == "rm -rf /home/ubuntu/deployments/myapp" for c in commands)
    assert "sudo rm -f /etc/nginx/sites-enabled/myapp" in commands[-1]


def test_cleanup_yes_flag_skips_confirmation(operator, runner, tmp_path: Path):
    operator.answers.extend(["ubuntu", "203.0.113.10", "~/.ssh/id_rsa", "8080", "myapp"])

    assert remote_deploy.main(["--cleanup", "--yes"], tool_dir_override=tmp_path) == ExitCode.OK
    assert "systemctl reload nginx" in runner.remote_commands[-1]


def _interrupt_on_first_ssh(operator, runner, exc: BaseException) -> None:
    clone_hook = runner.on_call

    def on_call(cmd: list[str]) -> None:
        clone_hook(cmd)
        if cmd[0] == "ssh":
            raise exc

    runner.on_call = on_call
    operator.answers.extend(DEPLOY_ANSWERS)


def test_ctrl_c_mid_stage_removes_scratch_dir(operator, runner, tmp_path: Path):
    _interrupt_on_first_ssh(operator, runner, KeyboardInterrupt())

    assert remote_deploy.main([], tool_dir_override=tmp_path) == ExitCode.INTERRUPTED
    assert operator.scratch_dirs and not operator.scratch_dirs[0].exists()


def test_termination_mid_stage_removes_scratch_dir(operator, runner, tmp_path: Path):
    _interrupt_on_first_ssh(operator, runner, DeployInterrupted(signal.SIGTERM))

    assert remote_deploy.main([], tool_dir_override=tmp_path) == ExitCode.TERMINATED
    assert operator.scratch_dirs and not operator.scratch_dirs[0].exists()


def test_sigterm_handler_is_installed_during_run_and_restored(operator, runner, tmp_path: Path):
    seen = []
    clone_hook = runner.on_call

    def on_call(cmd: list[str]) -> None:
        clone_hook(cmd)
        if cmd[0] == "ssh":
            handler = signal.getsignal(signal.SIGTERM)
            seen.append(handler)
            handler(signal.SIGTERM, None)

    runner.on_call = on_call
    operator.answers.extend(DEPLOY_ANSWERS)
    before = signal.getsignal(signal.SIGTERM)

    assert remote_deploy.main([], tool_dir_override=tmp_path) == ExitCode.TERMINATED
    assert seen == [remote_deploy._raise_on_signal]
    assert signal.getsignal(signal.SIGTERM) is before
    assert not operator.scratch_dirs[0].exists()


@pytest.mark.parametrize("answer", ["YES", "Yes", "y"])
def test_cleanup_requires_exact_yes(operator, runner, tmp_path: Path, answer: str):
    operator.answers.extend(["ubuntu", "203.0.113.10", "~/.ssh/id_rsa", "8080", "myapp", answer])

    assert remote_deploy.main(["--cleanup"], tool_dir_override=tmp_path) == ExitCode.OK
    assert runner.remote_commands == ["echo 'SSH connection successful'"]


def test_resolve_tool_dir_keeps_writable_checkout(tmp_path: Path):
    assert remote_deploy.resolve_tool_dir(tmp_path) == tmp_path


def test_resolve_tool_dir_falls_back_to_cwd_for_installed_copy(tmp_path: Path, monkeypatch):
    installed = tmp_path / "lib" / "python3.12" / "site-packages"
    installed.mkdir(parents=True)
    monkeypatch.chdir(tmp_path)
    assert remote_deploy.resolve_tool_dir(installed) == Path.cwd()


def test_resolve_tool_dir_falls_back_to_cwd_when_read_only(tmp_path: Path, monkeypatch):
    checkout = tmp_path / "checkout"
    checkout.mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(remote_deploy.os, "access", lambda path, mode: False)
    assert remote_deploy.resolve_tool_dir(checkout) == Path.cwd()
