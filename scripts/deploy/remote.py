"""SSH/rsync transport for the remote deploy driver.

Commands are always argument lists; anything interpolated into the remote shell
command is `shlex.quote`d by the caller, and file contents are sent over stdin.
"""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

from scripts.deploy.deploy_errors import DeployError, ExitCode
from scripts.deploy.deploy_logging import log_success, logger, mask_secrets
from scripts.deploy.deploy_params import DeployParams

SSH_CONNECT_TIMEOUT_SECONDS = 10
DIAGNOSTIC_TAIL_LINES = 20
COMMAND_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def tail(self, lines: int = DIAGNOSTIC_TAIL_LINES) -> str:
        return "\n".join(self.output.strip().splitlines()[-lines:])


RunFn = Callable[..., CommandResult]


def run_logged(
    cmd: Sequence[str],
    *,
    input_text: str | None = None,
    secrets: Sequence[str] = (),
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run `cmd`, streaming merged stdout/stderr into the log line by line.

    `env` is layered over the current environment. A missing executable is
    reported as exit code 127, like a shell would, so callers map it onto
    their stage exit code.
    """
    try:
        proc = subprocess.Popen(
            list(cmd),
            stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            env={**os.environ, **env} if env else None,
        )
    except OSError as exc:
        logger.error("Could not run %s: %s", cmd[0], exc)
        return CommandResult(returncode=COMMAND_NOT_FOUND, output=str(exc))
    if input_text is not None:
        assert proc.stdin is not None
        proc.stdin.write(input_text)
        proc.stdin.close()

    lines: list[str] = []
    assert proc.stdout is not None
    for raw in proc.stdout:
        line = mask_secrets(raw.rstrip("\n"), tuple(secrets))
        lines.append(line)
        logger.info("  %s", line)
    proc.stdout.close()
    return CommandResult(returncode=proc.wait(), output="\n".join(lines))


def _ssh_failure_hint(error_text: str) -> str:
    lowered = error_text.lower()
    if "no route to host" in lowered:
        return "No route to host. Check VPN/LAN reachability and the server IP."
    if "connection timed out" in lowered:
        return "SSH timed out. Verify the server is online and port 22 is reachable."
    if "connection refused" in lowered:
        return "SSH connection refused. Confirm SSH daemon is running and port 22 is open."
    if "permission denied" in lowered:
        return "SSH authentication failed. Verify SSH key access for the configured user."
    if "could not resolve hostname" in lowered:
        return "Host resolution failed. Check the server address for typos/DNS issues."
    return ""


def _ssh_options(key_path: Path) -> list[str]:
    return ["-i", str(key_path), "-o", "StrictHostKeyChecking=no"]


def build_ssh_cmd(*, params: DeployParams, remote_command: str) -> list[str]:
    return [
        "ssh",
        *_ssh_options(params.ssh_key_path),
        "-o",
        f"ConnectTimeout={SSH_CONNECT_TIMEOUT_SECONDS}",
        params.ssh_target,
        remote_command,
    ]


def build_ssh_connectivity_cmd(*, params: DeployParams) -> list[str]:
    return build_ssh_cmd(params=params, remote_command="echo 'SSH connection successful'")


def build_rsync_cmd(*, params: DeployParams, local_dir: Path, remote_dir: str) -> list[str]:
    transport = " ".join(shlex.quote(part) for part in ["ssh", *_ssh_options(params.ssh_key_path)])
    # Trailing slashes copy the contents of local_dir into remote_dir.
    src = f"{str(local_dir).rstrip('/')}/"
    dest = f"{params.ssh_target}:{remote_dir.rstrip('/')}/"
    return ["rsync", "-avz", "--progress", "-e", transport, src, dest]


class RemoteExecutor:
    """Runs commands against the deploy target and maps failures to stage exit codes."""

    def __init__(self, params: DeployParams, *, run_fn: RunFn = run_logged):
        self.params = params
        self._run_fn = run_fn

    def _secrets(self) -> tuple[str, ...]:
        return (self.params.token,) if self.params.token else ()

    def run(self, remote_command: str, *, input_text: str | None = None) -> CommandResult:
        cmd = build_ssh_cmd(params=self.params, remote_command=remote_command)
        return self._run_fn(cmd, input_text=input_text, secrets=self._secrets())

    def check(
        self,
        remote_command: str,
        *,
        action: str,
        exit_code: ExitCode,
        input_text: str | None = None,
    ) -> CommandResult:
        result = self.run(remote_command, input_text=input_text)
        if not result.ok:
            raise DeployError(action, exit_code, context=failure_context(result, ssh=True))
        return result

    def warn(self, remote_command: str, *, action: str) -> bool:
        result = self.run(remote_command)
        if not result.ok:
            logger.warning("%s (exit code %s)", action, result.returncode)
        return result.ok

    def test_connection(self) -> None:
        logger.info("=== Testing SSH Connection ===")
        cmd = build_ssh_connectivity_cmd(params=self.params)
        result = self._run_fn(cmd, input_text=None, secrets=self._secrets())
        if not result.ok:
            raise DeployError("Failed to establish SSH connection", ExitCode.SSH, context=failure_context(result, ssh=True))
        log_success("SSH connection established successfully")

    def sync(self, local_dir: Path, remote_dir: str) -> None:
        cmd = build_rsync_cmd(params=self.params, local_dir=local_dir, remote_dir=remote_dir)
        result = self._run_fn(cmd, input_text=None, secrets=self._secrets())
        if not result.ok:
            raise DeployError("Failed to transfer files", ExitCode.TRANSFER, context=failure_context(result, ssh=True))


def failure_context(result: CommandResult, *, ssh: bool = False) -> str:
    lines = [f"exit code {result.returncode}"]
    detail = result.tail()
    if detail:
        lines.append(detail)
    if ssh:
        hint = _ssh_failure_hint(detail)
        if hint:
            lines.append(hint)
    return "\n".join(lines)
