"""Operator input: validation rules and the interactive collector.

The collector loops on URL, IP, SSH key and port until the operator supplies a
valid value. An empty token or username aborts the run with the
missing-credential exit code.
"""

from __future__ import annotations

import getpass
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from scripts.deploy.deploy_config import DeployDefaults, SecretsEnum, VarsEnum
from scripts.deploy.deploy_errors import DeployError, ExitCode
from scripts.deploy.deploy_logging import log_success, logger

PromptFn = Callable[[str], str]

URL_PATTERN = re.compile(r"^https?://")
# Dotted-quad shape only; octets above 255 are accepted.
IP_PATTERN = re.compile(r"^[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}$")
APP_NAME_INVALID_CHARS = re.compile(r"[^a-z0-9-]")


@dataclass(frozen=True)
class DeployParams:
    repo_url: str
    token: str
    branch: str
    remote_user: str
    remote_ip: str
    ssh_key_path: Path
    app_port: int
    app_name: str

    @property
    def ssh_target(self) -> str:
        return f"{self.remote_user}@{self.remote_ip}"

    @property
    def remote_project_dir(self) -> str:
        return f"/home/{self.remote_user}/deployments/{self.app_name}"

    @property
    def image_tag(self) -> str:
        return f"{self.app_name}:latest"

    @property
    def nginx_available_path(self) -> str:
        return f"/etc/nginx/sites-available/{self.app_name}"

    @property
    def nginx_enabled_path(self) -> str:
        return f"/etc/nginx/sites-enabled/{self.app_name}"

    @property
    def public_url(self) -> str:
        return f"http://{self.remote_ip}"


def validate_url(url: str) -> bool:
    return bool(URL_PATTERN.match(url or ""))


def validate_ip(ip: str) -> bool:
    return bool(IP_PATTERN.match(ip or ""))


def validate_port(value: str | int) -> bool:
    text = str(value).strip()
    # isdigit() alone accepts non-ASCII digits such as "²" that int() rejects.
    if not (text.isascii() and text.isdigit()):
        return False
    return 1 <= int(text) <= 65535


def validate_ssh_key(path: Path) -> bool:
    if not path.is_file():
        return False
    try:
        result = subprocess.run(
            ["ssh-keygen", "-l", "-f", str(path)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError as exc:
        logger.error("Could not run ssh-keygen: %s", exc)
        return False
    return result.returncode == 0


def normalize_app_name(name: str) -> str:
    return APP_NAME_INVALID_CHARS.sub("-", name.lower())


def expand_key_path(raw: str) -> Path:
    return Path(os.path.expanduser(raw.strip()))


def _label(text: str, default: str) -> str:
    if default:
        return f"{text} [default: {default}]: "
    return f"{text}: "


def _ask(prompt: PromptFn, text: str, default: str = "") -> str:
    answer = prompt(_label(text, default)).strip()
    return answer or default


def _ask_until_valid(
    prompt: PromptFn,
    text: str,
    *,
    is_valid: Callable[[str], bool],
    error: Callable[[str], str],
    ok: str,
    default: str = "",
) -> str:
    while True:
        answer = _ask(prompt, text, default)
        if is_valid(answer):
            log_success(ok)
            return answer
        logger.error(error(answer))


def _ask_ssh_key(prompt: PromptFn, defaults: DeployDefaults) -> Path:
    while True:
        key_path = expand_key_path(_ask(prompt, "Enter SSH private key path", defaults.get(VarsEnum.DEPLOY_SSH_KEY)))
        if validate_ssh_key(key_path):
            log_success("Valid SSH key found")
            return key_path
        logger.error("Invalid or missing SSH key at: %s", key_path)


def _ask_remote(prompt: PromptFn, defaults: DeployDefaults) -> tuple[str, str, Path]:
    remote_user = _ask(prompt, "Enter remote server username", defaults.get(VarsEnum.DEPLOY_REMOTE_USER))
    if not remote_user:
        raise DeployError("Username cannot be empty", ExitCode.MISSING_CREDENTIAL)

    remote_ip = _ask_until_valid(
        prompt,
        "Enter remote server IP address",
        is_valid=validate_ip,
        error=lambda _: "Invalid IP address format",
        ok="Valid IP address provided",
        default=defaults.get(VarsEnum.DEPLOY_REMOTE_IP),
    )
    return remote_user, remote_ip, _ask_ssh_key(prompt, defaults)


def _ask_port(prompt: PromptFn, defaults: DeployDefaults) -> int:
    raw = _ask_until_valid(
        prompt,
        "Enter application internal port",
        is_valid=validate_port,
        error=lambda _: "Invalid port number (must be 1-65535)",
        ok="Valid port number provided",
        default=defaults.get(VarsEnum.DEPLOY_APP_PORT),
    )
    return int(raw)


def _ask_app_name(prompt: PromptFn, defaults: DeployDefaults) -> str:
    raw = _ask(prompt, "Enter domain or app name for Nginx config", defaults.get(VarsEnum.DEPLOY_APP_NAME))
    return normalize_app_name(raw or "myapp")


def collect_parameters(
    defaults: DeployDefaults,
    *,
    prompt: PromptFn = input,
    secret_prompt: PromptFn = getpass.getpass,
) -> DeployParams:
    logger.info("=== Collecting Deployment Parameters ===")

    repo_url = _ask_until_valid(
        prompt,
        "Enter Git Repository URL",
        is_valid=validate_url,
        error=lambda _: "Invalid URL format. Please use http:// or https://",
        ok="Valid repository URL provided",
        default=defaults.get(VarsEnum.DEPLOY_REPO_URL),
    )

    token = secret_prompt("Enter Personal Access Token (PAT): ").strip()
    if not token:
        token = defaults.get(SecretsEnum.DEPLOY_GIT_TOKEN)
    if not token:
        raise DeployError("PAT cannot be empty", ExitCode.MISSING_CREDENTIAL)
    log_success("PAT received")

    branch = _ask(prompt, "Enter branch name", defaults.get(VarsEnum.DEPLOY_BRANCH) or "main")
    logger.info("Using branch: %s", branch)

    remote_user, remote_ip, ssh_key_path = _ask_remote(prompt, defaults)
    app_port = _ask_port(prompt, defaults)
    app_name = _ask_app_name(prompt, defaults)

    log_success("All parameters collected successfully")
    return DeployParams(
        repo_url=repo_url,
        token=token,
        branch=branch,
        remote_user=remote_user,
        remote_ip=remote_ip,
        ssh_key_path=ssh_key_path,
        app_port=app_port,
        app_name=app_name,
    )


def collect_cleanup_parameters(defaults: DeployDefaults, *, prompt: PromptFn = input) -> DeployParams:
    """Collect only what teardown needs; repository fields stay empty."""
    logger.info("=== Collecting Cleanup Parameters ===")
    remote_user, remote_ip, ssh_key_path = _ask_remote(prompt, defaults)
    app_port = _ask_port(prompt, defaults)
    app_name = _ask_app_name(prompt, defaults)
    return DeployParams(
        repo_url="",
        token="",
        branch="",
        remote_user=remote_user,
        remote_ip=remote_ip,
        ssh_key_path=ssh_key_path,
        app_port=app_port,
        app_name=app_name,
    )
