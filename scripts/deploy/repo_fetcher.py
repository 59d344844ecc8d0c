"""Clone or update the application repository into the scratch directory."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlsplit

from scripts.deploy.deploy_errors import DeployError, ExitCode
from scripts.deploy.deploy_logging import log_success, logger
from scripts.deploy.deploy_params import DeployParams
from scripts.deploy.remote import RunFn, failure_context, run_logged

# git must never stop to ask for credentials on the terminal.
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


def repo_name_from_url(url: str) -> str:
    path = urlsplit(url).path.rstrip("/")
    name = path.rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name or "repo"


def build_authenticated_url(url: str, token: str) -> str:
    """Inject `token` as the URL credential; plain http is upgraded to https."""
    rest = url.split("://", 1)[1] if "://" in url else url
    return f"https://{token}@{rest}"


def build_git_clone_cmd(*, auth_url: str, branch: str, dest: Path) -> list[str]:
    return ["git", "clone", "-b", branch, auth_url, str(dest)]


def build_git_pull_cmd(*, project_dir: Path, auth_url: str, branch: str) -> list[str]:
    return ["git", "-C", str(project_dir), "pull", auth_url, branch]


def build_git_set_remote_cmd(*, project_dir: Path, url: str) -> list[str]:
    return ["git", "-C", str(project_dir), "remote", "set-url", "origin", url]


def fetch_repository(params: DeployParams, scratch_dir: Path, *, run_fn: RunFn = run_logged) -> Path:
    logger.info("=== Cloning Repository ===")
    project_dir = scratch_dir / repo_name_from_url(params.repo_url)
    auth_url = build_authenticated_url(params.repo_url, params.token)
    secrets = (params.token,)

    if (project_dir / ".git").is_dir():
        logger.info("Repository already exists, pulling latest changes...")
        result = run_fn(
            build_git_pull_cmd(project_dir=project_dir, auth_url=auth_url, branch=params.branch),
            secrets=secrets,
            env=GIT_ENV,
        )
        if not result.ok:
            raise DeployError("Failed to pull repository", ExitCode.GIT, context=failure_context(result))
    else:
        logger.info("Cloning repository...")
        result = run_fn(
            build_git_clone_cmd(auth_url=auth_url, branch=params.branch, dest=project_dir),
            secrets=secrets,
            env=GIT_ENV,
        )
        if not result.ok:
            raise DeployError("Failed to clone repository", ExitCode.GIT, context=failure_context(result))
        # Keep the token out of .git/config, which is synced to the server.
        result = run_fn(
            build_git_set_remote_cmd(project_dir=project_dir, url=params.repo_url),
            secrets=secrets,
            env=GIT_ENV,
        )
        if not result.ok:
            raise DeployError("Failed to reset repository remote", ExitCode.GIT, context=failure_context(result))

    log_success("Repository cloned/updated successfully")
    logger.info("Project directory: %s", project_dir)
    return project_dir
