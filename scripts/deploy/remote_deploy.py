#!/usr/bin/env python3
"""Deploy a Dockerized application from a git repository to an Ubuntu server.

Interactive: prompts for the repository, access token, SSH target and
application port, then

1. clones the repository into a temporary directory,
2. installs Docker, Docker Compose and Nginx on the server (idempotent),
3. rsyncs the project to `/home/<user>/deployments/<app>/`,
4. starts it with `docker-compose up` or `docker build` + `docker run`,
5. puts Nginx on port 80 in front of the application port.

`--cleanup` tears a previous deployment down again after confirmation.

Each stage exits with its own code on failure (see `ExitCode`). The temporary
directory is removed on every exit path, including Ctrl-C and SIGTERM.

Security note: this script shells out to `git`, `ssh` and `rsync`.
"""

from __future__ import annotations

import argparse
import getpass
import os
import signal
import tempfile
import time
from pathlib import Path
from typing import Callable

from scripts.deploy.compose_helpers import verify_descriptors
from scripts.deploy.deploy_config import EnvValidationError, load_deploy_defaults
from scripts.deploy.deploy_errors import DeployError, DeployInterrupted, ExitCode
from scripts.deploy.deploy_logging import configure_logging, log_success, logger
from scripts.deploy.deploy_params import DeployParams, collect_cleanup_parameters, collect_parameters
from scripts.deploy.docker_deploy import deploy_application, remove_deployment, transfer_files, validate_deployment
from scripts.deploy.nginx_config import configure_nginx, remove_nginx_site, validate_nginx
from scripts.deploy.provisioning import setup_remote_environment
from scripts.deploy.remote import RemoteExecutor, run_logged
from scripts.deploy.repo_fetcher import fetch_repository

BANNER = """
╔══════════════════════════════════════════════════════════════╗
║             Automated Docker Deployment Script               ║
║                                                              ║
║  Deploy containerized applications to remote servers with    ║
║  automated Nginx reverse proxy configuration                 ║
╚══════════════════════════════════════════════════════════════╝
"""

PromptFn = Callable[[str], str]


def resolve_tool_dir(candidate: Path) -> Path:
    """Checkout root for the log file and `.env.deploy`; the working directory for installed copies."""
    installed = any(part in ("site-packages", "dist-packages") for part in candidate.parts)
    if installed or not os.access(candidate, os.W_OK):
        return Path.cwd()
    return candidate


def run_deployment(params: DeployParams, *, run_fn=None, sleep_fn=None) -> None:
    run_fn = run_fn or run_logged
    sleep_fn = sleep_fn or time.sleep
    with tempfile.TemporaryDirectory(prefix="deploy-") as scratch:
        try:
            project_dir = fetch_repository(params, Path(scratch), run_fn=run_fn)
            descriptors = verify_descriptors(project_dir)

            executor = RemoteExecutor(params, run_fn=run_fn)
            executor.test_connection()
            setup_remote_environment(executor)
            transfer_files(executor, project_dir)
            deploy_application(executor, descriptors)
            validate_deployment(executor, sleep_fn=sleep_fn)
            configure_nginx(executor)
            validate_nginx(executor, sleep_fn=sleep_fn)
        finally:
            logger.info("Cleaning up temporary directory: %s", scratch)


def run_cleanup(params: DeployParams, *, prompt: PromptFn, assume_yes: bool = False, run_fn=None) -> bool:
    """Tear down a previous deployment; returns False when the operator declines."""
    executor = RemoteExecutor(params, run_fn=run_fn or run_logged)
    executor.test_connection()

    logger.info("=== Cleaning Up Deployment ===")
    if not assume_yes:
        confirm = prompt("Are you sure you want to remove all deployed resources? (yes/no): ").strip()
        if confirm != "yes":
            logger.info("Cleanup cancelled")
            return False

    remove_deployment(executor)
    remove_nginx_site(executor)
    log_success("Cleanup completed")
    return True


def display_summary(params: DeployParams, log_path: Path) -> None:
    logger.info("")
    logger.info("=== Deployment Summary ===")
    logger.info("Repository: %s", params.repo_url)
    logger.info("Branch: %s", params.branch)
    logger.info("Remote Server: %s", params.ssh_target)
    logger.info("Application: %s", params.app_name)
    logger.info("Internal Port: %s", params.app_port)
    logger.info("External URL: %s", params.public_url)
    logger.info("Log File: %s", log_path)
    logger.info("")
    log_success("Deployment completed successfully!")
    logger.info("")
    logger.info("Next steps:")
    logger.info("1. Access your application at: %s", params.public_url)
    logger.info("2. Configure DNS if using a domain name")
    logger.info("3. Set up SSL certificate (e.g., using Let's Encrypt)")
    logger.info("4. Review logs: %s", log_path)


def _raise_on_signal(signum, frame) -> None:
    raise DeployInterrupted(signum)


def main(argv: list[str] | None = None, tool_dir_override: Path | None = None) -> int:
    parser = argparse.ArgumentParser(description="Deploy a Dockerized git repository to a remote server behind Nginx")
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove a previous deployment (containers, image, Nginx site, project files)",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Skip the confirmation prompt in --cleanup mode",
    )
    args = parser.parse_args(argv)

    tool_dir = tool_dir_override or resolve_tool_dir(Path(__file__).resolve().parents[2])

    print(BANNER)
    log_path = configure_logging(tool_dir)

    previous_sigterm = signal.signal(signal.SIGTERM, _raise_on_signal)
    try:
        defaults = load_deploy_defaults(tool_dir)
        if args.cleanup:
            params = collect_cleanup_parameters(defaults, prompt=input)
            run_cleanup(params, prompt=input, assume_yes=args.yes)
            return ExitCode.OK

        logger.info("Starting deployment process at %s", time.strftime("%Y-%m-%d %H:%M:%S"))
        logger.info("Log file: %s", log_path)
        params = collect_parameters(defaults, prompt=input, secret_prompt=getpass.getpass)
        run_deployment(params)
        display_summary(params, log_path)
        return ExitCode.OK
    except DeployError as exc:
        logger.error(exc.format())
        logger.error("Script failed with exit code %s", int(exc.exit_code))
        logger.error("Check log file: %s", log_path)
        return exc.exit_code
    except EnvValidationError as exc:
        logger.error(exc.format())
        return ExitCode.GENERIC
    except KeyboardInterrupt:
        logger.error("Interrupted by operator")
        return ExitCode.INTERRUPTED
    except DeployInterrupted as exc:
        logger.error("%s, aborting", exc)
        return ExitCode.TERMINATED
    finally:
        signal.signal(signal.SIGTERM, previous_sigterm)


if __name__ == "__main__":
    raise SystemExit(main())
