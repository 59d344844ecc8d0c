"""Transfer, container start-up, health checks and teardown on the target host."""

from __future__ import annotations

import shlex
import time
from pathlib import Path
from typing import Callable

from scripts.deploy.compose_helpers import Descriptors
from scripts.deploy.deploy_errors import DeployError, ExitCode
from scripts.deploy.deploy_logging import log_success, logger
from scripts.deploy.remote import RemoteExecutor, failure_context

CONTAINER_SETTLE_SECONDS = 5
RESTART_POLICY = "always"
LOG_DUMP_LINES = 20

SleepFn = Callable[[float], None]

q = shlex.quote


def build_mkdir_cmd(remote_dir: str) -> str:
    return f"mkdir -p {q(remote_dir)}"


def build_stop_existing_cmd(app_name: str) -> str:
    ids = f"docker ps -aq --filter name={q(app_name)}"
    return f"{ids} | xargs -r docker stop && {ids} | xargs -r docker rm"


def build_compose_deploy_cmd(*, project_dir: str, compose_file: str) -> str:
    compose = f"docker-compose -f {q(compose_file)}"
    return f"cd {q(project_dir)} && ({compose} down 2>/dev/null || true) && {compose} up -d --build"


def build_docker_build_cmd(*, project_dir: str, image_tag: str) -> str:
    return f"cd {q(project_dir)} && docker build -t {q(image_tag)} ."


def build_docker_run_cmd(*, app_name: str, app_port: int, image_tag: str) -> str:
    return (
        f"docker run -d --name {q(app_name)} --restart {RESTART_POLICY} "
        f"-p {app_port}:{app_port} {q(image_tag)}"
    )


def build_container_running_cmd(app_name: str) -> str:
    return f"docker ps --format '{{{{.Names}}}}' | grep -F -- {q(app_name)}"


def build_container_logs_cmd(app_name: str) -> str:
    return f"docker logs --tail {LOG_DUMP_LINES} {q(app_name)} 2>&1"


def build_http_probe_cmd(url: str) -> str:
    return f"curl -fsS -o /dev/null -w 'HTTP Status: %{{http_code}}\\n' {q(url)}"


def transfer_files(executor: RemoteExecutor, project_dir: Path) -> str:
    logger.info("=== Transferring Project Files ===")
    remote_dir = executor.params.remote_project_dir

    executor.check(build_mkdir_cmd(remote_dir), action="Failed to create remote directory", exit_code=ExitCode.TRANSFER)

    logger.info("Syncing files to remote server...")
    executor.sync(project_dir, remote_dir)

    log_success("Files transferred successfully to %s", remote_dir)
    return remote_dir


def deploy_application(executor: RemoteExecutor, descriptors: Descriptors) -> None:
    logger.info("=== Deploying Application ===")
    params = executor.params

    logger.info("Stopping existing containers (if any)...")
    executor.warn(build_stop_existing_cmd(params.app_name), action="No existing containers to stop")

    if descriptors.compose_file is not None:
        logger.info("Deploying with Docker Compose...")
        executor.check(
            build_compose_deploy_cmd(project_dir=params.remote_project_dir, compose_file=descriptors.compose_file.name),
            action="Failed to deploy with Docker Compose",
            exit_code=ExitCode.DEPLOY,
        )
    else:
        logger.info("Building Docker image...")
        executor.check(
            build_docker_build_cmd(project_dir=params.remote_project_dir, image_tag=params.image_tag),
            action="Failed to build Docker image",
            exit_code=ExitCode.DEPLOY,
        )
        logger.info("Running Docker container...")
        executor.check(
            build_docker_run_cmd(app_name=params.app_name, app_port=params.app_port, image_tag=params.image_tag),
            action="Failed to run Docker container",
            exit_code=ExitCode.DEPLOY,
        )

    log_success("Application deployed successfully")


def validate_deployment(executor: RemoteExecutor, *, sleep_fn: SleepFn = time.sleep) -> None:
    logger.info("=== Validating Deployment ===")
    params = executor.params

    sleep_fn(CONTAINER_SETTLE_SECONDS)

    logger.info("Checking Docker service status...")
    executor.check("sudo systemctl is-active docker", action="Docker service is not running", exit_code=ExitCode.HEALTH_CHECK)

    logger.info("Checking container status...")
    running = executor.run(build_container_running_cmd(params.app_name))
    if not running.ok:
        logger.error("Container is not running. Checking logs...")
        logs = executor.run(build_container_logs_cmd(params.app_name))
        raise DeployError("Container failed to start", ExitCode.HEALTH_CHECK, context=failure_context(logs))
    log_success("Container is running")

    logger.info("Testing application endpoint...")
    probe = executor.run(build_http_probe_cmd(f"http://localhost:{params.app_port}"))
    if probe.ok:
        log_success("Application is responding")
    else:
        logger.warning("Application may not be ready yet or not responding on port %s", params.app_port)

    log_success("Deployment validation completed")


def remove_deployment(executor: RemoteExecutor) -> None:
    """Best-effort teardown of containers, image and project files."""
    params = executor.params
    logger.info("Stopping and removing containers...")
    project_dir = q(params.remote_project_dir)
    executor.warn(
        f"docker stop {q(params.app_name)} 2>/dev/null; docker rm {q(params.app_name)} 2>/dev/null; "
        f"if [ -d {project_dir} ]; then cd {project_dir} && (docker-compose down 2>/dev/null || true); fi; true",
        action="Failed to remove containers",
    )

    logger.info("Removing images...")
    executor.warn(f"docker rmi {q(params.image_tag)} 2>/dev/null || true", action="Failed to remove image")

    logger.info("Removing project files...")
    executor.warn(f"rm -rf {project_dir}", action="Failed to remove project files")
