"""Install Docker, Docker Compose and Nginx on the target host.

Each install script checks `command -v` first, so re-running against an already
provisioned host is a no-op apart from the version report.
"""

from __future__ import annotations

import shlex

from scripts.deploy.deploy_errors import ExitCode
from scripts.deploy.deploy_logging import log_success, logger
from scripts.deploy.remote import RemoteExecutor

APT_UPDATE_CMD = "sudo apt-get update -y"

DOCKER_INSTALL_CMD = (
    "if ! command -v docker >/dev/null 2>&1; then "
    "curl -fsSL https://get.docker.com -o get-docker.sh && "
    "sudo sh get-docker.sh && "
    "rm -f get-docker.sh && "
    "sudo systemctl enable docker && "
    "sudo systemctl start docker && "
    "echo 'Docker installed successfully'; "
    "else echo 'Docker already installed'; fi"
)

COMPOSE_INSTALL_CMD = (
    "if ! command -v docker-compose >/dev/null 2>&1; then "
    'sudo curl -fsSL "https://github.com/docker/compose/releases/latest/download/docker-compose-$(uname -s)-$(uname -m)" '
    "-o /usr/local/bin/docker-compose && "
    "sudo chmod +x /usr/local/bin/docker-compose && "
    "echo 'Docker Compose installed successfully'; "
    "else echo 'Docker Compose already installed'; fi"
)

NGINX_INSTALL_CMD = (
    "if ! command -v nginx >/dev/null 2>&1; then "
    "sudo apt-get install -y nginx && "
    "sudo systemctl enable nginx && "
    "sudo systemctl start nginx && "
    "echo 'Nginx installed successfully'; "
    "else echo 'Nginx already installed'; fi"
)

VERIFY_VERSIONS_CMD = (
    "echo 'Docker version:' && docker --version && "
    "echo 'Docker Compose version:' && docker-compose --version && "
    "echo 'Nginx version:' && nginx -v 2>&1"
)


def docker_group_cmd(remote_user: str) -> str:
    return f"sudo usermod -aG docker {shlex.quote(remote_user)} && echo 'User added to Docker group'"


def setup_remote_environment(executor: RemoteExecutor) -> None:
    logger.info("=== Setting Up Remote Environment ===")

    logger.info("Updating system packages...")
    executor.warn(APT_UPDATE_CMD, action="Failed to update packages")

    logger.info("Installing Docker...")
    executor.check(DOCKER_INSTALL_CMD, action="Failed to install Docker", exit_code=ExitCode.PROVISIONING)

    logger.info("Installing Docker Compose...")
    executor.check(COMPOSE_INSTALL_CMD, action="Failed to install Docker Compose", exit_code=ExitCode.PROVISIONING)

    logger.info("Installing Nginx...")
    executor.check(NGINX_INSTALL_CMD, action="Failed to install Nginx", exit_code=ExitCode.PROVISIONING)

    logger.info("Adding user to Docker group...")
    executor.warn(docker_group_cmd(executor.params.remote_user), action="Failed to add user to Docker group")

    logger.info("Verifying installations...")
    executor.warn(VERIFY_VERSIONS_CMD, action="Failed to verify some installations")

    log_success("Remote environment setup completed")
