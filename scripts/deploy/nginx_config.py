"""Nginx reverse-proxy site for the deployed application.

The site listens on port 80 and forwards everything to the container port on
localhost; `/health` is answered by Nginx itself so the proxy can be checked
independently of the application.
"""

from __future__ import annotations

import shlex
import time
from typing import Callable

import requests

from scripts.deploy.deploy_errors import ExitCode
from scripts.deploy.deploy_logging import log_success, logger
from scripts.deploy.docker_deploy import build_http_probe_cmd
from scripts.deploy.remote import RemoteExecutor

PROXY_SETTLE_SECONDS = 2
EXTERNAL_PROBE_TIMEOUT_SECONDS = 10
DEFAULT_SITE_PATH = "/etc/nginx/sites-enabled/default"

q = shlex.quote


def render_nginx_config(*, app_port: int, server_name: str = "_") -> str:
    return f"""server {{
    listen 80;
    server_name {server_name};

    client_max_body_size 100M;

    location / {{
        proxy_pass http://localhost:{app_port};
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection 'upgrade';
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_cache_bypass $http_upgrade;
        proxy_connect_timeout 60s;
        proxy_send_timeout 60s;
        proxy_read_timeout 60s;
    }}

    location /health {{
        access_log off;
        return 200 'OK';
        add_header Content-Type text/plain;
    }}
}}
"""


def build_write_config_cmd(available_path: str) -> str:
    return f"sudo tee {q(available_path)} > /dev/null"


def build_enable_site_cmd(*, available_path: str, enabled_path: str) -> str:
    return f"sudo ln -sf {q(available_path)} {q(enabled_path)} && sudo rm -f {DEFAULT_SITE_PATH}"


def build_remove_site_cmd(*, available_path: str, enabled_path: str) -> str:
    return f"sudo rm -f {q(enabled_path)} {q(available_path)} && sudo systemctl reload nginx"


def configure_nginx(executor: RemoteExecutor) -> None:
    logger.info("=== Configuring Nginx Reverse Proxy ===")
    params = executor.params

    logger.info("Creating Nginx configuration...")
    executor.check(
        build_write_config_cmd(params.nginx_available_path),
        action="Failed to create Nginx configuration",
        exit_code=ExitCode.PROXY_CONFIG,
        input_text=render_nginx_config(app_port=params.app_port),
    )

    logger.info("Enabling Nginx site...")
    executor.warn(
        build_enable_site_cmd(available_path=params.nginx_available_path, enabled_path=params.nginx_enabled_path),
        action="Failed to enable site or remove default",
    )

    logger.info("Testing Nginx configuration...")
    executor.check("sudo nginx -t", action="Nginx configuration test failed", exit_code=ExitCode.PROXY_CONFIG)

    logger.info("Reloading Nginx...")
    executor.check("sudo systemctl reload nginx", action="Failed to reload Nginx", exit_code=ExitCode.PROXY_CONFIG)

    log_success("Nginx configured and reloaded successfully")


def probe_external(url: str, *, timeout: float = EXTERNAL_PROBE_TIMEOUT_SECONDS) -> bool:
    """Fetch `url` from the operator's machine; any error or status >= 400 is a miss."""
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as exc:
        logger.warning("External request to %s failed: %s", url, exc)
        return False
    logger.info("HTTP Status: %s", response.status_code)
    return response.ok


def validate_nginx(executor: RemoteExecutor, *, sleep_fn: Callable[[float], None] = time.sleep) -> None:
    logger.info("=== Validating Nginx Setup ===")
    params = executor.params

    logger.info("Checking Nginx status...")
    executor.check("sudo systemctl is-active nginx", action="Nginx is not running", exit_code=ExitCode.PROXY_VALIDATION)

    logger.info("Testing reverse proxy...")
    sleep_fn(PROXY_SETTLE_SECONDS)
    local_probe = executor.run(build_http_probe_cmd("http://localhost"))
    if local_probe.ok:
        log_success("Nginx reverse proxy is working")
    else:
        logger.warning("Nginx proxy may not be fully configured")

    logger.info("Testing external access...")
    if probe_external(params.public_url):
        log_success("Application is accessible externally at %s", params.public_url)
    else:
        logger.warning("External access test failed. Check firewall settings.")

    log_success("Nginx validation completed")


def remove_nginx_site(executor: RemoteExecutor) -> None:
    logger.info("Removing Nginx configuration...")
    params = executor.params
    executor.warn(
        build_remove_site_cmd(available_path=params.nginx_available_path, enabled_path=params.nginx_enabled_path),
        action="Failed to remove Nginx configuration",
    )
