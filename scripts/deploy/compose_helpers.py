from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from scripts.deploy.deploy_errors import DeployError, ExitCode
from scripts.deploy.deploy_logging import log_success, logger

DOCKERFILE_NAME = "Dockerfile"
COMPOSE_FILE_NAMES = ("docker-compose.yml", "docker-compose.yaml")


class DescriptorKind(str, Enum):
    DOCKERFILE = "dockerfile"
    COMPOSE = "compose"
    BOTH = "both"
    NONE = "none"


@dataclass(frozen=True)
class Descriptors:
    dockerfile: Optional[Path]
    compose_file: Optional[Path]

    @property
    def kind(self) -> DescriptorKind:
        if self.dockerfile and self.compose_file:
            return DescriptorKind.BOTH
        if self.compose_file:
            return DescriptorKind.COMPOSE
        if self.dockerfile:
            return DescriptorKind.DOCKERFILE
        return DescriptorKind.NONE

    @property
    def uses_compose(self) -> bool:
        return self.compose_file is not None


def find_compose_file(project_dir: Path) -> Optional[Path]:
    """Return the first compose descriptor present, preferring `.yml`."""
    for name in COMPOSE_FILE_NAMES:
        candidate = project_dir / name
        if candidate.is_file():
            return candidate
    return None


def detect_descriptors(project_dir: Path) -> Descriptors:
    dockerfile = project_dir / DOCKERFILE_NAME
    return Descriptors(
        dockerfile=dockerfile if dockerfile.is_file() else None,
        compose_file=find_compose_file(project_dir),
    )


def load_compose_config(compose_path: Path) -> Dict[str, Any]:
    """Parse a compose file with PyYAML; an empty file yields an empty mapping."""
    try:
        with open(compose_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise RuntimeError(f"Failed to parse {compose_path.name}: {e}") from e
    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise RuntimeError(f"{compose_path.name} is not a mapping")
    return raw_config


def list_services(compose_config: Dict[str, Any]) -> list[str]:
    services = compose_config.get("services")
    if not isinstance(services, dict):
        return []
    return [str(name) for name in services]


def extract_container_names(compose_config: Dict[str, Any]) -> list[str]:
    """Explicit `container_name` values, in service order."""
    services = compose_config.get("services")
    if not isinstance(services, dict):
        return []

    names: list[str] = []
    for service_payload in services.values():
        if not isinstance(service_payload, dict):
            continue
        container_name = str(service_payload.get("container_name") or "").strip()
        if container_name:
            names.append(container_name)
    return names


def _log_compose_summary(compose_path: Path) -> None:
    try:
        config = load_compose_config(compose_path)
    except RuntimeError as e:
        logger.warning("Could not inspect %s: %s", compose_path.name, e)
        return
    services = list_services(config)
    if services:
        logger.info("Compose services: %s", ", ".join(services))
    container_names = extract_container_names(config)
    if container_names:
        logger.info("Compose container names: %s", ", ".join(container_names))


def verify_descriptors(project_dir: Path) -> Descriptors:
    logger.info("=== Verifying Docker Configuration Files ===")
    descriptors = detect_descriptors(project_dir)

    if descriptors.dockerfile:
        log_success("Dockerfile found")
    else:
        logger.warning("Dockerfile not found")

    if descriptors.compose_file:
        log_success("%s found", descriptors.compose_file.name)
        _log_compose_summary(descriptors.compose_file)
    else:
        logger.warning("docker-compose.yml not found")

    if descriptors.kind is DescriptorKind.NONE:
        raise DeployError("Neither Dockerfile nor docker-compose.yml found in repository", ExitCode.MISSING_DESCRIPTOR)

    log_success("Docker configuration files verified")
    return descriptors
