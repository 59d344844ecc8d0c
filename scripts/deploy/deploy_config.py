"""Prompt defaults for the remote deploy driver.

Every prompted value may be pre-seeded so repeat deployments only need the
Enter key. Resolution order per key:

1. process environment
2. `.env.deploy` (or `.env.deploy.secrets` for secrets) in the tool directory
3. the built-in default from the schema below

Keys are declared once here; the rest of the code refers to them through the
enums, never by literal string.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping

from dotenv import dotenv_values

DEPLOY_DOTENV = ".env.deploy"
DEPLOY_SECRETS_DOTENV = ".env.deploy.secrets"


class VarsEnum(str, Enum):
    DEPLOY_REPO_URL = "DEPLOY_REPO_URL"
    DEPLOY_BRANCH = "DEPLOY_BRANCH"
    DEPLOY_REMOTE_USER = "DEPLOY_REMOTE_USER"
    DEPLOY_REMOTE_IP = "DEPLOY_REMOTE_IP"
    DEPLOY_SSH_KEY = "DEPLOY_SSH_KEY"
    DEPLOY_APP_PORT = "DEPLOY_APP_PORT"
    DEPLOY_APP_NAME = "DEPLOY_APP_NAME"


class SecretsEnum(str, Enum):
    DEPLOY_GIT_TOKEN = "DEPLOY_GIT_TOKEN"


@dataclass(frozen=True)
class EnvKeySpec:
    key: VarsEnum | SecretsEnum
    default: str | None = None

    @property
    def secret(self) -> bool:
        return isinstance(self.key, SecretsEnum)


class EnvValidationError(ValueError):
    def __init__(self, *, context: str, problems: list[str]):
        super().__init__("; ".join(problems))
        self.context = context
        self.problems = problems

    def format(self) -> str:
        lines = [f"[env] validation failed: {self.context}"]
        for p in self.problems:
            lines.append(f"- {p}")
        return "\n".join(lines)


DEPLOY_SCHEMA: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(key=VarsEnum.DEPLOY_REPO_URL),
    EnvKeySpec(key=VarsEnum.DEPLOY_BRANCH, default="main"),
    EnvKeySpec(key=VarsEnum.DEPLOY_REMOTE_USER),
    EnvKeySpec(key=VarsEnum.DEPLOY_REMOTE_IP),
    EnvKeySpec(key=VarsEnum.DEPLOY_SSH_KEY, default="~/.ssh/id_rsa"),
    EnvKeySpec(key=VarsEnum.DEPLOY_APP_PORT),
    EnvKeySpec(key=VarsEnum.DEPLOY_APP_NAME, default="myapp"),
    EnvKeySpec(key=SecretsEnum.DEPLOY_GIT_TOKEN),
)


def _schema_keys(schema: Iterable[EnvKeySpec], *, secret: bool) -> set[str]:
    return {spec.key.value for spec in schema if spec.secret == secret}


def parse_dotenv_file(path: Path) -> dict[str, str]:
    """Parse a dotenv file, keeping keys with empty values so unknown keys are still caught."""
    kv: dict[str, str] = {}
    raw = dotenv_values(path)
    for k, v in raw.items():
        if k is None:
            continue
        key = str(k).strip()
        if not key:
            continue
        kv[key] = "" if v is None else str(v).strip()
    return kv


def validate_known_keys(allowed: set[str], kv: Mapping[str, str], *, context: str) -> None:
    unknown = sorted([k for k in kv.keys() if k not in allowed])
    if unknown:
        raise EnvValidationError(context=context, problems=["Unknown key(s): " + ", ".join(unknown)])


def _read_dotenv(path: Path, allowed: set[str]) -> dict[str, str]:
    if not path.exists():
        return {}
    kv = parse_dotenv_file(path)
    validate_known_keys(allowed, kv, context=path.name)
    return kv


@dataclass(frozen=True)
class DeployDefaults:
    values: Mapping[str, str]

    def get(self, key: VarsEnum | SecretsEnum) -> str:
        return str(self.values.get(key.value) or "").strip()


def load_deploy_defaults(
    tool_dir: Path,
    *,
    environ: Mapping[str, str] | None = None,
    schema: Iterable[EnvKeySpec] = DEPLOY_SCHEMA,
) -> DeployDefaults:
    schema = tuple(schema)
    env = os.environ if environ is None else environ
    file_vars = _read_dotenv(tool_dir / DEPLOY_DOTENV, _schema_keys(schema, secret=False))
    file_secrets = _read_dotenv(tool_dir / DEPLOY_SECRETS_DOTENV, _schema_keys(schema, secret=True))

    resolved: dict[str, str] = {}
    for spec in schema:
        key = spec.key.value
        value = str(env.get(key) or "").strip()
        if not value:
            value = (file_secrets if spec.secret else file_vars).get(key, "")
        if not value and spec.default is not None:
            value = spec.default
        if value:
            resolved[key] = value
    return DeployDefaults(values=resolved)
